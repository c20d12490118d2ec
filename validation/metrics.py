"""
Validation metrics for cross-validated interpolation.

Summarises LOOCV residuals (observed - predicted) and compares two
interpolators evaluated on the same samples.
"""

import numpy as np
from typing import Dict, List, Sequence
from scipy.stats import ttest_rel

from models.sample import Residual
from optimization.loocv import rmse_from_residuals


def _errors(residuals: Sequence[Residual]) -> np.ndarray:
    if len(residuals) == 0:
        raise ValueError("Need at least 1 residual")
    return np.array([r.residual for r in residuals], dtype=float)


# ---------------------------------------------------------------------------
# Accuracy metrics
# ---------------------------------------------------------------------------

def rmse(residuals: Sequence[Residual]) -> float:
    """Root mean squared error; the same figure LOOCV reports."""
    _errors(residuals)
    return rmse_from_residuals(residuals)


def mean_absolute_error(residuals: Sequence[Residual]) -> float:
    return float(np.mean(np.abs(_errors(residuals))))


def mean_error(residuals: Sequence[Residual]) -> float:
    """Mean residual (bias).  Positive means the interpolator under-predicts."""
    return float(np.mean(_errors(residuals)))


def r_squared(residuals: Sequence[Residual]) -> float:
    """Coefficient of determination of predicted against observed.

    Returns NaN when the observed values have zero variance.
    """
    e = _errors(residuals)
    obs = np.array([r.observed_value for r in residuals], dtype=float)
    ss_tot = float(np.sum((obs - obs.mean()) ** 2))
    if ss_tot == 0.0:
        return float("nan")
    return 1.0 - float(np.sum(e ** 2)) / ss_tot


def residual_summary(residuals: Sequence[Residual]) -> Dict[str, float]:
    """All accuracy metrics in one dict.

    Returns:
        Dict with keys: n, rmse, mae, bias, r_squared, max_abs_error.
    """
    e = _errors(residuals)
    return {
        "n": len(e),
        "rmse": rmse(residuals),
        "mae": mean_absolute_error(residuals),
        "bias": mean_error(residuals),
        "r_squared": r_squared(residuals),
        "max_abs_error": float(np.max(np.abs(e))),
    }


# ---------------------------------------------------------------------------
# Statistical significance helpers
# ---------------------------------------------------------------------------

def paired_significance_test(
    metric_a: List[float],
    metric_b: List[float],
    alpha: float = 0.05,
) -> Dict[str, float]:
    """Paired t-test for two matched metric vectors.

    Args:
        metric_a: Metric values for method A.
        metric_b: Metric values for method B (same length).
        alpha: Significance level.

    Returns:
        Dict with keys: mean_diff, p_value, significant, ci_lower, ci_upper.

    Raises:
        ValueError: If inputs have different lengths or fewer than 2 elements.
    """
    a = np.asarray(metric_a, dtype=float)
    b = np.asarray(metric_b, dtype=float)
    if len(a) != len(b):
        raise ValueError(
            f"Input lengths must match: got {len(a)} and {len(b)}"
        )
    if len(a) < 2:
        raise ValueError("Need at least 2 paired observations")

    diff = a - b
    mean_diff = float(np.mean(diff))
    _, p_value = ttest_rel(a, b)
    p_value = float(p_value)

    # 95% confidence interval for the mean difference
    se = float(np.std(diff, ddof=1) / np.sqrt(len(diff)))
    from scipy.stats import t as t_dist
    t_crit = float(t_dist.ppf(1.0 - alpha / 2.0, df=len(diff) - 1))

    return {
        "mean_diff": mean_diff,
        "p_value": p_value,
        "significant": p_value < alpha,
        "ci_lower": mean_diff - t_crit * se,
        "ci_upper": mean_diff + t_crit * se,
    }


def compare_squared_errors(
    residuals_a: Sequence[Residual],
    residuals_b: Sequence[Residual],
    alpha: float = 0.05,
) -> Dict[str, float]:
    """Paired test on per-sample squared LOOCV errors of two interpolators.

    Residual lists must cover the same samples; they are matched by
    ``sample_index``.  A negative mean_diff favours method A.
    """
    a = {r.sample_index: r.residual ** 2 for r in residuals_a}
    b = {r.sample_index: r.residual ** 2 for r in residuals_b}
    if set(a) != set(b):
        raise ValueError("Residual lists cover different samples")
    keys = sorted(a)
    return paired_significance_test([a[k] for k in keys], [b[k] for k in keys], alpha)
