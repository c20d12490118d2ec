"""
Variogram Model Fitting.

Fits (nugget, partial sill, range) of a theoretical family to an empirical
variogram by bounded, weighted nonlinear least squares, and selects the
family with the smallest weighted SSE among a set of candidates.

Weighting (gstat naming):
    "npairs_over_h2"  w_j = N_j / h_j^2   (default, fit.method = 7)
    "npairs"          w_j = N_j           (fit.method = 1)
    "unweighted"      w_j = 1             (ordinary least squares)

The reported SSE is the weighted residual sum of squares that the
optimiser minimises, so it is comparable across families fitted to the
same bins.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats
from scipy.optimize import OptimizeWarning, curve_fit

from config import (
    DEFAULT_FIT_WEIGHTING,
    DEFAULT_VARIOGRAM_FAMILIES,
    FIT_MAX_EVALUATIONS,
    FIT_MIN_PAIRS,
    FIT_PLATEAU_FRACTION,
    FIT_RANGE_CEILING_FACTOR,
    FIT_STRUCTURE_ALPHA,
    SSE_TIE_RTOL,
)
from models.errors import (
    FitConvergenceError,
    InsufficientDataError,
    InvalidParameterError,
)
from models.variogram import (
    EmpiricalVariogramBin,
    VariogramModel,
    bins_to_arrays,
    normalize_family,
    semivariance,
)

logger = logging.getLogger(__name__)

WEIGHTINGS = ("npairs_over_h2", "npairs", "unweighted")


def bin_weights(lags: np.ndarray, counts: np.ndarray, weighting: str) -> np.ndarray:
    """Least-squares weight for each lag bin."""
    if weighting == "npairs_over_h2":
        return counts / lags ** 2
    if weighting == "npairs":
        return counts.astype(float)
    if weighting == "unweighted":
        return np.ones_like(lags, dtype=float)
    raise InvalidParameterError(f"Unknown weighting '{weighting}'. Use one of {WEIGHTINGS}.")


def initial_guess(lags: np.ndarray, gammas: np.ndarray) -> Tuple[float, float, float]:
    """
    Data-driven starting point (nugget, partial_sill, range).

        nugget       ~ semivariance at the smallest lag
        sill         ~ maximum semivariance  (partial_sill = sill - nugget)
        range        ~ first lag reaching FIT_PLATEAU_FRACTION of the maximum
    """
    order = np.argsort(lags)
    lags, gammas = lags[order], gammas[order]
    nugget = float(max(gammas[0], 0.0))
    sill = float(gammas.max())
    partial_sill = max(sill - nugget, 0.0)
    plateau = np.flatnonzero(gammas >= FIT_PLATEAU_FRACTION * sill)
    range_ = float(lags[plateau[0]]) if len(plateau) else float(lags[-1])
    return nugget, partial_sill, range_


def fitting_bins(
    empirical: Sequence[EmpiricalVariogramBin],
    min_pairs: int = FIT_MIN_PAIRS,
) -> List[EmpiricalVariogramBin]:
    """Bins that enter the least-squares objective.

    Zero-pair bins are always dropped.  Bins with fewer than ``min_pairs``
    pairs are dropped as well, unless that would leave fewer than 3 bins.
    """
    bins = [b for b in empirical if b.pair_count >= 1]
    supported = [b for b in bins if b.pair_count >= min_pairs]
    return supported if len(supported) >= 3 else bins


def weighted_sse(
    bins: Sequence[EmpiricalVariogramBin],
    model: VariogramModel,
    weighting: str = DEFAULT_FIT_WEIGHTING,
    min_pairs: int = FIT_MIN_PAIRS,
) -> float:
    """Weighted sum of squared residuals between the model and the fitted bins."""
    lags, gammas, counts = bins_to_arrays(fitting_bins(bins, min_pairs))
    w = bin_weights(lags, counts, weighting)
    resid = gammas - model.semivariance(lags)
    return float(np.sum(w * resid ** 2))


def structure_p_value(sse_structured: float, sse_nugget: float, n_bins: int) -> float:
    """
    Extra-sum-of-squares F-test of a 3-parameter fit against its nested
    nugget-only form (partial_sill = 0).

    Returns:
        p-value; small values mean the fitted structure is supported by the bins.
    """
    df = n_bins - 3
    if df <= 0:
        return 0.0
    gain = max(sse_nugget - sse_structured, 0.0)
    if sse_structured <= 0.0:
        return 0.0 if gain > 0.0 else 1.0
    f_stat = (gain / 2.0) / (sse_structured / df)
    return float(stats.f.sf(f_stat, 2, df))


class VariogramModelFitter:
    """Fit one variogram family to an empirical variogram.

    Args:
        weighting: Bin weighting scheme (see module docstring).
        max_evaluations: Function-evaluation budget for the optimiser.
        min_pairs: Pair count below which a bin is left out (see fitting_bins).
        structure_alpha: Significance the fitted structure must reach over
            the nugget-only model; None disables the test.
    """

    def __init__(
        self,
        weighting: str = DEFAULT_FIT_WEIGHTING,
        max_evaluations: int = FIT_MAX_EVALUATIONS,
        min_pairs: int = FIT_MIN_PAIRS,
        structure_alpha: Optional[float] = FIT_STRUCTURE_ALPHA,
    ):
        if weighting not in WEIGHTINGS:
            raise InvalidParameterError(
                f"Unknown weighting '{weighting}'. Use one of {WEIGHTINGS}."
            )
        self.weighting = weighting
        self.max_evaluations = max_evaluations
        self.min_pairs = min_pairs
        self.structure_alpha = structure_alpha

    def fit(
        self,
        empirical: Sequence[EmpiricalVariogramBin],
        family: str,
    ) -> Tuple[VariogramModel, float]:
        """Fit ``family`` to ``empirical``.

        Only the bins returned by fitting_bins enter the objective.  The
        Nugget family has a closed-form weighted-mean solution; partial_sill
        is 0 and the range (irrelevant to gamma) is set to the largest lag.

        Structured families have their range bounded below by the smallest
        fitted lag: a shorter range describes variation the bins cannot
        resolve.  When the fitted structure does not significantly improve
        on the nugget-only model (see structure_p_value), the family is
        returned in that nested form, with partial_sill 0 and the Nugget SSE.

        Returns:
            (VariogramModel, weighted SSE)

        Raises:
            InsufficientDataError: No usable bins (or < 3 for 3-parameter families).
            FitConvergenceError: Optimiser failure or non-finite parameters.
        """
        family = normalize_family(family)
        bins = fitting_bins(empirical, self.min_pairs)
        if not bins:
            raise InsufficientDataError("Empirical variogram has no non-empty bins")

        lags, gammas, counts = bins_to_arrays(bins)
        if np.any(lags <= 0):
            raise InvalidParameterError("Lag distances must be > 0")
        w = bin_weights(lags, counts, self.weighting)
        lag_max = max(b.lag_distance for b in empirical if b.pair_count >= 1)

        flat_level = max(float(np.sum(w * gammas) / np.sum(w)), 0.0)
        nested = VariogramModel(family, flat_level, 0.0, lag_max)
        nested_sse = float(np.sum(w * (gammas - nested.semivariance(lags)) ** 2))

        if family == "Nugget":
            logger.debug("Fitted Nugget: c0=%.4g, SSE=%.4g", nested.nugget, nested_sse)
            return nested, nested_sse

        if len(bins) < 3:
            raise InsufficientDataError(
                f"{family} fit needs at least 3 non-empty bins, got {len(bins)}"
            )

        range_lo = float(lags.min())
        range_hi = FIT_RANGE_CEILING_FACTOR * lag_max
        c0, c, a = initial_guess(lags, gammas)
        p0 = [c0, c, float(np.clip(a, range_lo, range_hi))]

        def _model(h, nugget, partial_sill, range_):
            return semivariance(h, family, nugget, partial_sill, range_)

        try:
            with warnings.catch_warnings():
                # Covariance of the estimates is not used
                warnings.simplefilter("ignore", OptimizeWarning)
                popt, _ = curve_fit(
                    _model,
                    lags,
                    gammas,
                    p0=p0,
                    sigma=1.0 / np.sqrt(w),
                    absolute_sigma=True,
                    bounds=([0.0, 0.0, range_lo], [np.inf, np.inf, range_hi]),
                    method="trf",
                    max_nfev=self.max_evaluations,
                )
        except (RuntimeError, ValueError) as exc:
            raise FitConvergenceError(f"{family} variogram fit failed: {exc}") from exc

        if not np.all(np.isfinite(popt)):
            raise FitConvergenceError(f"{family} variogram fit produced non-finite parameters")

        nugget, partial_sill, range_ = (float(v) for v in popt)
        try:
            model = VariogramModel(
                family, max(nugget, 0.0), max(partial_sill, 0.0), range_,
            )
        except InvalidParameterError as exc:
            raise FitConvergenceError(f"{family} fit left the valid region: {exc}") from exc

        sse = float(np.sum(w * (gammas - model.semivariance(lags)) ** 2))

        # Bins flat to round-off leave nothing for a structure to explain
        total = float(np.sum(w * gammas ** 2))
        if nested_sse <= SSE_TIE_RTOL * total or sse >= nested_sse:
            logger.debug("%s fit is flat; using the nugget-only form", family)
            return nested, nested_sse
        if self.structure_alpha is not None:
            p_value = structure_p_value(sse, nested_sse, len(bins))
            if p_value > self.structure_alpha:
                logger.debug(
                    "%s structure not significant (p=%.3g); using the nugget-only form",
                    family, p_value,
                )
                return nested, nested_sse

        logger.debug(
            "Fitted %s: c0=%.4g c=%.4g a=%.4g, SSE=%.4g",
            family, model.nugget, model.partial_sill, model.range, sse,
        )
        return model, sse


# ---------------------------------------------------------------------------
# Family selection
# ---------------------------------------------------------------------------

@dataclass
class FamilyFit:
    """Outcome of fitting one candidate family."""

    family: str
    model: Optional[VariogramModel] = None
    sse: Optional[float] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.model is not None


@dataclass
class VariogramSelection:
    """Best model across candidate families, with per-family diagnostics."""

    model: VariogramModel
    sse: float
    empirical: List[EmpiricalVariogramBin]
    diagnostics: List[FamilyFit] = field(default_factory=list)


def select_variogram_model(
    empirical: Sequence[EmpiricalVariogramBin],
    families: Sequence[str] = DEFAULT_VARIOGRAM_FAMILIES,
    fitter: Optional[VariogramModelFitter] = None,
) -> VariogramSelection:
    """
    Fit every candidate family and keep the one with minimum SSE.

    Families raising FitConvergenceError are recorded in the diagnostics and
    skipped.  SSEs within SSE_TIE_RTOL of the minimum are treated as tied,
    and ties go to the earliest family in ``families``.

    Raises:
        InvalidParameterError: Empty candidate list.
        FitConvergenceError: Every family failed.
    """
    if not families:
        raise InvalidParameterError("At least one candidate variogram family is required")
    fitter = fitter or VariogramModelFitter()

    diagnostics: List[FamilyFit] = []
    for fam in families:
        name = normalize_family(fam)
        try:
            model, sse = fitter.fit(empirical, name)
        except (FitConvergenceError, InsufficientDataError) as exc:
            logger.warning("Skipping variogram family %s: %s", name, exc)
            diagnostics.append(FamilyFit(family=name, error=str(exc)))
            continue
        diagnostics.append(FamilyFit(family=name, model=model, sse=sse))

    fitted = [d for d in diagnostics if d.succeeded]
    if not fitted:
        raise FitConvergenceError(
            "No candidate variogram family could be fitted: "
            + "; ".join(f"{d.family}: {d.error}" for d in diagnostics)
        )

    best_sse = min(d.sse for d in fitted)
    tolerance = SSE_TIE_RTOL * max(abs(best_sse), 1e-300)
    best = next(d for d in fitted if d.sse - best_sse <= tolerance)
    logger.info("Selected variogram family %s (SSE=%.4g)", best.family, best.sse)
    return VariogramSelection(
        model=best.model,
        sse=best.sse,
        empirical=list(empirical),
        diagnostics=diagnostics,
    )
