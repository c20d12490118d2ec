"""
Ordinary Kriging.

Best linear unbiased predictor under a constant but unknown mean.  For n
samples the (n+1) x (n+1) system

    | Gamma  1 | | lambda |   | gamma_0 |
    | 1^T    0 | |   mu   | = |    1    |

is factored once per sample set and solved for every target, where
Gamma_ij = gamma(|s_i - s_j|) (zero on the diagonal) and gamma_0 holds
gamma(|t - s_i|).  The last row enforces sum(lambda) = 1.

    prediction = sum(lambda_i * z_i)
    variance   = sum(lambda_i * gamma_0_i) + mu
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from scipy.linalg import LinAlgError, lu_factor, lu_solve

from config import (
    KRIGING_MAX_CONDITION,
    KRIGING_MIN_SAMPLES,
    KRIGING_NEGATIVE_VARIANCE_RTOL,
    KRIGING_WEIGHT_SUM_TOLERANCE,
)
from models.distance import pairwise_distances
from models.errors import InsufficientDataError, SingularSystemError
from models.sample import (
    PredictionResult,
    Sample,
    as_target,
    sample_coordinates,
    sample_values,
    target_coordinates,
)
from models.variogram import VariogramModel

logger = logging.getLogger(__name__)


def check_kriging_support(coords: np.ndarray) -> None:
    """Raise InsufficientDataError unless there are >= 3 non-collinear points."""
    n = len(coords)
    if n < KRIGING_MIN_SAMPLES:
        raise InsufficientDataError(
            f"Kriging needs at least {KRIGING_MIN_SAMPLES} samples, got {n}"
        )
    centered = coords - coords.mean(axis=0)
    if np.linalg.matrix_rank(centered) < 2:
        raise InsufficientDataError("Kriging samples are collinear")


@dataclass
class KrigingSystem:
    """A factored ordinary-kriging system for one sample set."""

    coords: np.ndarray
    values: np.ndarray
    model: VariogramModel
    lu: tuple
    condition_number: float

    @property
    def n(self) -> int:
        return len(self.coords)

    def solve(self, target_coords: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Solve for weights at each target.

        Returns:
            (weights (M, N), lagrange (M,), gamma_0 (M, N))
        """
        gamma_0 = self.model.semivariance(pairwise_distances(target_coords, self.coords))
        rhs = np.vstack([gamma_0.T, np.ones((1, len(target_coords)))])
        sol = lu_solve(self.lu, rhs)
        weights = sol[: self.n].T
        lagrange = sol[self.n]

        if not np.all(np.isfinite(sol)):
            raise SingularSystemError(
                f"{self.model.family} kriging solve produced non-finite weights"
            )
        drift = np.abs(weights.sum(axis=1) - 1.0)
        if np.any(drift > KRIGING_WEIGHT_SUM_TOLERANCE):
            raise SingularSystemError(
                f"{self.model.family} kriging weights fail the unbiasedness constraint "
                f"(max |sum - 1| = {drift.max():.3g})"
            )
        return weights, lagrange, gamma_0


def build_kriging_system(
    coords: np.ndarray,
    values: np.ndarray,
    model: VariogramModel,
    max_condition: float = KRIGING_MAX_CONDITION,
) -> KrigingSystem:
    """Assemble and LU-factor the ordinary-kriging matrix.

    Raises:
        InsufficientDataError: Fewer than 3 samples, or collinear samples.
        SingularSystemError: Singular or ill-conditioned matrix (duplicate
            locations, zero-sill model, ...).
    """
    coords = np.asarray(coords, dtype=float).reshape(-1, 2)
    check_kriging_support(coords)
    n = len(coords)

    A = np.zeros((n + 1, n + 1))
    A[:n, :n] = model.semivariance(pairwise_distances(coords, coords))
    A[:n, n] = 1.0
    A[n, :n] = 1.0

    cond = float(np.linalg.cond(A))
    if not np.isfinite(cond) or cond > max_condition:
        raise SingularSystemError(
            f"Kriging matrix for the {model.family} model is singular or ill-conditioned "
            f"(condition number {cond:.3g} > {max_condition:.3g}); "
            f"check for duplicate locations or retry with a nugget"
        )
    try:
        lu = lu_factor(A)
    except (LinAlgError, ValueError) as exc:
        raise SingularSystemError(f"{model.family} kriging matrix factorisation failed: {exc}") from exc

    logger.debug("Kriging system: n=%d, cond=%.3g, model=%s", n, cond, model.family)
    return KrigingSystem(
        coords=coords,
        values=np.asarray(values, dtype=float),
        model=model,
        lu=lu,
        condition_number=cond,
    )


def clip_variances(variances: np.ndarray, model: VariogramModel) -> np.ndarray:
    """Zero out round-off negatives; reject variances that are truly negative.

    Ordinary-kriging variance is non-negative for a permissible model, so
    anything below -KRIGING_NEGATIVE_VARIANCE_RTOL * sill means the model is
    not conditionally negative definite for this sample configuration.

    Raises:
        SingularSystemError: A variance below the round-off tolerance.
    """
    variances = np.asarray(variances, dtype=float)
    if len(variances) == 0:
        return variances
    floor = -KRIGING_NEGATIVE_VARIANCE_RTOL * max(model.sill, np.finfo(float).tiny)
    lowest = float(variances.min())
    if lowest < floor:
        raise SingularSystemError(
            f"{model.family} model gives a negative kriging variance ({lowest:.3g}); "
            f"the model is not valid for this sample configuration"
        )
    return np.maximum(variances, 0.0)


def kriging_predict_array(
    sample_coords: np.ndarray,
    values: np.ndarray,
    target_coords: np.ndarray,
    model: VariogramModel,
) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorised ordinary kriging on plain arrays.

    Returns:
        (predictions (M,), variances (M,))
    """
    system = build_kriging_system(sample_coords, values, model)
    target_coords = np.asarray(target_coords, dtype=float).reshape(-1, 2)
    if len(target_coords) == 0:
        return np.empty(0), np.empty(0)
    weights, lagrange, gamma_0 = system.solve(target_coords)
    preds = weights @ system.values
    variances = np.sum(weights * gamma_0, axis=1) + lagrange
    return preds, clip_variances(variances, model)


class KrigingInterpolator:
    """Ordinary kriging over a list of Samples.

    Args:
        value_field: Sample field to interpolate ('value' or 'log_value').
    """

    def __init__(self, value_field: str = "value"):
        self.value_field = value_field

    def system(self, samples: Sequence[Sample], model: VariogramModel) -> KrigingSystem:
        return build_kriging_system(
            sample_coordinates(samples),
            sample_values(samples, self.value_field),
            model,
        )

    def weights(
        self,
        samples: Sequence[Sample],
        targets: Sequence,
        model: VariogramModel,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Kriging weights (M, N) and Lagrange multipliers (M,) per target."""
        weights, lagrange, _ = self.system(samples, model).solve(target_coordinates(targets))
        return weights, lagrange

    def predict(
        self,
        samples: Sequence[Sample],
        targets: Sequence,
        model: VariogramModel,
    ) -> List[PredictionResult]:
        """Predict value and kriging variance at each target."""
        preds, variances = kriging_predict_array(
            sample_coordinates(samples),
            sample_values(samples, self.value_field),
            target_coordinates(targets),
            model,
        )
        return [
            PredictionResult(
                target=as_target(t),
                predicted_value=float(v),
                predicted_variance=float(s2),
            )
            for t, v, s2 in zip(targets, preds, variances)
        ]

    def predict_one(self, samples: Sequence[Sample], target, model: VariogramModel) -> float:
        """Scalar prediction at a single target (LOOCV predictor shape)."""
        return self.predict(samples, [target], model)[0].predicted_value
