"""
Inverse Distance Weighting (IDW) interpolator.

Deterministic estimator: each target is a weighted average of the sample
values with weights w_i = 1 / d(t, s_i)^p.  Larger exponents concentrate
influence on the nearest stations (more local, noisier); smaller exponents
smooth toward the global mean.

IDW is a convex combination of the sample values, so predictions never
leave [min(values), max(values)].
"""

import logging
import math
from typing import List, Sequence

import numpy as np

from config import IDW_MIN_SAMPLES
from models.distance import pairwise_distances
from models.errors import InsufficientDataError, InvalidParameterError
from models.sample import (
    PredictionResult,
    Sample,
    as_target,
    sample_coordinates,
    sample_values,
    target_coordinates,
)

logger = logging.getLogger(__name__)


def validate_exponent(exponent: float) -> float:
    """Return ``exponent`` as float, or raise InvalidParameterError."""
    try:
        p = float(exponent)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"IDW exponent must be a number, got {exponent!r}") from exc
    if not math.isfinite(p) or p <= 0:
        raise InvalidParameterError(f"IDW exponent must be finite and > 0, got {exponent}")
    return p


def idw_weights(
    sample_coords: np.ndarray,
    target_coords: np.ndarray,
    exponent: float,
) -> np.ndarray:
    """
    Normalised IDW weights for every (target, sample) pair.

    Distances are rescaled by each row's nearest distance before the power
    is applied, so w = (d_min / d)^p stays in (0, 1] and the normalised
    weights are unaffected by overflow for tiny distances.  A target that
    coincides with a sample gets weight 1 on that sample and 0 elsewhere.

    Returns:
        (M, N) array whose rows sum to 1.
    """
    p = validate_exponent(exponent)
    d = pairwise_distances(target_coords, sample_coords)
    n_targets, n_samples = d.shape
    weights = np.zeros((n_targets, n_samples), dtype=float)

    exact = d == 0.0
    has_exact = exact.any(axis=1)
    if has_exact.any():
        first_hit = np.argmax(exact[has_exact], axis=1)
        weights[np.flatnonzero(has_exact), first_hit] = 1.0

    rest = ~has_exact
    if rest.any():
        d_rest = d[rest]
        d_min = d_rest.min(axis=1, keepdims=True)
        raw = np.power(d_min / d_rest, p)
        weights[rest] = raw / raw.sum(axis=1, keepdims=True)

    return weights


def idw_predict_array(
    sample_coords: np.ndarray,
    values: np.ndarray,
    target_coords: np.ndarray,
    exponent: float,
) -> np.ndarray:
    """Vectorised IDW on plain arrays.

    Args:
        sample_coords: (N, 2) sample locations.
        values: (N,) sample values.
        target_coords: (M, 2) target locations.
        exponent: Distance-decay exponent p > 0.

    Returns:
        (M,) predicted values.
    """
    sample_coords = np.asarray(sample_coords, dtype=float).reshape(-1, 2)
    if len(sample_coords) < 1:
        raise InsufficientDataError("IDW needs at least 1 sample")
    target_coords = np.asarray(target_coords, dtype=float).reshape(-1, 2)
    if len(target_coords) == 0:
        return np.empty(0)
    weights = idw_weights(sample_coords, target_coords, exponent)
    return weights @ np.asarray(values, dtype=float)


class IDWInterpolator:
    """Inverse Distance Weighting over a list of Samples.

    Args:
        value_field: Sample field to interpolate ('value' or 'log_value').
        min_samples: Fewest samples accepted by predict().  LOOCV folds train
            on n - 1 samples and lower this to 1.
    """

    def __init__(self, value_field: str = "value", min_samples: int = IDW_MIN_SAMPLES):
        self.value_field = value_field
        self.min_samples = min_samples

    def predict(
        self,
        samples: Sequence[Sample],
        targets: Sequence,
        exponent: float,
    ) -> List[PredictionResult]:
        """Predict at each target; no variance is produced."""
        validate_exponent(exponent)
        if len(samples) < self.min_samples:
            raise InsufficientDataError(
                f"IDW needs at least {self.min_samples} samples, got {len(samples)}"
            )

        preds = idw_predict_array(
            sample_coordinates(samples),
            sample_values(samples, self.value_field),
            target_coordinates(targets),
            exponent,
        )
        logger.debug(
            "IDW p=%.3g: %d samples -> %d targets", exponent, len(samples), len(preds)
        )
        return [
            PredictionResult(target=as_target(t), predicted_value=float(v))
            for t, v in zip(targets, preds)
        ]

    def predict_one(self, samples: Sequence[Sample], target, exponent: float) -> float:
        """Scalar prediction at a single target (LOOCV predictor shape)."""
        return self.predict(samples, [target], exponent)[0].predicted_value
