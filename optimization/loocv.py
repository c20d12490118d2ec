"""
Leave-One-Out Cross-Validation.

Exact LOOCV (nfold = n): every sample is held out once, predicted from
the remaining n - 1, and its residual recorded.  Residuals are collected
in sample order, so the RMSE is bit-reproducible whether folds run
sequentially or in a thread pool.

Also hosts the IDW exponent sweep, which picks the candidate with the
lowest LOOCV RMSE (ties go to the smallest exponent).
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from config import (
    IDW_EXPONENT_MAX,
    IDW_EXPONENT_MIN,
    IDW_EXPONENT_STEP,
    IDW_MIN_SAMPLES,
    KRIGING_MIN_SAMPLES,
)
from models.errors import (
    InsufficientDataError,
    InterpolationError,
    InvalidParameterError,
)
from models.idw import IDWInterpolator, validate_exponent
from models.kriging import KrigingInterpolator
from models.sample import Residual, Sample
from models.variogram import VariogramModel

logger = logging.getLogger(__name__)

# predictor(train_samples, held_out_target) -> predicted value
Predictor = Callable[[List[Sample], Sample], float]


@dataclass
class CrossValidationResult:
    """RMSE and per-sample residuals of one LOOCV run."""

    rmse: float
    residuals: List[Residual]

    @property
    def observed(self) -> np.ndarray:
        return np.array([r.observed_value for r in self.residuals])

    @property
    def predicted(self) -> np.ndarray:
        return np.array([r.predicted_value for r in self.residuals])

    @property
    def errors(self) -> np.ndarray:
        return np.array([r.residual for r in self.residuals])


def rmse_from_residuals(residuals: Sequence[Residual]) -> float:
    """sqrt(mean(residual^2)), accumulated in residual order."""
    errs = np.array([r.residual for r in residuals], dtype=float)
    return float(np.sqrt(np.mean(errs ** 2)))


class LOOCVEvaluator:
    """Generic leave-one-out driver.

    Args:
        value_field: Sample field holding the observed value.
        max_workers: Run folds in a thread pool when > 1.  Each fold builds
            its own training list; no fit state is shared between folds.
    """

    def __init__(self, value_field: str = "value", max_workers: Optional[int] = None):
        self.value_field = value_field
        self.max_workers = max_workers

    def _fold(self, samples: Sequence[Sample], predictor: Predictor, i: int) -> Residual:
        train = list(samples[:i]) + list(samples[i + 1:])
        held_out = samples[i]
        pred = float(predictor(train, held_out))
        if not math.isfinite(pred):
            raise InterpolationError(f"Predictor returned {pred} for held-out sample {i}")
        return Residual(
            sample_index=i,
            observed_value=held_out.field(self.value_field),
            predicted_value=pred,
        )

    def evaluate(
        self,
        samples: Sequence[Sample],
        predictor: Predictor,
        min_samples: int = 2,
    ) -> CrossValidationResult:
        """Run LOOCV and return RMSE plus the full residual list."""
        n = len(samples)
        if n < min_samples:
            raise InsufficientDataError(
                f"LOOCV needs at least {min_samples} samples, got {n}"
            )

        if self.max_workers and self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                residuals = list(pool.map(lambda i: self._fold(samples, predictor, i), range(n)))
        else:
            residuals = [self._fold(samples, predictor, i) for i in range(n)]

        return CrossValidationResult(rmse=rmse_from_residuals(residuals), residuals=residuals)


# ---------------------------------------------------------------------------
# Predictor factories
# ---------------------------------------------------------------------------

def idw_predictor(exponent: float, value_field: str = "value") -> Predictor:
    """LOOCV predictor wrapping IDW at a fixed exponent."""
    validate_exponent(exponent)
    interp = IDWInterpolator(value_field=value_field, min_samples=1)
    return lambda train, target: interp.predict_one(train, target, exponent)


def kriging_predictor(model: VariogramModel, value_field: str = "value") -> Predictor:
    """LOOCV predictor wrapping ordinary kriging with a fixed variogram."""
    interp = KrigingInterpolator(value_field=value_field)
    return lambda train, target: interp.predict_one(train, target, model)


def cross_validate_idw(
    samples: Sequence[Sample],
    exponent: float,
    value_field: str = "value",
    evaluator: Optional[LOOCVEvaluator] = None,
) -> CrossValidationResult:
    evaluator = evaluator or LOOCVEvaluator(value_field=value_field)
    return evaluator.evaluate(
        samples, idw_predictor(exponent, value_field), min_samples=IDW_MIN_SAMPLES,
    )


def cross_validate_kriging(
    samples: Sequence[Sample],
    model: VariogramModel,
    value_field: str = "value",
    evaluator: Optional[LOOCVEvaluator] = None,
) -> CrossValidationResult:
    """Kriging LOOCV; every fold must keep >= 3 non-collinear samples."""
    evaluator = evaluator or LOOCVEvaluator(value_field=value_field)
    return evaluator.evaluate(
        samples, kriging_predictor(model, value_field), min_samples=KRIGING_MIN_SAMPLES + 1,
    )


# ---------------------------------------------------------------------------
# IDW exponent sweep
# ---------------------------------------------------------------------------

def default_exponent_candidates() -> List[float]:
    """IDW_EXPONENT_MIN .. IDW_EXPONENT_MAX inclusive, in IDW_EXPONENT_STEP steps."""
    n = int(round((IDW_EXPONENT_MAX - IDW_EXPONENT_MIN) / IDW_EXPONENT_STEP)) + 1
    return [round(IDW_EXPONENT_MIN + k * IDW_EXPONENT_STEP, 10) for k in range(n)]


@dataclass
class ExponentSweep:
    """Outcome of an IDW exponent sweep."""

    best_exponent: float
    best_rmse: float
    scores: List[Tuple[float, float]] = field(default_factory=list)
    skipped: List[Tuple[object, str]] = field(default_factory=list)
    best_result: Optional[CrossValidationResult] = None


def sweep_idw_exponents(
    samples: Sequence[Sample],
    candidates: Optional[Sequence[float]] = None,
    value_field: str = "value",
    evaluator: Optional[LOOCVEvaluator] = None,
) -> ExponentSweep:
    """
    Evaluate LOOCV RMSE for every candidate exponent and keep the best.

    Candidates are swept in ascending order; a candidate only replaces the
    current best on a strictly lower RMSE, so ties keep the smallest
    exponent.  Candidates that raise InvalidParameterError are skipped.

    Raises:
        InsufficientDataError: Fewer than IDW_MIN_SAMPLES samples.
        InvalidParameterError: Every candidate was invalid.
    """
    if len(samples) < IDW_MIN_SAMPLES:
        raise InsufficientDataError(
            f"IDW exponent selection needs at least {IDW_MIN_SAMPLES} samples, "
            f"got {len(samples)}"
        )
    if candidates is None:
        candidates = default_exponent_candidates()
    evaluator = evaluator or LOOCVEvaluator(value_field=value_field)

    valid: List[float] = []
    skipped: List[Tuple[object, str]] = []
    for cand in candidates:
        try:
            valid.append(validate_exponent(cand))
        except InvalidParameterError as exc:
            logger.warning("Skipping IDW exponent %r: %s", cand, exc)
            skipped.append((cand, str(exc)))

    scores: List[Tuple[float, float]] = []
    best: Optional[Tuple[float, CrossValidationResult]] = None
    for p in sorted(valid):
        try:
            result = cross_validate_idw(samples, p, value_field, evaluator)
        except InvalidParameterError as exc:
            logger.warning("Skipping IDW exponent %r: %s", p, exc)
            skipped.append((p, str(exc)))
            continue
        scores.append((p, result.rmse))
        logger.debug("IDW exponent %.3g: LOOCV RMSE %.6g", p, result.rmse)
        if best is None or result.rmse < best[1].rmse:
            best = (p, result)

    if best is None:
        raise InvalidParameterError(
            f"No valid IDW exponent among candidates {list(candidates)!r}"
        )

    logger.info("Selected IDW exponent %.3g (LOOCV RMSE %.6g)", best[0], best[1].rmse)
    return ExponentSweep(
        best_exponent=best[0],
        best_rmse=best[1].rmse,
        scores=scores,
        skipped=skipped,
        best_result=best[1],
    )
