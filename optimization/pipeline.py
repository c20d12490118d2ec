"""
Per-pollutant interpolation pipeline.

One parameterised workflow, run once per pollutant with its own
PollutantConfig.  Artifacts are threaded through an explicit state
machine rather than module-level variables:

    Loaded -> ExponentSelected                      (IDW LOOCV sweep)
    Loaded -> VariogramFitted -> Validated          (kriging branch)
    Validated | ExponentSelected -> GridRestricted  (hull-clipped lattice)
    GridRestricted -> Predicted

An unacceptable kriging RMSE never triggers an automatic refit; the
operator re-enters VariogramFitted through ``refit_variogram(family)``.

Log-transformed runs exponentiate predicted values before reporting.
Kriging variance stays on the log scale (known approximation, not a
variance of the back-transformed value).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from config import (
    DEFAULT_CELL_SIZE,
    DEFAULT_N_BINS,
    DEFAULT_VARIOGRAM_FAMILIES,
    NON_PERMISSIBLE_2D_FAMILIES,
    POLLUTANT_DEFAULTS,
)
from models.domain import (
    Bounds,
    ConvexHull,
    ConvexHullDomain,
    Grid,
    bounding_box_grid,
    polygon_bounds,
    restrict_grid,
)
from models.errors import DomainFilterError, InsufficientDataError, InvalidParameterError
from models.idw import IDWInterpolator, validate_exponent
from models.kriging import KrigingInterpolator
from models.sample import (
    VALUE_FIELDS,
    PredictionResult,
    Residual,
    Sample,
    inverse_log_transform,
    log_transform,
    targets_from_array,
)
from models.variogram import VariogramEstimator, VariogramModel, normalize_family
from models.variogram_fit import (
    FamilyFit,
    VariogramModelFitter,
    VariogramSelection,
    select_variogram_model,
)
from optimization.loocv import (
    CrossValidationResult,
    ExponentSweep,
    LOOCVEvaluator,
    cross_validate_idw,
    cross_validate_kriging,
    default_exponent_candidates,
    sweep_idw_exponents,
)

logger = logging.getLogger(__name__)

METHODS = ("kriging", "idw")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class PollutantConfig:
    """Run configuration for one pollutant.

    Args:
        name: Pollutant key (e.g. 'ozone').
        log_transform: Model ln(value) instead of value.
        value_field: Sample field that is modelled.  Derived from
            ``log_transform`` when omitted.
        exponent_candidates: IDW exponents to sweep.
        variogram_families: Candidate families, in tie-break order.
        cell_size: Prediction grid spacing.
        n_bins: Empirical variogram lag bins.
        max_lag: Variogram cutoff (None = one third of the max distance).
        rmse_threshold: Kriging LOOCV RMSE above which the fit is flagged.
        method: 'kriging' or 'idw' for the gridded prediction.
    """

    name: str
    log_transform: bool = False
    value_field: Optional[str] = None
    exponent_candidates: List[float] = field(default_factory=default_exponent_candidates)
    variogram_families: Tuple[str, ...] = DEFAULT_VARIOGRAM_FAMILIES
    cell_size: float = DEFAULT_CELL_SIZE
    n_bins: int = DEFAULT_N_BINS
    max_lag: Optional[float] = None
    rmse_threshold: Optional[float] = None
    method: str = "kriging"

    def __post_init__(self):
        expected = "log_value" if self.log_transform else "value"
        if self.value_field is None:
            self.value_field = expected
        if self.value_field not in VALUE_FIELDS:
            raise ValueError(f"value_field must be one of {VALUE_FIELDS}, got '{self.value_field}'")
        if self.value_field != expected:
            raise ValueError(
                f"value_field '{self.value_field}' is inconsistent with "
                f"log_transform={self.log_transform}"
            )
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got '{self.method}'")
        if not self.variogram_families:
            raise ValueError("variogram_families must not be empty")
        self.variogram_families = tuple(normalize_family(f) for f in self.variogram_families)
        risky = [f for f in self.variogram_families if f in NON_PERMISSIBLE_2D_FAMILIES]
        if risky:
            logger.warning(
                "[%s] %s not valid in 2-D; kriging with them may be rejected",
                self.name, ", ".join(risky),
            )
        if not self.exponent_candidates:
            raise ValueError("exponent_candidates must not be empty")
        if self.cell_size <= 0:
            raise ValueError(f"cell_size must be > 0, got {self.cell_size}")
        if self.rmse_threshold is not None and self.rmse_threshold < 0:
            raise ValueError(f"rmse_threshold must be >= 0, got {self.rmse_threshold}")


def default_pollutant_configs(**overrides) -> Dict[str, PollutantConfig]:
    """One PollutantConfig per entry in POLLUTANT_DEFAULTS.

    Keyword overrides (e.g. ``cell_size=0.25``) apply to every pollutant.
    """
    return {
        name: PollutantConfig(name=name, log_transform=defaults["log_transform"], **overrides)
        for name, defaults in POLLUTANT_DEFAULTS.items()
    }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class PipelineState(Enum):
    EMPTY = "Empty"
    LOADED = "Loaded"
    EXPONENT_SELECTED = "ExponentSelected"
    VARIOGRAM_FITTED = "VariogramFitted"
    VALIDATED = "Validated"
    GRID_RESTRICTED = "GridRestricted"
    PREDICTED = "Predicted"


@dataclass
class PipelineResult:
    """Everything a reporting sink needs from one pollutant run."""

    pollutant: str
    method: str
    log_transform: bool
    n_samples: int
    exponent_sweep: Optional[ExponentSweep] = None
    variogram: Optional[VariogramSelection] = None
    validation: Optional[CrossValidationResult] = None
    rmse_acceptable: Optional[bool] = None
    hull: Optional[ConvexHull] = None
    grid: Optional[Grid] = None
    predictions: List[PredictionResult] = field(default_factory=list)

    @property
    def model(self) -> Optional[VariogramModel]:
        return self.variogram.model if self.variogram else None

    @property
    def idw_rmse(self) -> Optional[float]:
        return self.exponent_sweep.best_rmse if self.exponent_sweep else None

    @property
    def kriging_rmse(self) -> Optional[float]:
        return self.validation.rmse if self.validation else None

    def prediction_raster(self) -> np.ndarray:
        """Predicted values on the full lattice (NaN outside the domain)."""
        if self.grid is None:
            raise RuntimeError("No grid: the run did not reach GridRestricted")
        return self.grid.to_raster(np.array([p.predicted_value for p in self.predictions]))


class InterpolationPipeline:
    """
    Stateful interpolation workflow for one pollutant.

    Calls made out of order raise RuntimeError.  Re-running an earlier step
    discards every artifact that depended on it.

    Args:
        config: Per-pollutant configuration.
        max_workers: Thread count for LOOCV folds (None = sequential).
    """

    def __init__(self, config: PollutantConfig, max_workers: Optional[int] = None):
        self.config = config
        self.evaluator = LOOCVEvaluator(value_field=config.value_field, max_workers=max_workers)
        self.estimator = VariogramEstimator(n_bins=config.n_bins)
        self.fitter = VariogramModelFitter()
        self._reset()

    def _reset(self):
        self.state = PipelineState.EMPTY
        self.samples: List[Sample] = []
        self.exponent_sweep: Optional[ExponentSweep] = None
        self.empirical = None
        self.variogram: Optional[VariogramSelection] = None
        self.validation: Optional[CrossValidationResult] = None
        self.rmse_acceptable: Optional[bool] = None
        self.hull: Optional[ConvexHull] = None
        self.grid: Optional[Grid] = None
        self.predictions: List[PredictionResult] = []

    def _require(self, condition: bool, message: str):
        if not condition:
            raise RuntimeError(f"[{self.config.name}] {message} (state: {self.state.value})")

    def _clear_downstream_of_variogram(self):
        self.validation = None
        self.rmse_acceptable = None
        self.hull = None
        self.grid = None
        self.predictions = []

    # -- Loaded -------------------------------------------------------------

    def load(self, samples: Sequence[Sample]) -> List[Sample]:
        """Take ownership of the samples, applying the configured transform."""
        if not samples:
            raise InsufficientDataError(f"[{self.config.name}] No samples to load")
        self._reset()
        samples = list(samples)
        if self.config.log_transform:
            samples = log_transform(samples)
        self.samples = samples
        self.state = PipelineState.LOADED
        logger.info(
            "[%s] Loaded %d samples (log_transform=%s)",
            self.config.name, len(samples), self.config.log_transform,
        )
        return samples

    # -- ExponentSelected ---------------------------------------------------

    def select_exponent(self) -> ExponentSweep:
        self._require(bool(self.samples), "load() must be called first")
        self.exponent_sweep = sweep_idw_exponents(
            self.samples,
            self.config.exponent_candidates,
            value_field=self.config.value_field,
            evaluator=self.evaluator,
        )
        if self.state == PipelineState.LOADED:
            self.state = PipelineState.EXPONENT_SELECTED
        return self.exponent_sweep

    # -- VariogramFitted ----------------------------------------------------

    def fit_variogram(self) -> VariogramSelection:
        """Estimate the empirical variogram and pick the min-SSE family."""
        self._require(bool(self.samples), "load() must be called first")
        self.empirical = self.estimator.estimate(
            self.samples,
            value_field=self.config.value_field,
            max_lag=self.config.max_lag,
        )
        self.variogram = select_variogram_model(
            self.empirical, self.config.variogram_families, self.fitter,
        )
        self._clear_downstream_of_variogram()
        self.state = PipelineState.VARIOGRAM_FITTED
        return self.variogram

    def refit_variogram(self, family: str) -> VariogramSelection:
        """Operator override: replace the selected model with ``family``.

        Re-enters VariogramFitted; validation must be re-run.
        """
        self._require(self.empirical is not None, "fit_variogram() must be called first")
        name = normalize_family(family)
        model, sse = self.fitter.fit(self.empirical, name)
        diagnostics = list(self.variogram.diagnostics) if self.variogram else []
        if not any(d.family == name for d in diagnostics):
            diagnostics.append(FamilyFit(family=name, model=model, sse=sse))
        self.variogram = VariogramSelection(
            model=model, sse=sse, empirical=list(self.empirical), diagnostics=diagnostics,
        )
        self._clear_downstream_of_variogram()
        self.state = PipelineState.VARIOGRAM_FITTED
        logger.info("[%s] Refitted variogram as %s (SSE=%.4g)", self.config.name, name, sse)
        return self.variogram

    # -- Validated ----------------------------------------------------------

    def validate(self) -> CrossValidationResult:
        """Kriging LOOCV with the current variogram model."""
        self._require(
            self.state in (PipelineState.VARIOGRAM_FITTED, PipelineState.VALIDATED),
            "fit_variogram() must precede validate()",
        )
        self.validation = cross_validate_kriging(
            self.samples, self.variogram.model, self.config.value_field, self.evaluator,
        )
        threshold = self.config.rmse_threshold
        self.rmse_acceptable = threshold is None or self.validation.rmse <= threshold
        if not self.rmse_acceptable:
            logger.warning(
                "[%s] Kriging LOOCV RMSE %.4g exceeds threshold %.4g; "
                "consider refit_variogram() with another family",
                self.config.name, self.validation.rmse, threshold,
            )
        else:
            logger.info("[%s] Kriging LOOCV RMSE %.4g", self.config.name, self.validation.rmse)
        self.state = PipelineState.VALIDATED
        return self.validation

    # -- GridRestricted -----------------------------------------------------

    def restrict_grid(
        self,
        cell_size: Optional[float] = None,
        bounds: Optional[Bounds] = None,
        region: Optional[Sequence] = None,
        allow_bounding_box: bool = False,
    ) -> Grid:
        """
        Build the prediction lattice and clip it to the sample hull.

        Args:
            cell_size: Overrides ``config.cell_size``.
            bounds: Lattice extent; defaults to the hull extent.
            region: Region boundary polygon seeding the extent (used when
                ``bounds`` is not given).
            allow_bounding_box: On a degenerate hull, keep the whole
                lattice instead of raising DomainFilterError.
        """
        if self.config.method == "kriging":
            self._require(
                self.validation is not None,
                "validate() must precede restrict_grid() for kriging",
            )
        else:
            self._require(
                self.exponent_sweep is not None,
                "select_exponent() must precede restrict_grid() for IDW",
            )
        cell_size = cell_size or self.config.cell_size
        if bounds is None and region is not None:
            bounds = polygon_bounds(region)

        try:
            self.hull = ConvexHullDomain.hull(self.samples)
            self.grid = restrict_grid(self.hull, cell_size, bounds)
        except DomainFilterError:
            if not allow_bounding_box:
                raise
            self.hull = None
            extent = bounds or polygon_bounds([s.location for s in self.samples])
            logger.warning(
                "[%s] Degenerate hull; falling back to bounding box %s",
                self.config.name, extent,
            )
            self.grid = bounding_box_grid(extent, cell_size)

        self.predictions = []
        self.state = PipelineState.GRID_RESTRICTED
        logger.info(
            "[%s] Prediction grid: %d of %d cells in domain",
            self.config.name, int(self.grid.mask.sum()), self.grid.mask.size,
        )
        return self.grid

    # -- Predicted ----------------------------------------------------------

    def predict(self, method: Optional[str] = None) -> List[PredictionResult]:
        """Predict over the restricted grid, reported on the original scale."""
        self._require(self.grid is not None, "restrict_grid() must precede predict()")
        method = method or self.config.method
        if method not in METHODS:
            raise InvalidParameterError(f"method must be one of {METHODS}, got '{method}'")

        targets = targets_from_array(self.grid.points)
        if method == "kriging":
            self._require(self.variogram is not None, "kriging needs a fitted variogram")
            results = KrigingInterpolator(self.config.value_field).predict(
                self.samples, targets, self.variogram.model,
            )
        else:
            self._require(self.exponent_sweep is not None, "IDW needs a selected exponent")
            results = IDWInterpolator(self.config.value_field).predict(
                self.samples, targets, self.exponent_sweep.best_exponent,
            )

        if self.config.log_transform:
            results = [
                replace(r, predicted_value=float(inverse_log_transform(r.predicted_value)))
                for r in results
            ]
        self.predictions = results
        self.state = PipelineState.PREDICTED
        logger.info("[%s] Predicted %d cells by %s", self.config.name, len(results), method)
        return results

    # -- Full run -----------------------------------------------------------

    def result(self) -> PipelineResult:
        return PipelineResult(
            pollutant=self.config.name,
            method=self.config.method,
            log_transform=self.config.log_transform,
            n_samples=len(self.samples),
            exponent_sweep=self.exponent_sweep,
            variogram=self.variogram,
            validation=self.validation,
            rmse_acceptable=self.rmse_acceptable,
            hull=self.hull,
            grid=self.grid,
            predictions=list(self.predictions),
        )

    def run(
        self,
        samples: Sequence[Sample],
        region: Optional[Sequence] = None,
        allow_bounding_box: bool = False,
    ) -> PipelineResult:
        """Load, select the IDW exponent, fit and validate the variogram
        (kriging runs only), restrict the grid and predict."""
        self.load(samples)
        self.select_exponent()
        if self.config.method == "kriging":
            self.fit_variogram()
            self.validate()
        self.restrict_grid(region=region, allow_bounding_box=allow_bounding_box)
        self.predict()
        return self.result()


def run_pipelines(
    samples_by_pollutant: Mapping[str, Sequence[Sample]],
    configs: Optional[Mapping[str, PollutantConfig]] = None,
    max_workers: Optional[int] = None,
    region: Optional[Sequence] = None,
) -> Dict[str, PipelineResult]:
    """
    Run independent pollutant pipelines, optionally in a thread pool.

    Returns:
        Results keyed by pollutant, in the order of ``samples_by_pollutant``.
    """
    configs = configs if configs is not None else default_pollutant_configs()
    names = list(samples_by_pollutant)
    missing = [n for n in names if n not in configs]
    if missing:
        raise ValueError(f"No configuration for pollutant(s): {missing}")

    def _run(name: str) -> PipelineResult:
        return InterpolationPipeline(configs[name]).run(samples_by_pollutant[name], region=region)

    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(_run, names))
    else:
        results = [_run(n) for n in names]
    return dict(zip(names, results))


# ---------------------------------------------------------------------------
# Stateless entry points
# ---------------------------------------------------------------------------

def select_idw_exponent(
    samples: Sequence[Sample],
    candidate_exponents: Optional[Sequence[float]] = None,
    value_field: str = "value",
) -> Tuple[float, float]:
    """Best IDW exponent by LOOCV RMSE.

    Returns:
        (best_exponent, rmse)
    """
    sweep = sweep_idw_exponents(samples, candidate_exponents, value_field)
    return sweep.best_exponent, sweep.best_rmse


def fit_variogram(
    samples: Sequence[Sample],
    candidate_families: Sequence[str] = DEFAULT_VARIOGRAM_FAMILIES,
    value_field: str = "value",
    max_lag: Optional[float] = None,
    n_bins: Optional[int] = None,
) -> Tuple[VariogramModel, float, List[FamilyFit]]:
    """Empirical variogram plus min-SSE family selection.

    Returns:
        (best_model, sse, per-family diagnostics)
    """
    empirical = VariogramEstimator().estimate(
        samples, value_field=value_field, max_lag=max_lag, n_bins=n_bins,
    )
    selection = select_variogram_model(empirical, candidate_families)
    return selection.model, selection.sse, selection.diagnostics


def _param(params, key):
    if isinstance(params, Mapping):
        return params[key]
    return params


def cross_validate(
    samples: Sequence[Sample],
    predictor_kind: str,
    params,
    value_field: str = "value",
) -> Tuple[float, List[Residual]]:
    """
    LOOCV for either predictor.

    Args:
        predictor_kind: 'idw' or 'kriging'.
        params: The exponent (IDW) or VariogramModel (kriging), bare or as
            ``{"exponent": p}`` / ``{"model": m}``.

    Returns:
        (rmse, residuals)
    """
    if predictor_kind == "idw":
        result = cross_validate_idw(samples, _param(params, "exponent"), value_field)
    elif predictor_kind == "kriging":
        result = cross_validate_kriging(samples, _param(params, "model"), value_field)
    else:
        raise InvalidParameterError(
            f"predictor_kind must be one of {METHODS}, got '{predictor_kind}'"
        )
    return result.rmse, result.residuals


def interpolate_grid(
    samples: Sequence[Sample],
    model_or_exponent: Union[VariogramModel, float],
    domain: Union[ConvexHull, Sequence, None] = None,
    cell_size: float = DEFAULT_CELL_SIZE,
    value_field: str = "value",
) -> List[PredictionResult]:
    """
    Predict over a hull-clipped regular lattice.

    ``model_or_exponent`` selects the method: a VariogramModel means
    kriging, a number means IDW.  ``domain`` is either a ConvexHull (used
    as is) or a region polygon that only seeds the lattice extent; the
    clipping hull is then computed from the sample locations.
    """
    if isinstance(domain, ConvexHull):
        grid = restrict_grid(domain, cell_size)
    else:
        hull = ConvexHullDomain.hull(samples)
        bounds = polygon_bounds(domain) if domain is not None else None
        grid = restrict_grid(hull, cell_size, bounds)

    targets = targets_from_array(grid.points)
    if isinstance(model_or_exponent, VariogramModel):
        return KrigingInterpolator(value_field).predict(samples, targets, model_or_exponent)
    exponent = validate_exponent(model_or_exponent)
    return IDWInterpolator(value_field).predict(samples, targets, exponent)
