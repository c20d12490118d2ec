"""
Sample data model for spatial interpolation.

A Sample is one monitoring-station measurement at a planar (lon/lat treated
as Euclidean) location.  Samples are immutable: transforms return new
Samples carrying a derived field alongside the original value.
"""

import math
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from models.errors import InvalidParameterError

VALUE_FIELDS = ("value", "log_value")


@dataclass(frozen=True)
class Sample:
    """A single pollutant measurement at a monitoring station.

    Args:
        x: Station location, longitude or easting.
        y: Station location, latitude or northing.
        value: Measured concentration (finite).
        log_value: Natural log of ``value``, set by ``log_transform``.
    """

    x: float
    y: float
    value: float
    log_value: Optional[float] = None

    def __post_init__(self):
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Sample location must be finite, got ({self.x}, {self.y})")
        if not math.isfinite(self.value):
            raise ValueError(f"Sample value must be finite, got {self.value}")

    @property
    def location(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def field(self, name: str) -> float:
        """Return the named value field ('value' or 'log_value')."""
        if name not in VALUE_FIELDS:
            raise ValueError(f"Unknown value field '{name}'. Use one of {VALUE_FIELDS}.")
        val = getattr(self, name)
        if val is None:
            raise ValueError(f"Field '{name}' is not populated; apply log_transform first")
        return val


@dataclass(frozen=True)
class PredictionTarget:
    """A location at which a value is to be estimated."""

    x: float
    y: float

    @property
    def location(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class PredictionResult:
    """Predicted value at a target.  Variance is only set by kriging."""

    target: PredictionTarget
    predicted_value: float
    predicted_variance: Optional[float] = None


@dataclass(frozen=True)
class Residual:
    """Leave-one-out residual for one held-out sample."""

    sample_index: int
    observed_value: float
    predicted_value: float

    @property
    def residual(self) -> float:
        return self.observed_value - self.predicted_value


# ---------------------------------------------------------------------------
# Array helpers
# ---------------------------------------------------------------------------

def sample_coordinates(samples: Sequence[Sample]) -> np.ndarray:
    """Return an (N, 2) array of sample locations."""
    return np.array([[s.x, s.y] for s in samples], dtype=float).reshape(-1, 2)


def sample_values(samples: Sequence[Sample], value_field: str = "value") -> np.ndarray:
    """Return an (N,) array of the named value field."""
    return np.array([s.field(value_field) for s in samples], dtype=float)


def target_coordinates(targets: Sequence) -> np.ndarray:
    """Return an (M, 2) array from PredictionTargets, Samples or (x, y) pairs."""
    return np.array([as_target(t).location for t in targets], dtype=float).reshape(-1, 2)


def as_target(obj) -> PredictionTarget:
    """Coerce a Sample, PredictionTarget or (x, y) pair to a PredictionTarget."""
    if isinstance(obj, PredictionTarget):
        return obj
    if hasattr(obj, "x") and hasattr(obj, "y"):
        return PredictionTarget(float(obj.x), float(obj.y))
    x, y = obj
    return PredictionTarget(float(x), float(y))


def targets_from_array(coords: np.ndarray) -> List[PredictionTarget]:
    """Wrap an (M, 2) coordinate array as PredictionTargets."""
    return [PredictionTarget(float(x), float(y)) for x, y in np.asarray(coords)]


# ---------------------------------------------------------------------------
# Value transforms
# ---------------------------------------------------------------------------

def log_transform(samples: Sequence[Sample]) -> List[Sample]:
    """Return new Samples with ``log_value = ln(value)``.

    Raises:
        InvalidParameterError: If any value is not strictly positive.
    """
    bad = [i for i, s in enumerate(samples) if s.value <= 0]
    if bad:
        raise InvalidParameterError(
            f"Log transform needs strictly positive values; "
            f"{len(bad)} sample(s) are <= 0 (first at index {bad[0]})"
        )
    return [replace(s, log_value=math.log(s.value)) for s in samples]


def inverse_log_transform(values):
    """Back-transform log-scale predictions by exponentiation."""
    return np.exp(values)
