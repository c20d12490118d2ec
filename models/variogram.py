"""
Variogram models and the empirical (Matheron) variogram estimator.

Theoretical families use the gstat parameterisation, with range ``a``,
partial sill ``c`` and nugget ``c0``:

    gamma(0)   = 0
    gamma(h>0) = c0 + c * f(h / a)

| family      | f                                      |
|-------------|----------------------------------------|
| Nugget      | 0                                      |
| Spherical   | 1.5 r - 0.5 r^3 for r < 1, else 1      |
| Exponential | 1 - exp(-r)                            |
| Gaussian    | 1 - exp(-r^2)                          |
| Wave        | 1 - sin(r) / r                         |
| HoleEffect  | 1 - cos(pi r) exp(-r)                  |
| Periodic    | 1 - cos(2 pi r)                        |

with r = h / a.  Exponential and Gaussian reach ~95% of the sill at 3a
and sqrt(3)a respectively (gstat convention, not the "practical range").
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from scipy.spatial.distance import pdist

from config import DEFAULT_CUTOFF_FRACTION, DEFAULT_N_BINS
from models.distance import condensed_distances
from models.errors import InsufficientDataError, InvalidParameterError
from models.sample import Sample, sample_coordinates, sample_values

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structure functions f(r), r = h / a, all with f(0) = 0
# ---------------------------------------------------------------------------

def _nugget(r: np.ndarray) -> np.ndarray:
    return np.zeros_like(r)


def _spherical(r: np.ndarray) -> np.ndarray:
    return np.where(r < 1.0, 1.5 * r - 0.5 * r ** 3, 1.0)


def _exponential(r: np.ndarray) -> np.ndarray:
    return 1.0 - np.exp(-r)


def _gaussian(r: np.ndarray) -> np.ndarray:
    return 1.0 - np.exp(-(r ** 2))


def _wave(r: np.ndarray) -> np.ndarray:
    # sin(r)/r -> 1 as r -> 0
    return 1.0 - np.sinc(r / np.pi)


def _hole_effect(r: np.ndarray) -> np.ndarray:
    return 1.0 - np.cos(np.pi * r) * np.exp(-r)


def _periodic(r: np.ndarray) -> np.ndarray:
    return 1.0 - np.cos(2.0 * np.pi * r)


STRUCTURE_FUNCTIONS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "Nugget": _nugget,
    "Spherical": _spherical,
    "Exponential": _exponential,
    "Gaussian": _gaussian,
    "Wave": _wave,
    "HoleEffect": _hole_effect,
    "Periodic": _periodic,
}


def normalize_family(family: str) -> str:
    """Match a family name case-insensitively (also 'hole-effect', 'Sph', ...)."""
    key = family.replace("-", "").replace("_", "").replace(" ", "").lower()
    aliases = {
        "nug": "Nugget",
        "sph": "Spherical",
        "exp": "Exponential",
        "gau": "Gaussian",
        "wav": "Wave",
        "hol": "HoleEffect",
        "per": "Periodic",
    }
    for name in STRUCTURE_FUNCTIONS:
        if key == name.lower():
            return name
    if key in aliases:
        return aliases[key]
    raise InvalidParameterError(
        f"Unknown variogram family '{family}'. Use one of {list(STRUCTURE_FUNCTIONS)}."
    )


def semivariance(
    h: np.ndarray,
    family: str,
    nugget: float,
    partial_sill: float,
    range_: float,
) -> np.ndarray:
    """Evaluate gamma(h) for raw parameters (no validation; used by the fitter)."""
    h = np.asarray(h, dtype=float)
    f = STRUCTURE_FUNCTIONS[family]
    gamma = nugget + partial_sill * f(h / range_)
    return np.where(h > 0.0, gamma, 0.0)


@dataclass(frozen=True)
class VariogramModel:
    """A fitted (or user-supplied) theoretical variogram.

    Args:
        family: One of the names in ``STRUCTURE_FUNCTIONS``.
        nugget: Discontinuity at the origin (>= 0).
        partial_sill: Structured variance above the nugget (>= 0).
        range: Range parameter a (> 0).
    """

    family: str
    nugget: float
    partial_sill: float
    range: float

    def __post_init__(self):
        object.__setattr__(self, "family", normalize_family(self.family))
        for name in ("nugget", "partial_sill", "range"):
            val = getattr(self, name)
            if not math.isfinite(val):
                raise InvalidParameterError(f"Variogram {name} must be finite, got {val}")
        if self.nugget < 0:
            raise InvalidParameterError(f"Variogram nugget must be >= 0, got {self.nugget}")
        if self.partial_sill < 0:
            raise InvalidParameterError(
                f"Variogram partial_sill must be >= 0, got {self.partial_sill}"
            )
        if self.range <= 0:
            raise InvalidParameterError(f"Variogram range must be > 0, got {self.range}")

    @property
    def sill(self) -> float:
        return self.nugget + self.partial_sill

    def __call__(self, h) -> np.ndarray:
        return self.semivariance(h)

    def semivariance(self, h) -> np.ndarray:
        """gamma(h) for an array of lag distances."""
        return semivariance(h, self.family, self.nugget, self.partial_sill, self.range)

    def to_dict(self) -> dict:
        return {
            "family": self.family,
            "nugget": self.nugget,
            "partial_sill": self.partial_sill,
            "range": self.range,
        }


# ---------------------------------------------------------------------------
# Empirical variogram
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EmpiricalVariogramBin:
    """One lag bin of the empirical variogram."""

    lag_distance: float
    semivariance: float
    pair_count: int


class VariogramEstimator:
    """Matheron estimator over fixed-width lag bins.

    For every unordered pair (i, j) the separation h_ij and half squared
    difference 0.5 (z_i - z_j)^2 are computed and averaged per bin.  Pairs
    beyond the cutoff are ignored; a pair exactly at the cutoff lands in
    the last bin.  Cost is O(n^2) in time and memory (n(n-1)/2 pairs).

    Args:
        cutoff_fraction: Default cutoff as a fraction of the maximum
            pairwise distance (one third, as in gstat).
        n_bins: Default number of equal-width bins up to the cutoff.
    """

    def __init__(
        self,
        cutoff_fraction: float = DEFAULT_CUTOFF_FRACTION,
        n_bins: int = DEFAULT_N_BINS,
    ):
        if not (0 < cutoff_fraction <= 1):
            raise InvalidParameterError(
                f"cutoff_fraction must be in (0, 1], got {cutoff_fraction}"
            )
        self.cutoff_fraction = cutoff_fraction
        self.n_bins = n_bins

    def estimate(
        self,
        samples: Sequence[Sample],
        value_field: str = "value",
        max_lag: Optional[float] = None,
        n_bins: Optional[int] = None,
    ) -> List[EmpiricalVariogramBin]:
        """Compute the empirical variogram.

        Returns:
            Non-empty bins only (pair_count >= 1), ordered by lag.

        Raises:
            InsufficientDataError: Fewer than 2 samples, all samples at one
                location, or no pair within the cutoff.
            InvalidParameterError: Non-positive max_lag or n_bins.
        """
        n_bins = self.n_bins if n_bins is None else n_bins
        if int(n_bins) != n_bins or n_bins < 1:
            raise InvalidParameterError(f"n_bins must be a positive integer, got {n_bins}")
        n_bins = int(n_bins)
        if len(samples) < 2:
            raise InsufficientDataError(
                f"Empirical variogram needs at least 2 samples, got {len(samples)}"
            )

        coords = sample_coordinates(samples)
        values = sample_values(samples, value_field)
        h = condensed_distances(coords)
        half_sq = 0.5 * pdist(values.reshape(-1, 1), metric="sqeuclidean")
        logger.debug("Empirical variogram: %d samples, %d pairs", len(samples), len(h))

        if max_lag is None:
            max_lag = self.cutoff_fraction * float(h.max())
            if max_lag <= 0:
                raise InsufficientDataError("All samples share one location")
        elif not (math.isfinite(max_lag) and max_lag > 0):
            raise InvalidParameterError(f"max_lag must be finite and > 0, got {max_lag}")

        width = max_lag / n_bins
        keep = h <= max_lag
        if not keep.any():
            raise InsufficientDataError(f"No sample pairs within max_lag={max_lag:.6g}")

        idx = np.minimum((h[keep] / width).astype(int), n_bins - 1)
        counts = np.bincount(idx, minlength=n_bins)
        sums = np.bincount(idx, weights=half_sq[keep], minlength=n_bins)

        bins = []
        for k in range(n_bins):
            if counts[k] == 0:
                continue
            bins.append(EmpiricalVariogramBin(
                lag_distance=(k + 0.5) * width,
                semivariance=float(sums[k] / counts[k]),
                pair_count=int(counts[k]),
            ))
        return bins


def bins_to_arrays(bins: Sequence[EmpiricalVariogramBin]):
    """Return (lags, semivariances, pair_counts) arrays."""
    lags = np.array([b.lag_distance for b in bins], dtype=float)
    gammas = np.array([b.semivariance for b in bins], dtype=float)
    counts = np.array([b.pair_count for b in bins], dtype=float)
    return lags, gammas, counts
