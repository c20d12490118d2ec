"""
Mock Data for the Air-Quality Spatial Interpolation System.

Provides a synthetic network of monitoring stations over an Intermountain
West lon/lat extent, with ozone, NO2 and PM2.5 readings built from smooth
spatial trends plus station noise.  Designed to be swapped out for real
monitoring-network exports later (see data/interfaces.py).
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from config import MOCK_REGION_BOUNDS, MOCK_SEED, MOCK_STATION_COUNT
from models.sample import Sample

# Urban centres driving the NO2 and PM2.5 hot spots (lon, lat, strength)
URBAN_CENTERS = [
    (-112.07, 33.45, 1.0),   # Phoenix
    (-111.89, 40.76, 0.9),   # Salt Lake City
    (-104.99, 39.74, 0.9),   # Denver
    (-115.14, 36.17, 0.7),   # Las Vegas
    (-110.97, 32.22, 0.5),   # Tucson
    (-106.65, 35.08, 0.5),   # Albuquerque
    (-116.20, 43.62, 0.4),   # Boise
    (-104.82, 41.14, 0.3),   # Cheyenne
]


def get_station_locations(
    n_stations: int = MOCK_STATION_COUNT,
    bounds: Tuple[float, float, float, float] = MOCK_REGION_BOUNDS,
    seed: int = MOCK_SEED,
) -> np.ndarray:
    """
    Return (N, 2) station coordinates (lon, lat) scattered over ``bounds``.

    Locations are drawn uniformly and rounded to 4 decimals; the draw is
    repeated until every location is distinct.
    """
    rng = np.random.default_rng(seed)
    lon_min, lon_max, lat_min, lat_max = bounds
    locs = np.empty((0, 2))
    while len(locs) < n_stations:
        draw = np.column_stack([
            rng.uniform(lon_min, lon_max, n_stations),
            rng.uniform(lat_min, lat_max, n_stations),
        ]).round(4)
        locs = np.unique(np.vstack([locs, draw]), axis=0)
    # np.unique sorts; shuffle so station order carries no spatial pattern
    return locs[rng.permutation(len(locs))[:n_stations]]


def _urban_signal(locs: np.ndarray, scale_deg: float) -> np.ndarray:
    signal = np.zeros(len(locs))
    for lon, lat, strength in URBAN_CENTERS:
        d2 = (locs[:, 0] - lon) ** 2 + (locs[:, 1] - lat) ** 2
        signal += strength * np.exp(-d2 / (2.0 * scale_deg ** 2))
    return signal


def get_pollutant_fields(
    locs: np.ndarray,
    seed: int = MOCK_SEED,
) -> Dict[str, np.ndarray]:
    """
    Synthetic readings at ``locs`` for each pollutant.

    ozone (ppb):   regional south-north gradient, multiplicative noise
    no2 (ppb):     urban hot spots, multiplicative noise (right-skewed)
    pm25 (ug/m3):  west-east gradient plus a weaker urban term, additive noise

    Ozone and NO2 are strictly positive by construction (log-normal).
    """
    rng = np.random.default_rng(seed + 1)
    lon, lat = locs[:, 0], locs[:, 1]
    lon_c = 0.5 * (lon.min() + lon.max())
    lat_c = 0.5 * (lat.min() + lat.max())

    log_ozone = (
        np.log(42.0)
        - 0.04 * (lat - lat_c)
        + 0.05 * np.sin(0.8 * (lon - lon_c))
        + rng.normal(0.0, 0.04, len(locs))
    )
    log_no2 = (
        np.log(6.0)
        + 1.4 * _urban_signal(locs, scale_deg=0.6)
        + rng.normal(0.0, 0.15, len(locs))
    )
    pm25 = (
        9.0
        + 0.35 * (lon - lon_c)
        + 2.5 * _urban_signal(locs, scale_deg=1.0)
        + rng.normal(0.0, 0.6, len(locs))
    )
    return {
        "ozone": np.exp(log_ozone),
        "no2": np.exp(log_no2),
        "pm25": np.maximum(pm25, 0.5),
    }


def get_station_samples(
    n_stations: int = MOCK_STATION_COUNT,
    seed: int = MOCK_SEED,
    pollutants: Optional[Sequence[str]] = None,
) -> Dict[str, List[Sample]]:
    """
    Return the synthetic network as Samples keyed by pollutant.

    Every pollutant is observed at every station.
    """
    locs = get_station_locations(n_stations, seed=seed)
    fields = get_pollutant_fields(locs, seed=seed)
    names = list(pollutants) if pollutants is not None else list(fields)
    unknown = [n for n in names if n not in fields]
    if unknown:
        raise ValueError(f"Unknown pollutant(s) {unknown}. Use one of {list(fields)}.")
    return {
        name: [
            Sample(x=float(x), y=float(y), value=float(v))
            for (x, y), v in zip(locs, fields[name])
        ]
        for name in names
    }


def get_region_boundary() -> List[Tuple[float, float]]:
    """
    Return the study-region boundary as a closed (lon, lat) ring.

    A coarse Intermountain West outline (Nevada to the Front Range,
    southern Idaho to the Mexican border) inside MOCK_REGION_BOUNDS; used
    only to seed the prediction extent.
    """
    return [
        (-120.0, 39.0),
        (-117.0, 35.0),
        (-114.6, 32.7),
        (-111.0, 31.3),
        (-108.2, 31.3),
        (-103.0, 32.0),
        (-102.0, 37.0),
        (-102.0, 41.0),
        (-104.0, 45.0),
        (-111.0, 45.0),
        (-117.0, 44.5),
        (-120.0, 42.0),
        (-120.0, 39.0),
    ]


# ---------------------------------------------------------------------------
# Small reference datasets
# ---------------------------------------------------------------------------

def get_linear_gradient_samples() -> List[Sample]:
    """Five stations with value = 10 + 2x + y exactly."""
    locs = [(0.0, 0.0), (4.0, 0.0), (0.0, 3.0), (4.0, 3.0), (1.0, 2.0)]
    return [Sample(x=x, y=y, value=10.0 + 2.0 * x + y) for x, y in locs]


def get_pure_noise_samples(
    n: int = 60,
    seed: int = MOCK_SEED,
    mean: float = 50.0,
    sd: float = 2.0,
) -> List[Sample]:
    """Independent readings with no spatial structure (pure nugget)."""
    rng = np.random.default_rng(seed)
    xy = rng.uniform(0.0, 10.0, size=(n, 2))
    z = rng.normal(mean, sd, n)
    return [Sample(x=float(x), y=float(y), value=float(v)) for (x, y), v in zip(xy, z)]


def get_noisy_trend_samples(
    n: int = 10,
    seed: int = MOCK_SEED,
    noise_sd: float = 0.5,
) -> List[Sample]:
    """A smooth surface sampled at ``n`` random stations with added noise."""
    rng = np.random.default_rng(seed)
    xy = rng.uniform(0.0, 10.0, size=(n, 2))
    trend = 20.0 + 1.5 * xy[:, 0] + 3.0 * np.sin(xy[:, 1] / 2.0)
    z = trend + rng.normal(0.0, noise_sd, n)
    return [Sample(x=float(x), y=float(y), value=float(v)) for (x, y), v in zip(xy, z)]
