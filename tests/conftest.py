"""Shared fixtures for the Air-Quality Spatial Interpolation test suite."""

import sys
import os
import pytest
import numpy as np

# Ensure project root is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture
def square_samples():
    """Four corners of a unit square plus its centre."""
    from models.sample import Sample
    return [
        Sample(x=0.0, y=0.0, value=1.0),
        Sample(x=1.0, y=0.0, value=2.0),
        Sample(x=0.0, y=1.0, value=3.0),
        Sample(x=1.0, y=1.0, value=4.0),
        Sample(x=0.5, y=0.5, value=2.5),
    ]


@pytest.fixture
def gradient_samples():
    """Five stations with value = 10 + 2x + y."""
    from data.mock_data import get_linear_gradient_samples
    return get_linear_gradient_samples()


@pytest.fixture
def noisy_samples():
    """Ten stations on a smooth surface with added noise."""
    from data.mock_data import get_noisy_trend_samples
    return get_noisy_trend_samples(n=10, seed=7)


@pytest.fixture
def nugget_samples():
    """Sixty stations with no spatial structure."""
    from data.mock_data import get_pure_noise_samples
    return get_pure_noise_samples(n=60, seed=11)


@pytest.fixture
def structured_samples():
    """Forty stations on a smooth field (strong spatial correlation)."""
    from models.sample import Sample
    rng = np.random.default_rng(3)
    xy = rng.uniform(0.0, 10.0, size=(40, 2))
    z = 5.0 + np.sin(xy[:, 0] / 3.0) + np.cos(xy[:, 1] / 4.0)
    return [Sample(x=float(x), y=float(y), value=float(v)) for (x, y), v in zip(xy, z)]


@pytest.fixture
def positive_samples(structured_samples):
    """Strictly positive readings for log-transform runs."""
    from models.sample import Sample
    return [Sample(x=s.x, y=s.y, value=float(np.exp(s.value / 3.0))) for s in structured_samples]


@pytest.fixture
def spherical_model():
    from models.variogram import VariogramModel
    return VariogramModel("Spherical", nugget=0.05, partial_sill=1.0, range=4.0)
