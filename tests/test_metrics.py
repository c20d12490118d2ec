"""Tests for LOOCV residual metrics and method comparison."""

import sys
import os
import math
import pytest
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.sample import Residual
from validation.metrics import (
    compare_squared_errors,
    mean_absolute_error,
    mean_error,
    paired_significance_test,
    r_squared,
    residual_summary,
    rmse,
)


def _residuals(observed, predicted):
    return [
        Residual(sample_index=i, observed_value=o, predicted_value=p)
        for i, (o, p) in enumerate(zip(observed, predicted))
    ]


@pytest.fixture
def simple_residuals():
    # errors: 1, -1, 2, 0
    return _residuals([2.0, 3.0, 6.0, 4.0], [1.0, 4.0, 4.0, 4.0])


class TestAccuracy:
    def test_rmse(self, simple_residuals):
        assert rmse(simple_residuals) == pytest.approx(math.sqrt(6.0 / 4.0))

    def test_rmse_matches_loocv_figure(self, noisy_samples):
        from optimization.loocv import cross_validate_idw, rmse_from_residuals
        result = cross_validate_idw(noisy_samples, 2.0)
        assert rmse(result.residuals) == rmse_from_residuals(result.residuals) == result.rmse

    def test_mae_and_bias(self, simple_residuals):
        assert mean_absolute_error(simple_residuals) == pytest.approx(1.0)
        assert mean_error(simple_residuals) == pytest.approx(0.5)

    def test_r_squared_perfect(self):
        res = _residuals([1.0, 2.0, 3.0], [1.0, 2.0, 3.0])
        assert r_squared(res) == pytest.approx(1.0)

    def test_r_squared_constant_observed(self):
        res = _residuals([2.0, 2.0], [1.0, 3.0])
        assert math.isnan(r_squared(res))

    def test_summary(self, simple_residuals):
        s = residual_summary(simple_residuals)
        assert s["n"] == 4
        assert s["max_abs_error"] == pytest.approx(2.0)
        assert s["rmse"] == pytest.approx(rmse(simple_residuals))

    @pytest.mark.parametrize("fn", [rmse, mean_absolute_error, mean_error, r_squared, residual_summary])
    def test_empty(self, fn):
        with pytest.raises(ValueError):
            fn([])


class TestSignificance:
    def test_paired_identical_shift(self):
        a = [1.0, 2.0, 3.0, 4.0, 5.0]
        b = [1.5, 2.4, 3.6, 4.5, 5.5]
        out = paired_significance_test(a, b)
        assert out["mean_diff"] == pytest.approx(-0.5)
        assert out["ci_lower"] <= out["mean_diff"] <= out["ci_upper"]

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="lengths"):
            paired_significance_test([1.0, 2.0], [1.0])

    def test_too_short(self):
        with pytest.raises(ValueError):
            paired_significance_test([1.0], [1.0])

    def test_compare_matches_by_index(self):
        a = _residuals([1.0, 2.0, 3.0, 4.0], [1.1, 2.1, 2.9, 4.2])
        b = list(reversed(_residuals([1.0, 2.0, 3.0, 4.0], [1.5, 2.6, 2.2, 4.9])))
        out = compare_squared_errors(a, b)
        expected = np.mean(
            np.array([0.01, 0.01, 0.01, 0.04]) - np.array([0.25, 0.36, 0.64, 0.81])
        )
        assert out["mean_diff"] == pytest.approx(expected)
        assert out["mean_diff"] < 0

    def test_compare_different_samples(self):
        a = _residuals([1.0, 2.0], [1.0, 2.0])
        b = [Residual(sample_index=5, observed_value=1.0, predicted_value=1.0),
             Residual(sample_index=1, observed_value=2.0, predicted_value=2.0)]
        with pytest.raises(ValueError, match="different samples"):
            compare_squared_errors(a, b)
