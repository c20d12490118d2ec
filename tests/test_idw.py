"""Tests for the Inverse Distance Weighting interpolator."""

import sys
import os
import pytest
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.errors import InsufficientDataError, InvalidParameterError
from models.idw import (
    IDWInterpolator,
    idw_predict_array,
    idw_weights,
    validate_exponent,
)
from models.sample import PredictionTarget, Sample, sample_coordinates


class TestExponentValidation:
    @pytest.mark.parametrize("bad", [0.0, -1.0, float("nan"), float("inf"), "two", None])
    def test_rejects(self, bad):
        with pytest.raises(InvalidParameterError):
            validate_exponent(bad)

    def test_accepts_positive(self):
        assert validate_exponent(2) == 2.0


class TestExactness:
    @pytest.mark.parametrize("p", [0.5, 1.0, 2.0, 5.0])
    def test_prediction_at_sample_is_sample_value(self, square_samples, p):
        interp = IDWInterpolator()
        results = interp.predict(square_samples, square_samples, p)
        for s, r in zip(square_samples, results):
            assert r.predicted_value == s.value

    def test_duplicate_location_uses_first_sample(self):
        samples = [
            Sample(x=0.0, y=0.0, value=1.0),
            Sample(x=0.0, y=0.0, value=9.0),
            Sample(x=1.0, y=1.0, value=5.0),
        ]
        assert IDWInterpolator().predict_one(samples, (0.0, 0.0), 2.0) == 1.0


class TestWeights:
    def test_rows_sum_to_one(self, square_samples):
        coords = sample_coordinates(square_samples)
        targets = np.array([[0.2, 0.7], [3.0, -1.0], [0.5, 0.0]])
        w = idw_weights(coords, targets, 2.0)
        np.testing.assert_allclose(w.sum(axis=1), 1.0, atol=1e-12)

    def test_equidistant_samples_share_weight(self):
        coords = np.array([[-1.0, 0.0], [1.0, 0.0], [0.0, 1.0], [0.0, -1.0]])
        w = idw_weights(coords, np.array([[0.0, 0.0]]), 3.0)
        np.testing.assert_allclose(w, 0.25)

    def test_nearest_to_farthest_ratio_grows_with_exponent(self):
        coords = np.array([[1.0, 0.0], [2.0, 0.0], [5.0, 0.0]])
        target = np.array([[0.0, 0.0]])
        ratios = []
        for p in [0.5, 1.0, 1.5, 2.0, 3.0, 4.0]:
            w = idw_weights(coords, target, p)[0]
            ratios.append(w[0] / w[2])
        assert all(b > a for a, b in zip(ratios, ratios[1:]))

    def test_tiny_distances_do_not_overflow(self):
        coords = np.array([[1e-200, 0.0], [1.0, 0.0]])
        w = idw_weights(coords, np.array([[0.0, 0.0]]), 5.0)
        assert np.all(np.isfinite(w))
        assert w[0, 0] == pytest.approx(1.0)


class TestPrediction:
    def test_centroid_of_gradient_stays_in_value_range(self, gradient_samples):
        xs = [s.x for s in gradient_samples]
        ys = [s.y for s in gradient_samples]
        centroid = PredictionTarget(float(np.mean(xs)), float(np.mean(ys)))
        values = [s.value for s in gradient_samples]

        pred = IDWInterpolator().predict(gradient_samples, [centroid], 2.0)[0]
        assert min(values) <= pred.predicted_value <= max(values)
        assert pred.predicted_variance is None
        assert pred.target == centroid

    def test_never_extrapolates(self, noisy_samples):
        values = [s.value for s in noisy_samples]
        targets = [(x, y) for x in np.linspace(-5, 15, 9) for y in np.linspace(-5, 15, 9)]
        for r in IDWInterpolator().predict(noisy_samples, targets, 1.5):
            assert min(values) - 1e-12 <= r.predicted_value <= max(values) + 1e-12

    def test_small_exponent_tends_to_mean(self, square_samples):
        pred = IDWInterpolator().predict_one(square_samples, (100.0, 100.0), 0.01)
        assert pred == pytest.approx(np.mean([s.value for s in square_samples]), rel=1e-2)

    def test_log_field(self):
        from models.sample import log_transform
        samples = log_transform([Sample(x=0.0, y=0.0, value=1.0), Sample(x=2.0, y=0.0, value=np.e ** 2)])
        pred = IDWInterpolator(value_field="log_value").predict_one(samples, (1.0, 0.0), 2.0)
        assert pred == pytest.approx(1.0)

    def test_no_samples(self):
        with pytest.raises(InsufficientDataError):
            IDWInterpolator().predict([], [(0.0, 0.0)], 2.0)

    def test_single_sample_rejected(self):
        with pytest.raises(InsufficientDataError, match="at least 2"):
            IDWInterpolator().predict([Sample(x=0.0, y=0.0, value=4.0)], [(1.0, 1.0)], 2.0)

    def test_single_sample_allowed_when_lowered(self):
        interp = IDWInterpolator(min_samples=1)
        assert interp.predict_one([Sample(x=0.0, y=0.0, value=4.0)], (1.0, 1.0), 2.0) == 4.0

    def test_invalid_exponent(self, square_samples):
        with pytest.raises(InvalidParameterError):
            IDWInterpolator().predict(square_samples, [(0.0, 0.0)], -2.0)

    def test_array_no_targets(self):
        out = idw_predict_array(np.array([[0.0, 0.0]]), np.array([1.0]), np.empty((0, 2)), 2.0)
        assert out.shape == (0,)
