"""Tests for leave-one-out cross-validation and the IDW exponent sweep."""

import sys
import os
import pytest
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.errors import InsufficientDataError, InterpolationError, InvalidParameterError
from models.idw import IDWInterpolator
from models.sample import Sample
from optimization.loocv import (
    LOOCVEvaluator,
    cross_validate_idw,
    cross_validate_kriging,
    default_exponent_candidates,
    sweep_idw_exponents,
)


def _brute_force_rmse(samples, p):
    """Independent LOOCV: explicit 1/d^p weights, no shared code path."""
    errs = []
    for i, s in enumerate(samples):
        num = den = 0.0
        for j, t in enumerate(samples):
            if i == j:
                continue
            w = 1.0 / np.hypot(s.x - t.x, s.y - t.y) ** p
            num += w * t.value
            den += w
        errs.append(s.value - num / den)
    return float(np.sqrt(np.mean(np.square(errs))))


class TestEvaluator:
    def test_residual_per_sample_in_order(self, square_samples):
        result = cross_validate_idw(square_samples, 2.0)
        assert [r.sample_index for r in result.residuals] == list(range(5))
        assert [r.observed_value for r in result.residuals] == [s.value for s in square_samples]

    def test_held_out_sample_not_in_training_set(self, square_samples):
        seen = []

        def predictor(train, target):
            assert target not in train
            assert len(train) == len(square_samples) - 1
            seen.append(target)
            return 0.0

        LOOCVEvaluator().evaluate(square_samples, predictor)
        assert seen == square_samples

    def test_rmse_definition(self, square_samples):
        result = LOOCVEvaluator().evaluate(square_samples, lambda train, t: 0.0)
        expected = np.sqrt(np.mean([s.value ** 2 for s in square_samples]))
        assert result.rmse == pytest.approx(expected)

    def test_deterministic(self, noisy_samples):
        a = cross_validate_idw(noisy_samples, 1.5).rmse
        b = cross_validate_idw(noisy_samples, 1.5).rmse
        assert a == b

    def test_parallel_matches_sequential(self, noisy_samples):
        seq = cross_validate_idw(noisy_samples, 2.0)
        par = cross_validate_idw(noisy_samples, 2.0, evaluator=LOOCVEvaluator(max_workers=4))
        assert par.rmse == seq.rmse
        assert [r.predicted_value for r in par.residuals] == [r.predicted_value for r in seq.residuals]

    def test_matches_brute_force(self, noisy_samples):
        result = cross_validate_idw(noisy_samples, 2.0)
        assert result.rmse == pytest.approx(_brute_force_rmse(noisy_samples, 2.0), rel=1e-10)

    def test_too_few_samples(self):
        with pytest.raises(InsufficientDataError):
            cross_validate_idw([Sample(x=0.0, y=0.0, value=1.0)], 2.0)

    def test_non_finite_prediction_raises(self, square_samples):
        with pytest.raises(InterpolationError, match="held-out sample 0"):
            LOOCVEvaluator().evaluate(square_samples, lambda train, t: float("nan"))

    def test_result_arrays(self, square_samples):
        result = cross_validate_idw(square_samples, 1.0)
        np.testing.assert_allclose(result.errors, result.observed - result.predicted)


class TestKrigingCrossValidation:
    def test_runs_with_enough_samples(self, structured_samples, spherical_model):
        result = cross_validate_kriging(structured_samples, spherical_model)
        assert len(result.residuals) == len(structured_samples)
        assert np.isfinite(result.rmse)

    def test_needs_four_samples(self, spherical_model):
        samples = [
            Sample(x=0.0, y=0.0, value=1.0),
            Sample(x=1.0, y=0.0, value=2.0),
            Sample(x=0.0, y=1.0, value=3.0),
        ]
        with pytest.raises(InsufficientDataError):
            cross_validate_kriging(samples, spherical_model)

    def test_collinear_fold_raises(self, spherical_model):
        # Dropping the off-axis sample leaves three collinear ones
        samples = [
            Sample(x=0.0, y=0.0, value=1.0),
            Sample(x=1.0, y=0.0, value=2.0),
            Sample(x=2.0, y=0.0, value=3.0),
            Sample(x=1.0, y=1.0, value=4.0),
        ]
        with pytest.raises(InsufficientDataError, match="collinear"):
            cross_validate_kriging(samples, spherical_model)


class TestExponentSweep:
    def test_default_candidates(self):
        cands = default_exponent_candidates()
        assert cands[0] == 0.5
        assert cands[-1] == 5.0
        assert len(cands) == 10

    def test_best_matches_brute_force(self, noisy_samples):
        candidates = [0.5, 1.0, 1.5, 2.0, 3.0]
        sweep = sweep_idw_exponents(noisy_samples, candidates)

        brute = {p: _brute_force_rmse(noisy_samples, p) for p in candidates}
        best = min(candidates, key=lambda p: brute[p])
        assert sweep.best_exponent == best
        assert sweep.best_rmse == pytest.approx(brute[best], rel=1e-10)
        for p, rmse in sweep.scores:
            assert rmse == pytest.approx(brute[p], rel=1e-10)

    def test_interior_minimum(self):
        # Hexagon: a smooth cos(theta) signal favours large exponents, an
        # alternating component favours small ones
        samples = []
        for k in range(6):
            theta = np.pi * k / 3.0
            value = np.cos(theta) + 0.55 * (-1) ** k
            samples.append(Sample(x=float(np.cos(theta)), y=float(np.sin(theta)), value=float(value)))
        candidates = [0.5, 1.0, 1.5, 2.0, 3.0]
        sweep = sweep_idw_exponents(samples, candidates)
        rmses = [r for _, r in sweep.scores]

        assert sweep.best_exponent == 1.5
        assert rmses != sorted(rmses)
        assert rmses != sorted(rmses, reverse=True)
        assert rmses[0] > rmses[1] > rmses[2]
        assert rmses[2] < rmses[3] < rmses[4]
        for p, rmse in sweep.scores:
            assert rmse == pytest.approx(_brute_force_rmse(samples, p), rel=1e-10)

    def test_scores_in_ascending_order(self, noisy_samples):
        sweep = sweep_idw_exponents(noisy_samples, [3.0, 0.5, 2.0])
        assert [p for p, _ in sweep.scores] == [0.5, 2.0, 3.0]

    def test_tie_goes_to_smallest_exponent(self):
        # Two samples: each fold has one training sample, so every exponent
        # gives the same prediction and the same RMSE
        samples = [Sample(x=0.0, y=0.0, value=1.0), Sample(x=1.0, y=0.0, value=3.0)]
        sweep = sweep_idw_exponents(samples, [2.0, 1.0, 4.0])
        assert sweep.best_exponent == 1.0
        assert len({r for _, r in sweep.scores}) == 1

    def test_invalid_candidates_skipped(self, noisy_samples):
        sweep = sweep_idw_exponents(noisy_samples, [-1.0, 0.0, 2.0])
        assert sweep.best_exponent == 2.0
        assert [c for c, _ in sweep.skipped] == [-1.0, 0.0]

    def test_all_invalid_raises(self, noisy_samples):
        with pytest.raises(InvalidParameterError, match="No valid IDW exponent"):
            sweep_idw_exponents(noisy_samples, [-1.0, 0.0])

    def test_too_few_samples(self):
        with pytest.raises(InsufficientDataError):
            sweep_idw_exponents([Sample(x=0.0, y=0.0, value=1.0)], [2.0])

    def test_best_result_residuals(self, noisy_samples):
        sweep = sweep_idw_exponents(noisy_samples, [1.0, 2.0])
        assert sweep.best_result.rmse == sweep.best_rmse
        assert len(sweep.best_result.residuals) == len(noisy_samples)

    def test_predictor_uses_interpolator(self, square_samples):
        interp = IDWInterpolator()
        result = cross_validate_idw(square_samples, 2.0)
        expected = interp.predict_one(square_samples[1:], square_samples[0], 2.0)
        assert result.residuals[0].predicted_value == expected
