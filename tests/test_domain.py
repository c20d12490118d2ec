"""Tests for the convex-hull prediction domain and grid construction."""

import sys
import os
import pytest
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.domain import (
    ConvexHullDomain,
    Grid,
    bounding_box_filter,
    bounding_box_grid,
    create_grid,
    polygon_bounds,
    restrict_grid,
    sample_extent,
)
from models.errors import DomainFilterError, InvalidParameterError
from models.sample import Sample


@pytest.fixture
def unit_square_hull():
    return ConvexHullDomain.hull([(0, 0), (1, 0), (1, 1), (0, 1), (0.5, 0.5)])


class TestHull:
    def test_interior_point_not_a_vertex(self, unit_square_hull):
        assert len(unit_square_hull.vertices) == 4
        assert not any(np.allclose(v, [0.5, 0.5]) for v in unit_square_hull.vertices)

    def test_counter_clockwise(self, unit_square_hull):
        assert unit_square_hull.area == pytest.approx(1.0)

    def test_bounds_and_ring(self, unit_square_hull):
        assert unit_square_hull.bounds == (0.0, 1.0, 0.0, 1.0)
        ring = unit_square_hull.closed_ring()
        np.testing.assert_array_equal(ring[0], ring[-1])

    def test_accepts_samples(self, structured_samples):
        hull = ConvexHullDomain.hull(structured_samples)
        assert hull.area > 0

    def test_every_sample_inside_own_hull(self, structured_samples, nugget_samples, gradient_samples):
        for samples in (structured_samples, nugget_samples, gradient_samples):
            hull = ConvexHullDomain.hull(samples)
            for s in samples:
                assert ConvexHullDomain.contains(hull, s)

    def test_too_few_points(self):
        with pytest.raises(DomainFilterError, match="at least 3"):
            ConvexHullDomain.hull([(0, 0), (1, 1), (0, 0)])

    def test_collinear_points(self):
        with pytest.raises(DomainFilterError, match="collinear"):
            ConvexHullDomain.hull([(0, 0), (1, 1), (2, 2), (3, 3)])


class TestContainment:
    @pytest.mark.parametrize("point,expected", [
        ((0.5, 0.5), True),
        ((0.0, 0.0), True),     # vertex
        ((0.5, 0.0), True),     # edge
        ((1.0, 0.3), True),     # edge
        ((1.0001, 0.5), False),
        ((-0.1, -0.1), False),
        ((2.0, 2.0), False),
    ])
    def test_inclusive_boundary(self, unit_square_hull, point, expected):
        assert ConvexHullDomain.contains(unit_square_hull, point) is expected

    def test_vectorised_matches_scalar(self, unit_square_hull):
        rng = np.random.default_rng(0)
        pts = rng.uniform(-0.5, 1.5, size=(200, 2))
        mask = ConvexHullDomain.contains_points(unit_square_hull, pts)
        expected = (pts[:, 0] >= 0) & (pts[:, 0] <= 1) & (pts[:, 1] >= 0) & (pts[:, 1] <= 1)
        np.testing.assert_array_equal(mask, expected)

    def test_filter(self, unit_square_hull):
        kept = ConvexHullDomain.filter(unit_square_hull, [(0.2, 0.2), (3.0, 0.0), (1.0, 1.0)])
        np.testing.assert_array_equal(kept, [[0.2, 0.2], [1.0, 1.0]])

    def test_triangle(self):
        hull = ConvexHullDomain.hull([(0, 0), (4, 0), (0, 4)])
        assert ConvexHullDomain.contains(hull, (2, 2))
        assert not ConvexHullDomain.contains(hull, (2.1, 2.1))


class TestGrid:
    def test_create_grid_spacing(self):
        X, Y = create_grid((0.0, 1.0, 0.0, 0.5), 0.25)
        np.testing.assert_allclose(X[0], [0.0, 0.25, 0.5, 0.75, 1.0])
        np.testing.assert_allclose(Y[:, 0], [0.0, 0.25, 0.5])

    def test_last_node_within_bounds(self):
        X, Y = create_grid((0.0, 1.0, 0.0, 1.0), 0.3)
        assert X.max() <= 1.0
        assert X.shape == (4, 4)

    @pytest.mark.parametrize("cell", [0.0, -1.0, float("nan")])
    def test_invalid_cell_size(self, cell):
        with pytest.raises(InvalidParameterError):
            create_grid((0.0, 1.0, 0.0, 1.0), cell)

    def test_invalid_bounds(self):
        with pytest.raises(InvalidParameterError):
            create_grid((1.0, 0.0, 0.0, 1.0), 0.1)

    def test_too_many_cells(self):
        with pytest.raises(InvalidParameterError, match="MAX_GRID_CELLS"):
            create_grid((0.0, 1000.0, 0.0, 1000.0), 0.1)

    def test_restrict_grid_to_triangle(self):
        hull = ConvexHullDomain.hull([(0, 0), (4, 0), (0, 4)])
        grid = restrict_grid(hull, 1.0)
        assert grid.shape == (5, 5)
        # Nodes with x + y <= 4
        assert int(grid.mask.sum()) == 15
        assert np.all(grid.points.sum(axis=1) <= 4.0 + 1e-12)

    def test_restrict_grid_custom_bounds(self, unit_square_hull):
        grid = restrict_grid(unit_square_hull, 0.5, bounds=(-1.0, 2.0, -1.0, 2.0))
        assert grid.shape == (7, 7)
        assert int(grid.mask.sum()) == 9

    def test_to_raster(self, unit_square_hull):
        grid = restrict_grid(unit_square_hull, 0.5, bounds=(-0.5, 1.0, 0.0, 1.0))
        values = np.arange(grid.mask.sum(), dtype=float)
        raster = grid.to_raster(values)
        assert raster.shape == grid.shape
        assert np.isnan(raster[~grid.mask]).all()
        np.testing.assert_array_equal(raster[grid.mask], values)

    def test_bounding_box_grid_keeps_everything(self):
        grid = bounding_box_grid((0.0, 1.0, 0.0, 1.0), 0.5)
        assert isinstance(grid, Grid)
        assert grid.mask.all()
        assert len(grid.points) == 9


class TestFallbacks:
    def test_bounding_box_filter(self):
        mask = bounding_box_filter([(0, 0), (1, 1), (2, 0.5), (1, -0.1)], (0.0, 1.0, -0.1, 1.0))
        np.testing.assert_array_equal(mask, [True, True, False, True])

    def test_polygon_bounds_ring(self):
        assert polygon_bounds([(0, 0), (3, 1), (1, 4), (0, 0)]) == (0.0, 3.0, 0.0, 4.0)

    def test_polygon_bounds_multipolygon(self):
        multi = [
            [(0, 0), (1, 0), (1, 1)],
            [(5, 5), (6, 5), (6, 7), (5, 6), (5, 5)],
        ]
        assert polygon_bounds(multi) == (0.0, 6.0, 0.0, 7.0)

    def test_sample_extent(self, gradient_samples):
        assert sample_extent(gradient_samples) == (0.0, 4.0, 0.0, 3.0)

    def test_sample_extent_empty(self):
        with pytest.raises(InvalidParameterError):
            sample_extent([])

    def test_collinear_samples_fall_back(self):
        samples = [Sample(x=float(i), y=0.0, value=1.0) for i in range(4)]
        with pytest.raises(DomainFilterError):
            ConvexHullDomain.hull(samples)
        assert bounding_box_filter([(1.5, 0.0), (1.5, 0.1)], sample_extent(samples)).tolist() == [True, False]
