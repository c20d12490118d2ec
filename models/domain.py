"""
Prediction Domain.

Restricts gridded prediction to the region the data actually supports:
the convex hull of the sample locations.  Hull construction uses qhull
(scipy); containment is an inclusive half-plane test against the
counter-clockwise hull edges, so points on the boundary count as inside.

Also provides the regular lattice builder and a bounding-box filter for
callers that fall back from a degenerate hull.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import ConvexHull as QhullConvexHull

from config import DEFAULT_CELL_SIZE, HULL_BOUNDARY_TOLERANCE, MAX_GRID_CELLS
from models.errors import DomainFilterError, InvalidParameterError

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]  # (x_min, x_max, y_min, y_max)


@dataclass(frozen=True)
class ConvexHull:
    """Hull vertices in counter-clockwise order (not repeated at the end)."""

    vertices: np.ndarray

    @property
    def area(self) -> float:
        x, y = self.vertices[:, 0], self.vertices[:, 1]
        return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))

    @property
    def bounds(self) -> Bounds:
        return (
            float(self.vertices[:, 0].min()),
            float(self.vertices[:, 0].max()),
            float(self.vertices[:, 1].min()),
            float(self.vertices[:, 1].max()),
        )

    def closed_ring(self) -> np.ndarray:
        """Vertices with the first repeated at the end (for plotting/export)."""
        return np.vstack([self.vertices, self.vertices[:1]])


class ConvexHullDomain:
    """Convex hull construction and membership tests."""

    @staticmethod
    def hull(locations) -> ConvexHull:
        """Convex hull of (N, 2) locations (or objects with x/y).

        Raises:
            DomainFilterError: Fewer than 3 distinct points, or all collinear.
        """
        pts = _as_points(locations)
        if len(np.unique(pts, axis=0)) < 3:
            raise DomainFilterError("Convex hull needs at least 3 distinct locations")
        if np.linalg.matrix_rank(pts - pts.mean(axis=0)) < 2:
            raise DomainFilterError("Locations are collinear; hull has no interior")

        qh = QhullConvexHull(pts)
        # qhull returns 2-D hull vertices counter-clockwise
        hull = ConvexHull(vertices=pts[qh.vertices].copy())
        logger.debug("Convex hull: %d of %d points on boundary", len(hull.vertices), len(pts))
        return hull

    @staticmethod
    def contains_points(hull: ConvexHull, points) -> np.ndarray:
        """Vectorised inclusive containment; returns a bool array."""
        pts = _as_points(points)
        v = hull.vertices
        x_min, x_max, y_min, y_max = hull.bounds
        extent = max(x_max - x_min, y_max - y_min)
        tol = HULL_BOUNDARY_TOLERANCE * extent ** 2

        inside = np.ones(len(pts), dtype=bool)
        for start, end in zip(v, np.roll(v, -1, axis=0)):
            ex, ey = end - start
            # z-component of edge x (p - start); >= 0 means left of a CCW edge
            cross = ex * (pts[:, 1] - start[1]) - ey * (pts[:, 0] - start[0])
            inside &= cross >= -tol
        return inside

    @classmethod
    def contains(cls, hull: ConvexHull, point) -> bool:
        """True if ``point`` is inside the hull or on its boundary."""
        return bool(cls.contains_points(hull, [point])[0])

    @classmethod
    def filter(cls, hull: ConvexHull, points) -> np.ndarray:
        """Rows of ``points`` that lie inside the hull."""
        pts = _as_points(points)
        return pts[cls.contains_points(hull, pts)]


def _as_points(locations) -> np.ndarray:
    if isinstance(locations, np.ndarray):
        return np.asarray(locations, dtype=float).reshape(-1, 2)
    rows = []
    for loc in locations:
        if hasattr(loc, "x") and hasattr(loc, "y"):
            rows.append((loc.x, loc.y))
        else:
            rows.append(tuple(loc))
    return np.array(rows, dtype=float).reshape(-1, 2)


# ---------------------------------------------------------------------------
# Grid construction
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Grid:
    """Regular lattice clipped to a domain.

    ``mask`` marks lattice nodes kept by the domain filter; ``points``
    holds those nodes in row-major (y, then x) order.
    """

    x_coords: np.ndarray
    y_coords: np.ndarray
    mask: np.ndarray
    cell_size: float

    @property
    def points(self) -> np.ndarray:
        X, Y = np.meshgrid(self.x_coords, self.y_coords)
        return np.column_stack([X[self.mask], Y[self.mask]])

    @property
    def shape(self) -> Tuple[int, int]:
        return self.mask.shape

    def to_raster(self, values: np.ndarray, fill: float = np.nan) -> np.ndarray:
        """Scatter per-point values back onto the 2-D lattice."""
        raster = np.full(self.mask.shape, fill, dtype=float)
        raster[self.mask] = values
        return raster


def _axis(lo: float, hi: float, cell_size: float) -> np.ndarray:
    n = int(np.floor((hi - lo) / cell_size + 1e-9)) + 1
    return lo + cell_size * np.arange(n)


def create_grid(
    bounds: Bounds,
    cell_size: float = DEFAULT_CELL_SIZE,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Create a 2D meshgrid over ``bounds``.

    Nodes start at (x_min, y_min) and step by ``cell_size``; the last node
    never exceeds the upper bound.

    Returns:
        (X, Y) meshgrid arrays.
    """
    if not (np.isfinite(cell_size) and cell_size > 0):
        raise InvalidParameterError(f"cell_size must be finite and > 0, got {cell_size}")
    x_min, x_max, y_min, y_max = bounds
    if x_max < x_min or y_max < y_min:
        raise InvalidParameterError(f"Invalid bounds {bounds}")
    xs = _axis(x_min, x_max, cell_size)
    ys = _axis(y_min, y_max, cell_size)
    if len(xs) * len(ys) > MAX_GRID_CELLS:
        raise InvalidParameterError(
            f"Grid of {len(xs)} x {len(ys)} cells exceeds MAX_GRID_CELLS={MAX_GRID_CELLS}; "
            f"increase cell_size"
        )
    return np.meshgrid(xs, ys)


def restrict_grid(
    hull: ConvexHull,
    cell_size: float = DEFAULT_CELL_SIZE,
    bounds: Optional[Bounds] = None,
) -> Grid:
    """Regular lattice over ``bounds`` (default: hull extent), clipped to the hull."""
    X, Y = create_grid(bounds or hull.bounds, cell_size)
    inside = ConvexHullDomain.contains_points(
        hull, np.column_stack([X.ravel(), Y.ravel()])
    ).reshape(X.shape)
    logger.debug("Grid %s: %d of %d cells inside hull", X.shape, inside.sum(), inside.size)
    return Grid(x_coords=X[0, :].copy(), y_coords=Y[:, 0].copy(), mask=inside, cell_size=cell_size)


def bounding_box_filter(points, bounds: Bounds) -> np.ndarray:
    """Bool mask of points inside an axis-aligned box (inclusive)."""
    pts = _as_points(points)
    x_min, x_max, y_min, y_max = bounds
    return (
        (pts[:, 0] >= x_min) & (pts[:, 0] <= x_max)
        & (pts[:, 1] >= y_min) & (pts[:, 1] <= y_max)
    )


def bounding_box_grid(
    bounds: Bounds,
    cell_size: float = DEFAULT_CELL_SIZE,
) -> Grid:
    """Unclipped lattice over ``bounds`` (fallback when the hull is degenerate)."""
    X, Y = create_grid(bounds, cell_size)
    return Grid(
        x_coords=X[0, :].copy(),
        y_coords=Y[:, 0].copy(),
        mask=np.ones(X.shape, dtype=bool),
        cell_size=cell_size,
    )


def polygon_bounds(polygon: Sequence) -> Bounds:
    """Bounding box of a polygon ring, or of all rings of a multipolygon."""
    if np.ndim(polygon[0]) == 1:
        pts = np.asarray(polygon, dtype=float).reshape(-1, 2)
    else:
        pts = np.vstack([np.asarray(ring, dtype=float).reshape(-1, 2) for ring in polygon])
    return (
        float(pts[:, 0].min()),
        float(pts[:, 0].max()),
        float(pts[:, 1].min()),
        float(pts[:, 1].max()),
    )


def sample_extent(locations) -> Bounds:
    """Bounding box of sample locations."""
    pts = _as_points(locations)
    if len(pts) == 0:
        raise InvalidParameterError("Cannot compute the extent of zero locations")
    return polygon_bounds(pts)
