"""
Euclidean distance in the analysis coordinate space.

Longitude/latitude are treated as planar coordinates; no geodesic correction.
"""

import numpy as np
from scipy.spatial.distance import cdist, pdist


def pairwise_distances(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Distance matrix between (N, 2) points ``a`` and (M, 2) points ``b``."""
    return cdist(np.asarray(a, dtype=float), np.asarray(b, dtype=float), metric="euclidean")


def condensed_distances(points: np.ndarray) -> np.ndarray:
    """Distances for every unordered pair (i < j), in pdist order."""
    return pdist(np.asarray(points, dtype=float), metric="euclidean")
