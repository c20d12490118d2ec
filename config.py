"""
Global configuration and constants for the Air-Quality Spatial Interpolation System.
"""

# --- Coordinate Space ---
# Longitude/latitude treated as planar Euclidean coordinates (degrees)
DEFAULT_CRS = "EPSG:4326"      # Passed through to exports, never used for math

# --- Grid ---
DEFAULT_CELL_SIZE = 0.1        # Grid cell spacing in coordinate units (degrees)
MAX_GRID_CELLS = 250_000       # Refuse to build lattices larger than this

# --- IDW ---
# Exponent sweep: 0.5 .. 5.0 in steps of 0.5 (ascending order matters for ties)
IDW_EXPONENT_MIN = 0.5
IDW_EXPONENT_MAX = 5.0
IDW_EXPONENT_STEP = 0.5
IDW_MIN_SAMPLES = 2            # Smallest dataset that can be cross-validated

# --- Empirical Variogram ---
DEFAULT_CUTOFF_FRACTION = 1.0 / 3.0  # Cutoff as a fraction of the max pairwise distance
DEFAULT_N_BINS = 15                  # Lag bins between 0 and the cutoff

# --- Variogram Fitting ---
# Weighting of lag bins in the least-squares objective:
#   "npairs_over_h2" -> N_j / h_j^2   (gstat fit.method = 7)
#   "npairs"         -> N_j           (gstat fit.method = 1)
#   "unweighted"     -> 1             (ordinary least squares)
DEFAULT_FIT_WEIGHTING = "npairs_over_h2"
FIT_MAX_EVALUATIONS = 20000          # curve_fit maxfev
FIT_MIN_PAIRS = 30                   # Bins with fewer pairs are left out of the fit when >= 3 others remain
FIT_STRUCTURE_ALPHA = 0.05           # Significance a fitted structure needs over the nugget-only model
FIT_RANGE_CEILING_FACTOR = 10.0      # Upper bound on range, relative to the largest lag
FIT_PLATEAU_FRACTION = 0.95          # Range guess: first lag reaching 95% of max semivariance
SSE_TIE_RTOL = 1e-9                  # Families within this relative SSE count as tied

# Every known family, in tie-break order (simplest first)
VARIOGRAM_FAMILIES = (
    "Nugget",
    "Spherical",
    "Exponential",
    "Gaussian",
    "Wave",
    "HoleEffect",
    "Periodic",
)

# Not conditionally negative definite in 2-D: kriging with them can give
# negative variances, so they are only fitted when asked for explicitly
NON_PERMISSIBLE_2D_FAMILIES = ("HoleEffect", "Periodic")

# Candidates tried when none are given
DEFAULT_VARIOGRAM_FAMILIES = tuple(
    f for f in VARIOGRAM_FAMILIES if f not in NON_PERMISSIBLE_2D_FAMILIES
)

# --- Kriging ---
KRIGING_MIN_SAMPLES = 3
KRIGING_MAX_CONDITION = 1e12   # Condition number beyond which the system is singular
KRIGING_WEIGHT_SUM_TOLERANCE = 1e-6  # |sum(weights) - 1| beyond this means the solve is untrustworthy
KRIGING_NEGATIVE_VARIANCE_RTOL = 1e-9  # Negative variance tolerated as round-off, relative to the sill

# --- Convex Hull Domain ---
HULL_BOUNDARY_TOLERANCE = 1e-12  # Relative to hull extent; boundary counts as inside

# --- Pollutants ---
# Per-pollutant defaults. Log transform is an explicit choice per pollutant,
# not inferred from the data.
POLLUTANT_DEFAULTS = {
    "ozone": {"units": "ppb", "log_transform": True},
    "no2": {"units": "ppb", "log_transform": True},
    "pm25": {"units": "ug/m3", "log_transform": False},
}

# --- Synthetic Station Network ---
MOCK_SEED = 20240601
MOCK_STATION_COUNT = 120
# Intermountain West extent (lon_min, lon_max, lat_min, lat_max)
MOCK_REGION_BOUNDS = (-120.0, -102.0, 31.0, 45.0)
