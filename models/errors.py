"""
Error taxonomy for the interpolation core.

Every failure is surfaced to the caller.  Mis-predicted concentrations are
a correctness problem, so nothing here is caught and replaced by a default.
"""


class InterpolationError(Exception):
    """Base class for all interpolation-core errors."""


class InsufficientDataError(InterpolationError, ValueError):
    """Too few samples, or samples that are all collinear."""


class InvalidParameterError(InterpolationError, ValueError):
    """Exponent <= 0, negative nugget/sill, non-positive range, and similar."""


class SingularSystemError(InterpolationError):
    """The kriging system is singular or too ill-conditioned to trust."""


class FitConvergenceError(InterpolationError):
    """Nonlinear least-squares variogram fit did not converge."""


class DomainFilterError(InterpolationError):
    """Convex hull degenerates to a line or a point.

    Callers may fall back to bounding-box filtering
    (see ``models.domain.bounding_box_filter``).
    """
