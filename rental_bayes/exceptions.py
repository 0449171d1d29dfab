"""Error types for the rental price analysis."""


class RentalBayesError(Exception):
    """Base class for all errors raised by this package."""


class DataError(RentalBayesError, ValueError):
    """Input data is unusable as a whole (missing columns, empty after filtering)."""


class ConfigError(RentalBayesError, ValueError):
    """Invalid sampler or pipeline configuration. Raised before any sampling."""


class NumericError(RentalBayesError, ArithmeticError):
    """A numeric guard cannot be applied (e.g. non-positive distance floor)."""


class SamplingError(RentalBayesError, RuntimeError):
    """A chain stopped (wall-clock cap) before storing enough draws to diagnose."""


class ConvergenceWarning(UserWarning):
    """A convergence diagnostic flagged at least one parameter."""
