"""Exceptions raised by the spectral initializer."""


class SpectralInitError(Exception):
    """Base class of every error raised by pyspectralinit."""


class InvalidArgumentError(SpectralInitError, ValueError):
    """Inconsistent operator, measurements or dimensions."""


class ConvergenceError(SpectralInitError, RuntimeError):
    """The eigensolver did not reach its tolerance within its iteration budget."""


class DegenerateScaleError(SpectralInitError, ArithmeticError):
    """The least-squares scale of the estimate is undefined."""
