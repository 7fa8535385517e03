"""
Exceptions raised by the solar and infrared radiation core.
"""


class SolarModelError(Exception):
    """Base class for every error raised by dcsolar."""


class InvalidGeometry(SolarModelError, ValueError):
    """Degenerate polygon or an element that cannot be sampled."""


class InvalidDiscretization(SolarModelError, ValueError):
    """Unsupported sky subdivision."""


class SamplingInconsistency(SolarModelError, RuntimeError):
    """View factors or daylight coefficients that do not add up."""


class MarchFailure(SolarModelError, RuntimeError):
    """A timestep could not be computed, usually missing weather data."""
