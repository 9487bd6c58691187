"""Exceptions raised by pytrim."""


class PytrimError(Exception):
    """Base class for pytrim errors."""


class ConfigurationError(PytrimError, ValueError):
    """Invalid or contradictory options, detected before any process is touched."""


class UnsupportedPlatformError(PytrimError):
    """The native working-set facilities are not available here."""


class ForegroundUnavailable(PytrimError):
    """The owner of the foreground window could not be resolved."""
