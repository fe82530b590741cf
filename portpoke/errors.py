class ScanError(Exception):
    """Base class for everything the scanner raises on purpose."""


class ConfigError(ScanError, ValueError):
    """Invalid configuration; raised before any network activity."""


class InvalidRange(ConfigError):
    pass


class ResolutionFailure(ConfigError):
    pass


class ScanCancelled(ScanError):
    """The worker pool was cancelled before every port was probed."""
