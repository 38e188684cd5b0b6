"""Domain-specific errors for stripsync."""


class StripsyncError(Exception):
    """Base error for stripsync."""


class ConfigError(StripsyncError):
    """Raised when the settings file cannot be read or fails validation."""


class SourceUnavailableError(StripsyncError):
    """Raised when a frame or advertisement source cannot be acquired."""


class TransportError(StripsyncError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the BLE connection to the strip cannot be established."""


class TransportSendError(TransportError):
    """Raised when writing a command to the strip fails."""


class TransportTimeoutError(TransportError):
    """Raised when a device call does not resolve within its race window."""
