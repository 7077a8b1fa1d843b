"""
Custom exceptions for Tether.

Transport implementations raise these (or plain ``OSError``); the workers
catch them at their boundary and turn them into notices and role changes.
"""


class TetherError(Exception):
    """Base exception for all Tether errors."""
    pass


# ---------------- Transport Errors ----------------

class TransportError(TetherError):
    """Base class for transport I/O errors."""
    pass


class EndpointCreationFailed(TransportError):
    """A passive endpoint could not be provisioned for a service variant."""

    def __init__(self, variant: str, reason: str = ""):
        message = f"Cannot listen on {variant} endpoint"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.variant = variant


class AcceptFailed(TransportError):
    """Accepting an inbound stream failed (or the endpoint was closed)."""
    pass


class DialFailed(TransportError):
    """An outbound connection attempt failed."""

    def __init__(self, address: str, reason: str = ""):
        message = f"Unable to connect to {address}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.address = address


class WriteFailed(TransportError):
    """Writing to a stream failed."""
    pass


class ReadFailed(TransportError):
    """Reading from a stream failed."""
    pass


class ConnectionLost(ReadFailed):
    """The peer closed the stream or the link dropped."""
    pass


# ---------------- Configuration Errors ----------------

class ConfigError(TetherError):
    """Invalid configuration value."""

    def __init__(self, key: str, message: str):
        super().__init__(f"Invalid config '{key}': {message}")
        self.key = key


class UnknownVariantError(ConfigError):
    """Service variant name is not configured."""

    def __init__(self, name: str):
        super().__init__("variant", f"unknown service variant '{name}'")
        self.name = name
