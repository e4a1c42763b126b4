"""
Exception handling utilities.

Defines categorized exception types so retry, idle-and-recheck and
fatal-fault policies can be selected by type rather than by message.
"""


class TvlError(Exception):
    """Base exception for the indexer pipeline."""
    pass


class ProviderUnavailable(TvlError):
    """Raised when a provider keeps failing after all retry attempts."""
    pass


class ProviderProtocolError(TvlError):
    """Raised when a provider returns a malformed or unexpected response."""
    pass


class RpcCallError(ProviderProtocolError):
    """Raised when a JSON-RPC call returns a non-transient error object."""

    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class NotYetAvailable(TvlError):
    """Raised when upstream data for a timestamp does not exist yet."""
    pass


class MissingUpstreamRecord(TvlError):
    """Raised when a parent claims readiness but its record is absent."""
    pass


class ConfigurationError(TvlError):
    """Raised for invalid configuration detected before the graph starts."""
    pass


# Faults - log loudly, require operator attention
FAULTS = (
    ProviderProtocolError,
    MissingUpstreamRecord,
    ConfigurationError,
)


def is_fault(exc: Exception) -> bool:
    """
    Check if exception is a fault requiring investigation.

    Args:
        exc: Exception to check

    Returns:
        True if exception must be reported to operators
    """
    return isinstance(exc, FAULTS)
