"""
Exception hierarchy for the HTTP Trace SDK.
"""


class HttpTraceError(Exception):
    """Base class for all SDK errors."""


class ConfigurationError(HttpTraceError):
    """Raised when a configuration file or value cannot be used."""


class StorageError(HttpTraceError):
    """Raised when a debug request cannot be persisted or loaded."""


class RequestNotFoundError(StorageError):
    """Raised when a stored debug request id is unknown."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Debug request not found: {request_id}")
