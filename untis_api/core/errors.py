# untis_api/core/errors.py
from typing import Optional


class UntisError(Exception):
    """Base exception for everything raised by the untis_api package."""


class ConfigurationError(UntisError):
    """Required configuration is missing or invalid. Never retried internally."""


class AuthenticationError(UntisError):
    """The upstream service rejected the credentials or returned no session."""


class NotAuthenticatedError(UntisError):
    """A data fetch was attempted without a valid session."""

    def __init__(self, message: str = "Not authenticated. Call authenticate() first."):
        super().__init__(message)


class UntisTransportError(UntisError):
    """Raised when a request could not be completed at the transport level."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.original_exception = original_exception


class UntisHttpError(UntisTransportError):
    """The upstream service answered with a non-2xx status."""

    def __init__(self, status_code: int, url: Optional[str] = None):
        endpoint = url.split("?")[0] if url else "upstream"
        super().__init__(f"HTTP error {status_code} from {endpoint}", status_code=status_code)
        self.url = url


class UnsupportedEnvironmentError(UntisTransportError):
    """No usable transport exists in the current host environment."""


class UntisRpcError(UntisError):
    """A JSON-RPC response carried an ``error`` member."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(f"WebUntis API error: {message} (Code: {code})")
        self.message = message
        self.code = code
