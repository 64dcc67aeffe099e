"""Custom exceptions for localgpt services."""

from typing import Any, Optional


class LocalGPTError(Exception):
    """Base exception for provider, stream and retrieval errors."""


class Cancelled(LocalGPTError):
    """Raised when an operation is aborted through its cancel token.

    This is a user-initiated stop, not a failure. Callers should stop
    updating their display and must not report it as an error.
    """

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class ProviderUnreachable(LocalGPTError):
    """Raised when a provider cannot be reached or rejects the request.

    Covers connection errors, timeouts and non-2xx HTTP responses. This is
    the only error class that triggers a fallback attempt.

    Attributes:
        url: Request URL that failed
        status_code: HTTP status code, if the server answered at all
        detail: Server-supplied error message, if any
    """

    def __init__(
        self,
        url: str,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        """Initialize ProviderUnreachable.

        Args:
            url: Request URL that failed
            status_code: HTTP status code, if the server answered
            detail: Server-supplied or transport error message
        """
        self.url = url
        self.status_code = status_code
        self.detail = detail

        if status_code is not None:
            message = f"Provider at {url} returned HTTP {status_code}"
        else:
            message = f"Could not reach provider at {url}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StreamProtocolError(LocalGPTError):
    """Raised when a response stream cannot be decoded.

    Attributes:
        payload: Structured error envelope sent by the server, if one was found
    """

    def __init__(self, message: str, payload: Any = None):
        self.payload = payload
        super().__init__(message)


class EmbeddingUnavailable(LocalGPTError):
    """Raised when an embedding vector cannot be obtained for a text."""
