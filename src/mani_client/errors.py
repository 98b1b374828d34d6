"""Client error taxonomy.

Learn: Three ways a call can fail, and callers usually want to tell
them apart:
1. AuthenticationError — the credential could not be refreshed; the
   user has already been logged out.
2. HttpError — the server answered with a non-2xx status.
3. TransportError — no usable answer at all (network down, garbage body).

All three share ClientError so `except ClientError` catches everything
this package raises on purpose.
"""

from typing import Any, Optional


class ClientError(Exception):
    """Base class for every error raised by the API client."""


class AuthenticationError(ClientError):
    """Raised when the credential is unusable and refreshing it failed."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class HttpError(ClientError):
    """Raised for a non-2xx response. Carries the status code and raw body."""

    def __init__(self, status: int, body: Optional[Any] = None):
        self.status = status
        self.body = body
        super().__init__(f"HTTP error! status: {status}")


class TransportError(ClientError):
    """Raised when the request never produced a decodable response."""
