"""Mani Church API client.

Async HTTP client for the Mani Church backend. Every request carries the
stored bearer token, expired tokens are refreshed before sending, and a
401 from the server triggers one refresh-and-retry before the user is
logged out.
"""

__version__ = "0.1.0"

from mani_client.auth.flow import AuthFlow
from mani_client.auth.store import Credential, FileTokenStore, TokenStore
from mani_client.client import ApiClient
from mani_client.errors import (
    AuthenticationError,
    ClientError,
    HttpError,
    TransportError,
)
from mani_client.models import ApiRequest, ApiResponse, Multipart

__all__ = [
    "ApiClient",
    "ApiRequest",
    "ApiResponse",
    "AuthFlow",
    "AuthenticationError",
    "ClientError",
    "Credential",
    "FileTokenStore",
    "HttpError",
    "Multipart",
    "TokenStore",
    "TransportError",
]
