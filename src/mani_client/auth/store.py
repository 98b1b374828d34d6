"""Credential storage — the single place the current token lives.

Learn: The backend issues a short-lived JWT access token plus a
long-lived refresh token. The client can't verify the signature (it
doesn't hold the server secret), but it can read the `exp` claim to
decide whether a token is still worth sending. That's all is_valid()
does — the server stays the authority and may still answer 401.

Lifecycle:
- set() on login
- read (is_valid / auth_header) before every request
- set() again when a refresh succeeds
- clear() on logout or when refresh fails for good
"""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Mapping, Optional, Protocol

import jwt
import structlog

from mani_client.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class Credential:
    """Access token plus the refresh token used to renew it."""

    access_token: str
    refresh_token: Optional[str] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        """Expiry from the JWT exp claim, or None if unreadable."""
        try:
            claims = jwt.decode(
                self.access_token, options={"verify_signature": False}
            )
        except jwt.InvalidTokenError:
            return None
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc)


class CredentialStore(Protocol):
    """What the request client needs from a store."""

    def is_valid(self) -> bool: ...

    def auth_header(self) -> Mapping[str, str]: ...


class TokenStore:
    """In-memory credential store."""

    def __init__(
        self,
        credential: Optional[Credential] = None,
        leeway_seconds: Optional[int] = None,
    ):
        self._credential = credential
        self._leeway = timedelta(
            seconds=settings.token_leeway_seconds
            if leeway_seconds is None
            else leeway_seconds
        )

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def is_valid(self) -> bool:
        """True if a token is stored and won't expire within the leeway.

        Tokens without a readable exp claim count as invalid.
        """
        if self._credential is None:
            return False
        expires_at = self._credential.expires_at
        if expires_at is None:
            return False
        return expires_at > datetime.now(timezone.utc) + self._leeway

    def auth_header(self) -> dict[str, str]:
        if self._credential is None:
            return {}
        return {"Authorization": f"Bearer {self._credential.access_token}"}

    def set(self, credential: Credential) -> None:
        self._credential = credential

    def clear(self) -> None:
        self._credential = None


class FileTokenStore(TokenStore):
    """Token store persisted to a JSON file (the CLI's "localStorage").

    The file uses the backend's field names ({"token", "refreshToken"})
    and is written with 0600 permissions.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        leeway_seconds: Optional[int] = None,
    ):
        self.path = Path(path or settings.credentials_file)
        super().__init__(self._load(), leeway_seconds=leeway_seconds)

    def _load(self) -> Optional[Credential]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return Credential(
                access_token=raw["token"],
                refresh_token=raw.get("refreshToken"),
            )
        except (ValueError, KeyError, TypeError) as e:
            # Corrupt file: behave as logged out, the next login overwrites it
            logger.warning("mani.store.unreadable", path=str(self.path), error=str(e))
            return None

    def set(self, credential: Credential) -> None:
        super().set(credential)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"token": credential.access_token}
        if credential.refresh_token:
            payload["refreshToken"] = credential.refresh_token
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            # O_CREAT mode only applies to new files
            os.fchmod(f.fileno(), 0o600)
            json.dump(payload, f)

    def clear(self) -> None:
        super().clear()
        self.path.unlink(missing_ok=True)
