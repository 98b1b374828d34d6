"""Login, token refresh and logout against the backend's auth routes.

Learn: Mirrors the backend's token endpoints:
- POST /api/auth/login   → email/password → {token, refreshToken}
- POST /api/auth/refresh → {refreshToken} → {token, refreshToken?}

refresh() never raises for an ordinary failure — it answers True
(new credential stored) or False (couldn't refresh). Deciding what a
False means is the request client's job.

Concurrent refresh: when several calls find the token expired at the
same moment, each would otherwise POST /refresh on its own, and with
rotating refresh tokens all but one of those would fail. With
share_refresh on (the default) the first caller starts one refresh
task and every other caller awaits that same task.
"""

import asyncio
import json
from typing import Any, Callable, Optional

import structlog

from mani_client.auth.store import Credential, TokenStore
from mani_client.config import settings
from mani_client.errors import AuthenticationError, HttpError, TransportError
from mani_client.transport import HttpxTransport, Transport

logger = structlog.get_logger()


def _extract_credential(
    payload: Any, fallback_refresh: Optional[str] = None
) -> Optional[Credential]:
    """Pull tokens out of a login/refresh response body.

    Accepts the Express backend's camelCase fields and the snake_case
    OAuth-style ones.
    """
    if not isinstance(payload, dict):
        return None
    access = payload.get("token") or payload.get("access_token")
    if not isinstance(access, str) or not access:
        return None
    refresh = (
        payload.get("refreshToken") or payload.get("refresh_token") or fallback_refresh
    )
    return Credential(access_token=access, refresh_token=refresh)


def _decode(content: bytes) -> Any:
    if not content:
        return None
    return json.loads(content)


class AuthFlow:
    """Refresh/logout flow bound to one token store."""

    def __init__(
        self,
        store: TokenStore,
        transport: Optional[Transport] = None,
        *,
        base_url: Optional[str] = None,
        login_path: Optional[str] = None,
        refresh_path: Optional[str] = None,
        login_url: Optional[str] = None,
        on_logout: Optional[Callable[[str], None]] = None,
        share_refresh: Optional[bool] = None,
    ):
        self.store = store
        self._owns_transport = transport is None
        self._transport = transport or HttpxTransport()
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._login_path = login_path or settings.login_path
        self._refresh_path = refresh_path or settings.refresh_path
        self._login_url = login_url or settings.login_url
        self._on_logout = on_logout
        self._share_refresh = (
            settings.share_refresh if share_refresh is None else share_refresh
        )
        self._inflight: Optional[asyncio.Task] = None

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    # ─── Login ───────────────────────────────────────────────

    async def login(self, email: str, password: str) -> Credential:
        """Exchange email/password for tokens and store them."""
        response = await self._transport.send(
            "POST",
            self._url(self._login_path),
            {"Content-Type": "application/json"},
            json.dumps({"email": email, "password": password}).encode(),
        )
        if response.status == 401:
            logger.info("mani.auth.login_rejected", email=email)
            raise AuthenticationError("Invalid credentials")
        if not response.ok:
            raise HttpError(response.status, response.error_body())

        try:
            payload = _decode(response.content)
        except ValueError as e:
            raise TransportError("Login response is not valid JSON") from e
        credential = _extract_credential(payload)
        if credential is None:
            raise TransportError("Login response carries no token")

        self.store.set(credential)
        logger.info("mani.auth.logged_in", email=email)
        return credential

    # ─── Refresh ─────────────────────────────────────────────

    async def refresh(self) -> bool:
        """Try to replace the stored credential. True on success."""
        if not self._share_refresh:
            return await self._refresh_once()

        if self._inflight is None:
            self._inflight = asyncio.create_task(self._refresh_once())
            self._inflight.add_done_callback(self._refresh_finished)
        else:
            logger.debug("mani.auth.refresh_joined")
        # shield: a cancelled waiter must not cancel the refresh for the others
        return await asyncio.shield(self._inflight)

    def _refresh_finished(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh_once(self) -> bool:
        current = self.store.credential
        if current is None or not current.refresh_token:
            logger.info("mani.auth.refresh_skipped", reason="no_refresh_token")
            return False

        logger.info("mani.auth.refresh_started")
        try:
            response = await self._transport.send(
                "POST",
                self._url(self._refresh_path),
                {"Content-Type": "application/json"},
                json.dumps({"refreshToken": current.refresh_token}).encode(),
            )
        except TransportError as e:
            logger.warning("mani.auth.refresh_failed", error=str(e))
            return False

        if not response.ok:
            logger.warning("mani.auth.refresh_failed", status=response.status)
            return False

        try:
            payload = _decode(response.content)
        except ValueError:
            logger.warning("mani.auth.refresh_failed", error="invalid_json")
            return False
        credential = _extract_credential(payload, current.refresh_token)
        if credential is None:
            logger.warning("mani.auth.refresh_failed", error="no_token")
            return False

        self.store.set(credential)
        logger.info("mani.auth.refresh_ok")
        return True

    # ─── Logout ──────────────────────────────────────────────

    def logout(self) -> None:
        """Clear the credential and send the user back to the login page."""
        self.store.clear()
        logger.info("mani.auth.logged_out", redirect=self._login_url)
        if self._on_logout is not None:
            self._on_logout(self._login_url)

    # ─── Lifecycle ───────────────────────────────────────────

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "AuthFlow":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
