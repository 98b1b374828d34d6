"""Authenticated request client — the fetch wrapper every API call goes through.

Learn: One logical call runs this state machine:

    CHECK_TOKEN → (REFRESH_IF_INVALID) → SEND
        ok  → DONE
        401 → REFRESH → SEND once more → DONE or FAIL
        other status → FAIL

The retry is a bounded for-loop (MAX_ATTEMPTS = 2), not recursion, so
"never more than one retry" is visible in the loop header. A 401 on
the second attempt is just an HttpError — no third try.

The client keeps no state of its own between calls. Everything
mutable lives in the token store, shared by every in-flight call.
"""

import json
import uuid
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import urlparse

import structlog

from mani_client.auth.store import CredentialStore
from mani_client.config import settings
from mani_client.errors import AuthenticationError, HttpError, TransportError
from mani_client.models import ApiRequest, ApiResponse, Body, TransportResponse, is_opaque
from mani_client.transport import HttpxTransport, SendBody, Transport

logger = structlog.get_logger()

MAX_ATTEMPTS = 2
JSON_CONTENT_TYPE = "application/json"


class RefreshFlow(Protocol):
    """What the client needs from the login/logout side."""

    async def refresh(self) -> bool: ...

    def logout(self) -> None: ...


def merge_headers(*layers: Mapping[str, str]) -> dict[str, str]:
    """Merge header mappings, later layers winning, names compared case-insensitively."""
    merged: dict[str, tuple[str, str]] = {}
    for layer in layers:
        for name, value in layer.items():
            merged[name.lower()] = (name, value)
    return dict(merged.values())


def _prepare_body(body: Optional[Body]) -> tuple[SendBody, dict[str, str]]:
    """Serialize structured bodies; pass opaque ones through without a Content-Type."""
    if is_opaque(body):
        return body, {}
    default_headers = {"Content-Type": JSON_CONTENT_TYPE}
    if body is None:
        return None, default_headers
    return json.dumps(body).encode("utf-8"), default_headers


def _decode_success(response: TransportResponse) -> Any:
    if not response.content:
        return None
    try:
        return json.loads(response.content)
    except ValueError as e:
        raise TransportError(
            f"Response body is not valid JSON (status {response.status})"
        ) from e


class ApiClient:
    """Issues authenticated requests against the backend origin."""

    def __init__(
        self,
        store: CredentialStore,
        flow: RefreshFlow,
        transport: Optional[Transport] = None,
        *,
        base_url: Optional[str] = None,
    ):
        self.store = store
        self.flow = flow
        self._owns_transport = transport is None
        self._transport = transport or HttpxTransport()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")

    def url_for(self, path: str) -> str:
        """Join a relative path to the base origin with exactly one slash."""
        parsed = urlparse(path)
        if parsed.scheme and parsed.netloc:
            raise ValueError(f"Expected a path relative to {self.base_url}, got {path!r}")
        return f"{self.base_url}/{path.lstrip('/')}"

    # ─── Verbs ───────────────────────────────────────────────

    async def get(self, path: str, headers: Optional[Mapping[str, str]] = None) -> ApiResponse:
        return await self.request("GET", path, headers=headers)

    async def post(
        self, path: str, body: Body, headers: Optional[Mapping[str, str]] = None
    ) -> ApiResponse:
        return await self.request("POST", path, body, headers)

    async def put(
        self, path: str, body: Body, headers: Optional[Mapping[str, str]] = None
    ) -> ApiResponse:
        return await self.request("PUT", path, body, headers)

    async def delete(self, path: str, headers: Optional[Mapping[str, str]] = None) -> ApiResponse:
        return await self.request("DELETE", path, headers=headers)

    # ─── Core ────────────────────────────────────────────────

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Body] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> ApiResponse:
        """Run one logical call: check/refresh token, send, retry once on 401.

        Raises AuthenticationError when the token can't be refreshed
        (after logging the user out), HttpError for any other non-2xx
        answer and TransportError when no decodable answer came back.
        """
        req = ApiRequest(
            method=method.upper(), path=path, body=body, headers=dict(headers or {})
        )
        url = self.url_for(req.path)
        content, default_headers = _prepare_body(req.body)

        with structlog.contextvars.bound_contextvars(
            call_id=uuid.uuid4().hex[:8], method=req.method, path=req.path
        ):
            for attempt in range(1, MAX_ATTEMPTS + 1):
                await self._ensure_credential()
                response = await self._transport.send(
                    req.method,
                    url,
                    merge_headers(default_headers, self.store.auth_header(), req.headers),
                    content,
                )
                logger.debug("mani.request.sent", attempt=attempt, status=response.status)

                if response.status != 401 or attempt == MAX_ATTEMPTS:
                    break

                # Locally valid token rejected by the server
                logger.info("mani.request.unauthorized", attempt=attempt)
                if not await self.flow.refresh():
                    self._logout_and_fail()

            if not response.ok:
                logger.warning("mani.request.failed", status=response.status)
                raise HttpError(response.status, response.error_body())
            return ApiResponse(data=_decode_success(response), status=response.status)

    async def _ensure_credential(self) -> None:
        if self.store.is_valid():
            return
        logger.info("mani.request.token_invalid")
        if not await self.flow.refresh():
            self._logout_and_fail()

    def _logout_and_fail(self) -> None:
        self.flow.logout()
        raise AuthenticationError()

    # ─── Lifecycle ───────────────────────────────────────────

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
