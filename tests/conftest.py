"""Test fixtures — tokens, a scripted transport and httpx mock wiring.

Learn: Nothing here touches the network. Two levels of fake:

1. ScriptedTransport replaces the Transport entirely. It replays a
   queue of canned TransportResponses (or raises queued exceptions)
   and records every send, so tests can assert exactly what went out.
2. mock_transport wraps a real HttpxTransport around httpx.MockTransport,
   for tests that want the real header/body encoding of httpx.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
import jwt
import pytest
import structlog

from mani_client.config import settings
from mani_client.models import TransportResponse
from mani_client.transport import HttpxTransport

BASE_URL = "http://api.test"


def make_token(expires_in: float = 3600, sub: str = "admin") -> str:
    """Signed JWT whose exp is `expires_in` seconds from now (negative = expired)."""
    payload = {
        "sub": sub,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, "test-secret", algorithm="HS256")


class ScriptedTransport:
    """Transport that replays queued responses and records every send."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.sent: list[dict] = []

    async def send(self, method, url, headers, body=None):
        self.sent.append(
            {"method": method, "url": url, "headers": dict(headers), "body": body}
        )
        if not self.responses:
            raise AssertionError(f"unexpected send: {method} {url}")
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


def ok(content: bytes = b'{"ok": true}', status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, content=content)


def status(code: int, content: bytes = b"") -> TransportResponse:
    return TransportResponse(status=code, content=content)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Point every test at a fake origin and a throwaway credentials file."""
    monkeypatch.setattr(settings, "api_base_url", BASE_URL)
    monkeypatch.setattr(settings, "credentials_file", tmp_path / "credentials.json")
    monkeypatch.setattr(settings, "token_leeway_seconds", 0)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo configure_logging() calls made by CLI tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def mock_transport() -> Callable[[Callable], HttpxTransport]:
    """Build an HttpxTransport whose requests are answered by `handler`."""

    def build(handler) -> HttpxTransport:
        return HttpxTransport(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

    return build
