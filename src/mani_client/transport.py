"""Network transport — the only module that touches httpx for API calls.

Learn: The client never talks to httpx itself. It hands a method, an
absolute URL, final headers and an already-prepared body to a
Transport and gets back a status plus raw bytes. Tests swap in
httpx.MockTransport underneath, or a fake Transport entirely.
"""

from typing import Mapping, Optional, Protocol, Union

import httpx
import structlog

from mani_client.config import settings
from mani_client.errors import TransportError
from mani_client.models import Multipart, TransportResponse

logger = structlog.get_logger()

SendBody = Optional[Union[bytes, Multipart]]


class Transport(Protocol):
    """Anything that can put one HTTP request on the wire."""

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: SendBody = None,
    ) -> TransportResponse: ...


class HttpxTransport:
    """Transport backed by a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.request_timeout
        )

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: SendBody = None,
    ) -> TransportResponse:
        kwargs: dict = {"headers": dict(headers)}
        if isinstance(body, Multipart):
            # httpx writes the multipart Content-Type (with boundary) itself
            kwargs["files"] = [
                (name, item) for name, items in body.files.items() for item in items
            ]
            if body.data:
                kwargs["data"] = dict(body.data)
        elif body is not None:
            kwargs["content"] = bytes(body)

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            # also covers DecodingError from a corrupt compressed body
            logger.warning(
                "mani.transport.failed", method=method, url=url, error=str(e)
            )
            raise TransportError(f"{method} {url} failed: {e}") from e

        return TransportResponse(
            status=response.status_code,
            content=response.content,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
