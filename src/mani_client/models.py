"""Request and response value objects.

Learn: A request body is either a structured payload (dicts, lists,
scalars) that the client serializes to JSON, or an opaque payload
(raw bytes or a Multipart form) that goes to the transport untouched.
Opaque bodies never get a forced Content-Type — for multipart the
transport has to write its own boundary into that header.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union


@dataclass(frozen=True)
class Multipart:
    """A multipart/form-data body.

    files maps a field name to a list of (filename, content, content_type)
    tuples, so one field can carry several files — the media upload form
    sends every selected file under the same "media" field.
    """

    files: Mapping[str, list[tuple[str, bytes, str]]] = field(default_factory=dict)
    data: Mapping[str, str] = field(default_factory=dict)


# Structured payloads are JSON-serializable values; the rest go out as-is
JsonPayload = Union[dict, list, str, int, float, bool]
Body = Union[Multipart, bytes, bytearray, JsonPayload]


def is_opaque(body: Body) -> bool:
    """True for bodies the transport must send as-is."""
    return isinstance(body, (Multipart, bytes, bytearray))


@dataclass(frozen=True)
class ApiRequest:
    """Everything needed to (re)issue one logical call."""

    method: str
    path: str
    body: Optional[Body] = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiResponse:
    """Decoded response body plus status code. data is None for empty bodies."""

    data: Any
    status: int


@dataclass(frozen=True)
class TransportResponse:
    """Raw answer from the transport, before decoding."""

    status: int
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def error_body(self) -> Any:
        """Best-effort body for HttpError: parsed JSON, else text, never raises."""
        if not self.content:
            return None
        try:
            return json.loads(self.content)
        except ValueError:
            return self.content.decode("utf-8", errors="replace")
