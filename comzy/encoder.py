"""Serialization of local responses into relay response messages."""

import base64
import json
from collections.abc import Iterable
from typing import Any

from comzy.models import BinaryBody, CorrelationId, OutboundResponseMessage
from comzy.replay import LocalResponse

_BINARY_PREFIXES = ("image/", "video/", "audio/")
_BINARY_MARKERS = ("application/octet-stream", "application/pdf")


def is_binary_content_type(content_type: str) -> bool:
    ctype = content_type.lower()
    return ctype.startswith(_BINARY_PREFIXES) or any(marker in ctype for marker in _BINARY_MARKERS)


def is_encoded(content_encoding: str | None) -> bool:
    """True when the body is compressed and can no longer be read as text."""
    return bool(content_encoding) and content_encoding.strip().lower() != "identity"


def classify_body(content_type: str, raw: bytes, content_encoding: str | None = None) -> Any:
    """
    Pick the wire representation of a response body.

    Binary media types and content-encoded bodies travel as a base64
    envelope, JSON is parsed when it parses, everything else is text.
    """
    if is_binary_content_type(content_type) or is_encoded(content_encoding):
        return BinaryBody(data=base64.b64encode(raw).decode("ascii")).model_dump()

    if "application/json" in content_type.lower():
        try:
            return json.loads(raw)
        except ValueError:
            pass

    return raw.decode("utf-8", errors="replace")


def flatten_headers(headers: Iterable[tuple[str, str]] | Any) -> dict[str, str]:
    """Lower-case header names, keeping the first value of repeated headers."""
    items = headers.items() if hasattr(headers, "items") else headers
    flat: dict[str, str] = {}
    for name, value in items:
        flat.setdefault(name.lower(), value)
    return flat


def encode_response(request_id: CorrelationId, response: LocalResponse) -> OutboundResponseMessage:
    return OutboundResponseMessage(
        id=request_id,
        status=response.status,
        headers=flatten_headers(response.headers),
        body=classify_body(response.content_type, response.body, response.content_encoding),
    )


def error_response(request_id: CorrelationId) -> OutboundResponseMessage:
    """Generic 500 answer for requests that could not be replayed."""
    return OutboundResponseMessage(
        id=request_id,
        status=500,
        headers={"content-type": "application/json"},
        body={"error": "Internal server error"},
    )
