"""Replay of relay-described requests against the local service."""

import json
from dataclasses import dataclass
from typing import Any

import aiohttp
from multidict import CIMultiDict
from yarl import URL

from comzy.exceptions import LocalDispatchError
from comzy.logging import get_logger
from comzy.models import InboundRequestMessage

logger = get_logger(__name__)

# The HTTP layer computes these for the body it actually sends.
_TRANSPORT_HEADERS = frozenset({"host", "content-length", "transfer-encoding", "connection"})


@dataclass
class LocalResponse:
    """A completed response from the local service, body fully read."""

    status: int
    headers: CIMultiDict[str]
    body: bytes

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    @property
    def content_encoding(self) -> str | None:
        return self.headers.get("Content-Encoding")


def dump_json(value: Any) -> bytes:
    """Serialize a JSON value compactly as UTF-8 bytes."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def form_value(value: Any) -> str:
    """Render a body value as the text of a plain form field."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, (int, float)):
        return str(value)
    return dump_json(value).decode("utf-8")


def is_multipart_upload(request: InboundRequestMessage) -> bool:
    content_type = request.header("content-type") or ""
    return bool(request.files) and "multipart/form-data" in content_type.lower()


def build_form(request: InboundRequestMessage) -> aiohttp.FormData:
    """Rebuild a multipart body: plain fields first, then one part per file."""
    form = aiohttp.FormData(quote_fields=False)
    if isinstance(request.body, dict):
        for key, value in request.body.items():
            form.add_field(key, form_value(value))
    for upload in request.files:
        form.add_field(
            upload.fieldname,
            upload.buffer,
            filename=upload.originalname,
            content_type=upload.mimetype,
        )
    return form


class ReplayEngine:
    """Turns InboundRequestMessages into real HTTP calls on localhost."""

    def __init__(self, port: int, host: str = "localhost", timeout: float | None = None) -> None:
        self.port = port
        self.host = host
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def target_url(self, request: InboundRequestMessage) -> URL:
        """
        Build the local URL for a request.

        Raises:
            LocalDispatchError: If the path would change the URL authority
        """
        # Without a leading slash the path joins the authority, e.g. "@host:port/x".
        if request.path and not request.path.startswith("/"):
            raise LocalDispatchError("path must start with '/'", request.method, request.path)
        # The relay hands over an already-encoded path; keep it byte for byte.
        return URL(f"{self.base_url}{request.path}", encoded=True)

    def build_headers(self, request: InboundRequestMessage, multipart: bool) -> CIMultiDict[str]:
        headers: CIMultiDict[str] = CIMultiDict()
        for name, value in request.headers.items():
            if name.lower() in _TRANSPORT_HEADERS:
                continue
            if multipart and name.lower() == "content-type":
                continue
            headers[name] = value
        return headers

    def build_body(self, request: InboundRequestMessage) -> aiohttp.FormData | bytes | None:
        if is_multipart_upload(request):
            return build_form(request)
        if request.body is not None:
            return dump_json(request.body)
        return None

    async def dispatch(self, request: InboundRequestMessage) -> LocalResponse:
        """
        Replay a request against the local service.

        Args:
            request: Decoded inbound request

        Returns:
            The local response with its body read into memory

        Raises:
            LocalDispatchError: If the call cannot be built or completed
        """
        logger.info(f"{request.method} {request.path} -> {self.host}:{self.port}")

        url = self.target_url(request)
        multipart = is_multipart_upload(request)
        headers = self.build_headers(request, multipart)

        try:
            data = self.build_body(request)
            async with aiohttp.ClientSession(timeout=self._timeout, auto_decompress=False) as session:
                async with session.request(
                    method=request.method,
                    url=url,
                    headers=headers,
                    data=data,
                    allow_redirects=False,
                ) as response:
                    body = await response.read()
                    return LocalResponse(
                        status=response.status,
                        headers=CIMultiDict(response.headers),
                        body=body,
                    )
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            raise LocalDispatchError(str(exc) or type(exc).__name__, request.method, request.path) from exc
