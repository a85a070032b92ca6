"""Wire message models exchanged with the relay."""

import base64
import binascii
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator

# The relay may correlate with either a JSON string or a JSON number. Strict
# members keep smart-mode union validation from converting one into the other.
CorrelationId = StrictInt | StrictFloat | StrictStr


class RegisterMessage(BaseModel):
    """First frame sent on every new relay connection."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["register"] = "register"
    user_id: Annotated[str, Field(alias="userId", description="Stored token or 'anonymous'")]
    port: Annotated[int, Field(ge=1, le=65535, description="Local port being exposed")]


class RegisteredMessage(BaseModel):
    """Relay acknowledgment carrying the public alias."""

    type: Literal["registered"]
    alias: Annotated[str, Field(min_length=1, description="Assigned public alias")]


class FileUpload(BaseModel):
    """One file attached to a multipart request."""

    fieldname: str
    originalname: str
    mimetype: str = "application/octet-stream"
    buffer: bytes

    @field_validator("buffer", mode="before")
    @classmethod
    def _decode_buffer(cls, value: Any) -> Any:
        # Node serializes Buffers as {"type": "Buffer", "data": [...]}
        if isinstance(value, dict):
            value = value.get("data")
        if isinstance(value, list):
            try:
                return bytes(value)
            except TypeError as exc:
                raise ValueError("buffer data must be a list of byte values") from exc
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as exc:
                raise ValueError("buffer data is not valid base64") from exc
        return value


class InboundRequestMessage(BaseModel):
    """An HTTP request the relay wants replayed against the local service."""

    model_config = ConfigDict(extra="ignore")

    id: CorrelationId
    method: Annotated[str, Field(min_length=1, description="HTTP method")]
    path: Annotated[str, Field(description="Request path including query string")]
    headers: Annotated[dict[str, str], Field(description="HTTP headers")] = {}
    body: Any = None
    files: list[FileUpload] = []
    type: str | None = None
    alias: str | None = None

    @field_validator("headers", mode="before")
    @classmethod
    def _flatten_header_values(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        return {
            name: ", ".join(str(item) for item in v) if isinstance(v, list) else str(v)
            for name, v in value.items()
            if v is not None
        }

    @field_validator("files", mode="before")
    @classmethod
    def _null_files(cls, value: Any) -> Any:
        return [] if value is None else value

    def header(self, name: str, default: str | None = None) -> str | None:
        """Look up a header value ignoring the case of its name."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


class BinaryBody(BaseModel):
    """Envelope for response bodies that cannot travel as text."""

    type: Literal["binary"] = "binary"
    data: Annotated[str, Field(description="Base64 encoded payload")]


class OutboundResponseMessage(BaseModel):
    """Reply to a single InboundRequestMessage."""

    id: CorrelationId
    status: Annotated[int, Field(description="HTTP status code")]
    headers: Annotated[dict[str, str], Field(description="Lower-cased response headers")] = {}
    body: Any = None
