"""Conversion between relay frames and wire message models."""

import json

from pydantic import BaseModel, ValidationError

from comzy.exceptions import MalformedMessage
from comzy.models import InboundRequestMessage, RegisteredMessage

RelayMessage = RegisteredMessage | InboundRequestMessage


def decode_message(raw: str | bytes) -> RelayMessage:
    """
    Decode one relay frame.

    A frame typed ``registered`` is the registration acknowledgment; every
    other object is treated as an inbound request.

    Raises:
        MalformedMessage: If the frame is not a JSON object of either shape
    """
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise MalformedMessage(f"invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedMessage(f"expected a JSON object, got {type(data).__name__}")

    model = RegisteredMessage if data.get("type") == "registered" else InboundRequestMessage
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedMessage(f"invalid {model.__name__}: {exc.error_count()} error(s)\n{exc}") from exc


def encode_message(message: BaseModel) -> str:
    """Serialize a message model to a compact JSON frame using wire field names."""
    return message.model_dump_json(by_alias=True)
