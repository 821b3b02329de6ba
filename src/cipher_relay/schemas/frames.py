# src/cipher_relay/schemas/frames.py
"""WebSocket frame models.

Inbound frames form a closed union discriminated on ``type``; anything that
does not match one of the variants is rejected by ``parse_inbound_frame``.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from cipher_relay.core.errors import ValidationError

from .envelope import Envelope


class AuthFrame(BaseModel):
    """First frame on a connection carrying the bearer token."""

    type: Literal["auth"]
    token: str | None = None


class MessageFrame(BaseModel):
    """A message to relay; envelopes may arrive as objects or JSON strings."""

    type: Literal["message"]
    receiver_id: str = Field(..., alias="receiverId", min_length=1)
    content_for_sender: Any = Field(..., alias="contentForSender")
    content_for_receiver: Any = Field(..., alias="contentForReceiver")

    model_config = ConfigDict(populate_by_name=True)


InboundFrame = Annotated[AuthFrame | MessageFrame, Field(discriminator="type")]

_INBOUND_ADAPTER: TypeAdapter[AuthFrame | MessageFrame] = TypeAdapter(InboundFrame)


def parse_inbound_frame(raw: str | bytes) -> AuthFrame | MessageFrame:
    """Decode a raw text frame into one of the inbound variants.

    Raises:
        ValidationError: If the payload is not JSON or matches no variant.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Frame is not valid JSON") from exc
    try:
        return _INBOUND_ADAPTER.validate_python(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Frame does not match any variant: {exc.error_count()} errors") from exc


class OutboundFrame(BaseModel):
    """Base class for server to client frames."""

    model_config = ConfigDict(populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """Return the JSON-ready wire representation."""
        return self.model_dump(by_alias=True, mode="json")


class AuthSuccessFrame(OutboundFrame):
    type: Literal["auth_success"] = "auth_success"
    message: str = "Authentication successful"


class AuthErrorFrame(OutboundFrame):
    type: Literal["auth_error"] = "auth_error"
    message: str = "Invalid token"


class ErrorFrame(OutboundFrame):
    type: Literal["error"] = "error"
    message: str


class DeliveryFrame(OutboundFrame):
    """Real-time delivery of a message to a live connection."""

    type: Literal["message"] = "message"
    id: str
    sender_id: str = Field(..., alias="senderId")
    content: Envelope
    timestamp: str


class SentAckFrame(OutboundFrame):
    type: Literal["message_sent_ack"] = "message_sent_ack"
    message_id: str = Field(..., alias="messageId")
