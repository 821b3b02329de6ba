# src/cipher_relay/schemas/__init__.py
"""Pydantic schemas for the Cipher Relay API and WebSocket frames."""

from .envelope import Envelope
from .frames import (
    AuthErrorFrame,
    AuthFrame,
    AuthSuccessFrame,
    DeliveryFrame,
    ErrorFrame,
    MessageFrame,
    SentAckFrame,
    parse_inbound_frame,
)
from .message import ChatSummary, HistoryItem

__all__ = [
    "Envelope",
    "AuthFrame", "MessageFrame", "parse_inbound_frame",
    "AuthSuccessFrame", "AuthErrorFrame", "ErrorFrame", "DeliveryFrame", "SentAckFrame",
    "HistoryItem", "ChatSummary",
]
