# src/cipher_relay/schemas/message.py
"""Read-path schemas for chat history and the conversations list."""

from pydantic import BaseModel, ConfigDict, Field

from .envelope import Envelope


class HistoryItem(BaseModel):
    """A message projected to a single viewer's decryptable envelope."""

    id: str
    sender_id: str = Field(..., alias="senderId")
    timestamp: str
    content: Envelope

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ChatSummary(BaseModel):
    """One row of a viewer's conversations list."""

    partner_id: str = Field(..., alias="partnerId")
    username: str
    unread_count: int = Field(..., alias="unreadCount")
    last_message_timestamp: str = Field(..., alias="lastMessageTimestamp")

    model_config = ConfigDict(populate_by_name=True)
