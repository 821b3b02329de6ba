# src/cipher_relay/models/message.py
"""Models describing direct messages between users."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from cipher_relay.db.session import Base
from cipher_relay.db.time import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class Message(Base):
    """Encrypted message exchanged between two users.

    Every message carries two envelopes: one the sender can decrypt and one
    the receiver can decrypt. Neither is ever decrypted on the server.
    """

    __tablename__ = "message"
    __table_args__ = (
        Index("ix_message_pair_timestamp", "sender_id", "receiver_id", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    sender_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_account.id"), nullable=False
    )
    receiver_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_account.id"), nullable=False
    )

    content_for_sender: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    content_for_receiver: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
