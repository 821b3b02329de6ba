# src/cipher_relay/models/user.py
"""SQLAlchemy model for registered chat users."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cipher_relay.db.session import Base
from cipher_relay.db.time import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """A chat participant.

    Accounts are created and authenticated by an external service; the relay
    only reads them to resolve token subjects and chat-list partner profiles.
    """

    __tablename__ = "user_account"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    # PEM encoded key material uploaded by the client; never used server side.
    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="USER")
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
