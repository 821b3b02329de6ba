# src/cipher_relay/services/persistence.py
"""Durable message and user access for the relay.

The ORM is synchronous, so each operation opens its own session on a worker
thread. Reads are bounded by ``settings.persistence_timeout_seconds``; writes run
to completion or roll back under the database timeouts set in
``cipher_relay.db.session``, so a reported failure never leaves a commit
behind. Callers get immutable snapshots back, never live ORM instances.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import and_, desc, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cipher_relay.core.errors import PersistenceError
from cipher_relay.core.settings import settings
from cipher_relay.db.session import SessionLocal
from cipher_relay.db.time import isoformat_utc, utcnow
from cipher_relay.models import Message, User
from cipher_relay.schemas.message import HistoryItem

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class MessageRecord:
    """Snapshot of a stored message."""

    id: str
    sender_id: str
    receiver_id: str
    content_for_sender: dict[str, Any]
    content_for_receiver: dict[str, Any]
    timestamp: datetime
    read: bool

    @classmethod
    def from_model(cls, message: Message) -> MessageRecord:
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            content_for_sender=dict(message.content_for_sender),
            content_for_receiver=dict(message.content_for_receiver),
            timestamp=message.timestamp,
            read=message.read,
        )

    def content_for(self, viewer_id: str) -> dict[str, Any]:
        """Return the envelope `viewer_id` can decrypt, never the counterpart's."""
        if viewer_id == self.sender_id:
            return self.content_for_sender
        if viewer_id == self.receiver_id:
            return self.content_for_receiver
        raise ValueError(f"{viewer_id} is not a participant of message {self.id}")

    def to_history_item(self, viewer_id: str) -> HistoryItem:
        """Project the message to the copy `viewer_id` is allowed to see."""
        return HistoryItem(
            id=self.id,
            sender_id=self.sender_id,
            timestamp=isoformat_utc(self.timestamp),
            content=self.content_for(viewer_id),
        )


@dataclass(frozen=True)
class UserProfile:
    """Public profile fields used by the conversations list."""

    id: str
    username: str


def _between(user_a: str, user_b: str) -> Any:
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


class MessageRepository:
    """Create/find/update operations against message and user records."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self._timeout = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.persistence_timeout_seconds
        )

    async def _run(self, operation: str, fn: Callable[[Session], T], *, writes: bool = False) -> T:
        # Writes are bounded by the engine lock and statement timeouts. A worker
        # thread abandoned by wait_for would still commit.
        call = asyncio.to_thread(self._in_session, fn)
        try:
            if writes:
                return await call
            return await asyncio.wait_for(call, timeout=self._timeout)
        except TimeoutError as exc:
            logger.error("Persistence %s timed out after %ss", operation, self._timeout)
            raise PersistenceError(f"{operation} timed out") from exc
        except SQLAlchemyError as exc:
            logger.error("Persistence %s failed: %s", operation, exc, exc_info=True)
            raise PersistenceError(f"{operation} failed") from exc

    def _in_session(self, fn: Callable[[Session], T]) -> T:
        with self._session_factory() as session:
            try:
                return fn(session)
            except SQLAlchemyError:
                session.rollback()
                raise

    async def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        content_for_sender: dict[str, Any],
        content_for_receiver: dict[str, Any],
        timestamp: datetime | None = None,
    ) -> MessageRecord:
        """Persist a new message and return its stored snapshot."""

        def _create(session: Session) -> MessageRecord:
            message = Message(
                sender_id=sender_id,
                receiver_id=receiver_id,
                content_for_sender=content_for_sender,
                content_for_receiver=content_for_receiver,
                timestamp=timestamp or utcnow(),
                read=False,
            )
            session.add(message)
            session.commit()
            session.refresh(message)
            return MessageRecord.from_model(message)

        return await self._run("create_message", _create, writes=True)

    async def find_messages_between(self, user_a: str, user_b: str) -> list[MessageRecord]:
        """Return every message exchanged by the pair, newest first.

        Messages sharing a timestamp are ordered by id, which is stable but not
        the order they were stored in.
        """

        def _find(session: Session) -> list[MessageRecord]:
            stmt = (
                select(Message)
                .where(_between(user_a, user_b))
                .order_by(desc(Message.timestamp), desc(Message.id))
            )
            return [MessageRecord.from_model(m) for m in session.scalars(stmt)]

        return await self._run("find_messages_between", _find)

    async def mark_read(self, sender_id: str, receiver_id: str) -> int:
        """Flag unread messages from `sender_id` to `receiver_id` as read."""

        def _mark(session: Session) -> int:
            result = session.execute(
                update(Message)
                .where(
                    Message.sender_id == sender_id,
                    Message.receiver_id == receiver_id,
                    Message.read.is_(False),
                )
                .values(read=True)
            )
            session.commit()
            return int(result.rowcount or 0)

        return await self._run("mark_read", _mark, writes=True)

    async def count_unread(self, sender_id: str, receiver_id: str) -> int:
        """Count unread messages from `sender_id` to `receiver_id`."""

        def _count(session: Session) -> int:
            stmt = select(func.count(Message.id)).where(
                Message.sender_id == sender_id,
                Message.receiver_id == receiver_id,
                Message.read.is_(False),
            )
            return int(session.scalar(stmt) or 0)

        return await self._run("count_unread", _count)

    async def find_last_message(self, user_a: str, user_b: str) -> MessageRecord | None:
        """Return the newest message exchanged by the pair, if any."""

        def _last(session: Session) -> MessageRecord | None:
            stmt = (
                select(Message)
                .where(_between(user_a, user_b))
                .order_by(desc(Message.timestamp), desc(Message.id))
                .limit(1)
            )
            message = session.scalars(stmt).first()
            return MessageRecord.from_model(message) if message is not None else None

        return await self._run("find_last_message", _last)

    async def find_partner_ids(self, viewer_id: str) -> list[str]:
        """Return the distinct users `viewer_id` has sent to or received from."""

        def _partners(session: Session) -> list[str]:
            sent = select(Message.receiver_id.label("partner_id")).where(
                Message.sender_id == viewer_id
            )
            received = select(Message.sender_id.label("partner_id")).where(
                Message.receiver_id == viewer_id
            )
            rows = session.execute(sent.union(received)).scalars().all()
            return sorted(set(rows))

        return await self._run("find_partner_ids", _partners)

    async def find_users_by_ids(self, ids: Iterable[str]) -> list[UserProfile]:
        """Return profiles for the given user ids; unknown ids are skipped."""
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []

        def _users(session: Session) -> list[UserProfile]:
            stmt = select(User.id, User.username).where(User.id.in_(wanted))
            return [UserProfile(id=row.id, username=row.username) for row in session.execute(stmt)]

        return await self._run("find_users_by_ids", _users)
