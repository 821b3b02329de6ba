# src/cipher_relay/services/ingest.py
"""Message ingest: validate, persist, warm caches, fan out, acknowledge."""

from __future__ import annotations

import asyncio
import logging

from cipher_relay.core.errors import PersistenceError, ValidationError
from cipher_relay.core.settings import settings
from cipher_relay.schemas.frames import DeliveryFrame, ErrorFrame, MessageFrame, SentAckFrame
from cipher_relay.schemas.message import HistoryItem
from cipher_relay.services.cache import CacheSynchronizer, viewer_cache_key
from cipher_relay.services.envelope import INVALID_CONTENT_FORMAT, parse_envelope
from cipher_relay.services.persistence import MessageRecord, MessageRepository
from cipher_relay.services.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

SEND_FAILED = "Message could not be sent"


class IngestPipeline:
    """Runs one inbound message frame through the delivery pipeline.

    Persistence is the only step allowed to fail the send. Cache maintenance and
    live delivery are best effort, and the sender is acknowledged as soon as
    the record is durable regardless of whether anyone was online to receive it.
    """

    def __init__(
        self,
        repository: MessageRepository,
        synchronizer: CacheSynchronizer,
        registry: ConnectionRegistry,
        *,
        echo_to_sender: bool | None = None,
    ) -> None:
        self.repository = repository
        self.synchronizer = synchronizer
        self.registry = registry
        self.echo_to_sender = (
            settings.echo_to_sender if echo_to_sender is None else echo_to_sender
        )

    async def ingest(self, connection: Connection, frame: MessageFrame) -> MessageRecord | None:
        """Process `frame` sent on an authenticated `connection`.

        Returns the stored record, or None if the message was rejected.
        """
        sender_id = connection.identity
        if sender_id is None:
            raise RuntimeError("ingest called on an unauthenticated connection")
        receiver_id = frame.receiver_id

        try:
            for_sender = parse_envelope(frame.content_for_sender)
            for_receiver = parse_envelope(frame.content_for_receiver)
        except ValidationError as exc:
            logger.info("Rejected message from %s: %s", sender_id, exc)
            await connection.send(ErrorFrame(message=INVALID_CONTENT_FORMAT).dump())
            return None

        try:
            record = await self.repository.create_message(
                sender_id,
                receiver_id,
                for_sender.model_dump(),
                for_receiver.model_dump(),
            )
        except PersistenceError:
            await connection.send(ErrorFrame(message=SEND_FAILED).dump())
            return None

        sender_view = record.to_history_item(sender_id)
        receiver_view = record.to_history_item(receiver_id)

        await self._update_caches(record, sender_view, receiver_view)
        await self._invalidate_chat_lists(record)
        await self._fan_out(connection, record, sender_view, receiver_view)

        await connection.send(SentAckFrame(message_id=record.id).dump())
        return record

    async def _update_caches(
        self,
        record: MessageRecord,
        sender_view: HistoryItem,
        receiver_view: HistoryItem,
    ) -> None:
        updates = {
            viewer_cache_key(record.sender_id, record.receiver_id, record.sender_id): sender_view,
            viewer_cache_key(record.sender_id, record.receiver_id, record.receiver_id): receiver_view,
        }
        results = await asyncio.gather(
            *(
                self.synchronizer.prepend_to_viewer_cache(key, view.model_dump(by_alias=True, mode="json"))
                for key, view in updates.items()
            ),
            return_exceptions=True,
        )
        for key, result in zip(updates, results):
            if isinstance(result, Exception):
                logger.warning("Viewer cache update for %s raised: %s", key, result)

    async def _invalidate_chat_lists(self, record: MessageRecord) -> None:
        try:
            await self.synchronizer.invalidate_chat_lists(record.sender_id, record.receiver_id)
        except Exception as exc:
            logger.warning("Chat-list invalidation for message %s raised: %s", record.id, exc)

    async def _fan_out(
        self,
        origin: Connection,
        record: MessageRecord,
        sender_view: HistoryItem,
        receiver_view: HistoryItem,
    ) -> None:
        delivered: set[int] = set()

        receiver_conn = await self.registry.lookup(record.receiver_id)
        if receiver_conn is not None:
            await self._deliver(receiver_conn, receiver_view)
            delivered.add(id(receiver_conn))
        else:
            logger.debug("Receiver %s offline; message %s left for history", record.receiver_id, record.id)

        if not self.echo_to_sender:
            return
        sender_conn = await self.registry.lookup(record.sender_id)
        if sender_conn is not None and id(sender_conn) not in delivered:
            await self._deliver(sender_conn, sender_view)

    async def _deliver(self, connection: Connection, view: HistoryItem) -> None:
        frame = DeliveryFrame(
            id=view.id,
            sender_id=view.sender_id,
            content=view.content,
            timestamp=view.timestamp,
        )
        try:
            await connection.send(frame.dump())
        except Exception as exc:
            logger.warning("Live delivery to %s failed: %s", connection.identity, exc)
