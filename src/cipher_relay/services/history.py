# src/cipher_relay/services/history.py
"""Cache-aside read path for chat history and the conversations list."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any

from cipher_relay.core.errors import CacheError
from cipher_relay.core.settings import settings
from cipher_relay.db.time import isoformat_utc
from cipher_relay.schemas.message import ChatSummary
from cipher_relay.services.background import BackgroundDispatcher
from cipher_relay.services.cache import (
    CacheSynchronizer,
    ViewerCacheStore,
    chat_list_cache_key,
    decode_cached_list,
    viewer_cache_key,
)
from cipher_relay.services.persistence import MessageRepository, UserProfile

logger = logging.getLogger(__name__)

# Reported for a partner whose last message cannot be found.
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class HistoryReader:
    """Serves history and chat-list queries from cache, falling back to the store.

    Reads never fail because of the cache: a backend error is a miss and a
    corrupt entry is deleted and recomputed. Store failures propagate as
    ``PersistenceError``.
    """

    def __init__(
        self,
        repository: MessageRepository,
        store: ViewerCacheStore,
        dispatcher: BackgroundDispatcher,
        synchronizer: CacheSynchronizer,
        *,
        chat_list_ttl_seconds: int | None = None,
    ) -> None:
        self.repository = repository
        self.store = store
        self.dispatcher = dispatcher
        self.synchronizer = synchronizer
        self.chat_list_ttl_seconds = (
            chat_list_ttl_seconds
            if chat_list_ttl_seconds is not None
            else settings.chat_list_cache_ttl_seconds
        )

    async def get_history(self, viewer_id: str, other_user_id: str) -> list[dict[str, Any]]:
        """Return the pair's messages newest first, projected for `viewer_id`.

        Also marks the other party's messages to the viewer as read, in the
        background, whether or not the answer came from cache.
        """
        self.dispatcher.dispatch(
            self._mark_read(viewer_id, other_user_id),
            name=f"mark-read:{other_user_id}->{viewer_id}",
        )

        key = viewer_cache_key(viewer_id, other_user_id, viewer_id)
        cached = await self._read_cached(key)
        if cached is not None:
            logger.debug("History cache hit for %s", key)
            return cached

        logger.debug("History cache miss for %s", key)
        records = await self.repository.find_messages_between(viewer_id, other_user_id)
        items = [
            record.to_history_item(viewer_id).model_dump(by_alias=True, mode="json")
            for record in records
        ]
        if items:
            await self.synchronizer.populate_viewer_cache(key, items)
        return items

    async def get_chat_list(self, viewer_id: str) -> list[dict[str, Any]]:
        """Return every conversation partner with unread count and last activity."""
        key = chat_list_cache_key(viewer_id)
        cached = await self._read_cached(key)
        if cached is not None:
            logger.debug("Chat-list cache hit for %s", key)
            return cached

        partner_ids = await self.repository.find_partner_ids(viewer_id)
        partners = await self.repository.find_users_by_ids(partner_ids)
        summaries = await asyncio.gather(
            *(self._summarize(viewer_id, partner) for partner in partners)
        )
        rows = sorted(
            (summary.model_dump(by_alias=True) for summary in summaries),
            key=lambda row: row["lastMessageTimestamp"],
            reverse=True,
        )
        if rows:
            await self._write_cached(key, rows, self.chat_list_ttl_seconds)
        return rows

    async def _summarize(self, viewer_id: str, partner: UserProfile) -> ChatSummary:
        unread, last = await asyncio.gather(
            self.repository.count_unread(partner.id, viewer_id),
            self.repository.find_last_message(viewer_id, partner.id),
        )
        return ChatSummary(
            partner_id=partner.id,
            username=partner.username,
            unread_count=unread,
            last_message_timestamp=isoformat_utc(last.timestamp if last else _EPOCH),
        )

    async def _mark_read(self, viewer_id: str, other_user_id: str) -> None:
        updated = await self.repository.mark_read(other_user_id, viewer_id)
        if not updated:
            return
        # Unread counts in the viewer's chat list are now stale.
        try:
            await self.store.delete(chat_list_cache_key(viewer_id))
        except CacheError as exc:
            logger.warning("Failed to invalidate chat list for %s: %s", viewer_id, exc)

    async def _read_cached(self, key: str) -> list[Any] | None:
        try:
            raw = await self.store.get(key)
        except CacheError as exc:
            logger.warning("Cache read failed, falling back to store: %s", exc)
            return None
        try:
            return decode_cached_list(raw)
        except CacheError as exc:
            logger.warning("Dropping corrupt cache entry %s: %s", key, exc)
            try:
                await self.store.delete(key)
            except CacheError as delete_exc:
                logger.warning("Failed to delete corrupt entry %s: %s", key, delete_exc)
            return None

    async def _write_cached(self, key: str, items: list[dict[str, Any]], ttl_seconds: int) -> None:
        try:
            await self.store.set(key, json.dumps(items), ttl_seconds)
        except CacheError as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
