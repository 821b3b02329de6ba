# src/cipher_relay/services/relay.py
"""Per-connection frame dispatch and service wiring for the relay."""

from __future__ import annotations

import logging

from cipher_relay.core.errors import ValidationError
from cipher_relay.schemas.frames import AuthFrame, ErrorFrame, MessageFrame, parse_inbound_frame
from cipher_relay.services.background import BackgroundDispatcher
from cipher_relay.services.cache import CacheSynchronizer, ViewerCacheStore, create_redis_client
from cipher_relay.services.history import HistoryReader
from cipher_relay.services.ingest import IngestPipeline
from cipher_relay.services.persistence import MessageRepository
from cipher_relay.services.registry import Connection, ConnectionRegistry
from cipher_relay.services.session_auth import SessionAuthenticator

logger = logging.getLogger(__name__)

INVALID_MESSAGE_FORMAT = "Invalid message format"
NOT_AUTHENTICATED = "Not authenticated"


class RelayHub:
    """Owns the shared relay state and routes each inbound frame.

    One hub serves every connection in the process. Each connection task calls
    `handle_frame` for every text frame it receives and `disconnect` when the
    transport goes away.
    """

    def __init__(
        self,
        repository: MessageRepository,
        store: ViewerCacheStore,
        *,
        registry: ConnectionRegistry | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        synchronizer: CacheSynchronizer | None = None,
        echo_to_sender: bool | None = None,
    ) -> None:
        self.repository = repository
        self.store = store
        self.registry = registry or ConnectionRegistry()
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.synchronizer = synchronizer or CacheSynchronizer(store)
        self.authenticator = SessionAuthenticator(self.registry)
        self.pipeline = IngestPipeline(
            repository,
            self.synchronizer,
            self.registry,
            echo_to_sender=echo_to_sender,
        )
        self.history = HistoryReader(repository, store, self.dispatcher, self.synchronizer)

    async def handle_frame(self, connection: Connection, raw: str | bytes) -> None:
        """Process one raw frame received on `connection`."""
        if connection.is_closed:
            return

        try:
            frame = parse_inbound_frame(raw)
        except ValidationError as exc:
            logger.info("Malformed frame from %s: %s", connection.identity or "anonymous", exc)
            await connection.send(ErrorFrame(message=INVALID_MESSAGE_FORMAT).dump())
            return

        try:
            if isinstance(frame, AuthFrame):
                await self.authenticator.authenticate(connection, frame)
            elif isinstance(frame, MessageFrame):
                if not connection.is_authenticated:
                    await connection.send(ErrorFrame(message=NOT_AUTHENTICATED).dump())
                    return
                await self.pipeline.ingest(connection, frame)
            else:  # pragma: no cover - closed union
                raise TypeError(f"Unhandled frame type {type(frame).__name__}")
        except Exception:
            logger.error("Unhandled error processing %s frame", frame.type, exc_info=True)
            await connection.send(ErrorFrame(message=INVALID_MESSAGE_FORMAT).dump())

    async def disconnect(self, connection: Connection) -> None:
        """Forget `connection` after its transport closed; safe to call twice."""
        connection.mark_closed()
        if connection.identity is not None:
            removed = await self.registry.deregister(connection.identity, connection)
            if removed:
                logger.info("Connection for %s closed", connection.identity)

    async def aclose(self) -> None:
        """Wait for background side effects and release the cache client."""
        await self.dispatcher.drain()
        await self.store.close()


class _RelayHubSingleton:
    _instance: RelayHub | None = None

    @classmethod
    def get_instance(cls) -> RelayHub:
        if cls._instance is None:
            cls._instance = RelayHub(
                MessageRepository(),
                ViewerCacheStore(create_redis_client()),
            )
        return cls._instance

    @classmethod
    def reset(cls) -> RelayHub | None:
        instance, cls._instance = cls._instance, None
        return instance


def get_relay_hub() -> RelayHub:
    """Return the process-wide relay hub."""
    return _RelayHubSingleton.get_instance()


async def shutdown_relay_hub() -> None:
    """Tear down the process-wide hub if one was created."""
    hub = _RelayHubSingleton.reset()
    if hub is not None:
        await hub.aclose()
