# src/cipher_relay/services/registry.py
"""Live connection bookkeeping for the relay."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """The subset of a WebSocket the relay needs."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ConnectionState(str, Enum):
    """Lifecycle of a relay connection."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class Connection:
    """One bidirectional client channel and the identity bound to it."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self.identity: str | None = None
        self.state = ConnectionState.UNAUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.state is ConnectionState.AUTHENTICATED

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def bind(self, identity: str) -> None:
        """Attach an authenticated identity for the rest of the connection's life."""
        self.identity = identity
        self.state = ConnectionState.AUTHENTICATED

    async def send(self, frame: dict[str, Any]) -> None:
        """Send a JSON frame unless the connection has been closed."""
        if self.is_closed:
            return
        await self.transport.send_json(frame)

    def mark_closed(self) -> None:
        """Record that the peer went away without closing the transport again."""
        self.state = ConnectionState.CLOSED

    async def close(self, code: int = 1000) -> None:
        """Close the transport once; later calls do nothing."""
        if self.is_closed:
            return
        self.state = ConnectionState.CLOSED
        await self.transport.close(code=code)

    def __repr__(self) -> str:
        return f"Connection(identity={self.identity!r}, state={self.state.value})"


class ConnectionRegistry:
    """Maps each identity to its single routable connection.

    A newer registration for the same identity replaces the older one without
    closing it; the superseded connection can still send but no longer receives
    fan-out.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    async def register(self, identity: str, connection: Connection) -> Connection | None:
        """Route `identity` to `connection` and return the connection it replaced."""
        async with self._lock:
            previous = self._connections.get(identity)
            self._connections[identity] = connection
        if previous is not None and previous is not connection:
            logger.info("Identity %s re-registered; previous connection superseded", identity)
            return previous
        return None

    async def deregister(self, identity: str, connection: Connection | None = None) -> bool:
        """Remove the route for `identity`.

        When `connection` is given the route is only removed if it still points
        at that connection, so a superseded connection closing does not unroute
        its replacement. Returns True if a route was removed.
        """
        async with self._lock:
            current = self._connections.get(identity)
            if current is None:
                return False
            if connection is not None and current is not connection:
                return False
            del self._connections[identity]
            return True

    async def lookup(self, identity: str) -> Connection | None:
        """Return the live connection for `identity`, if any."""
        async with self._lock:
            return self._connections.get(identity)

    async def online_identities(self) -> list[str]:
        """Return a snapshot of the identities currently routable."""
        async with self._lock:
            return list(self._connections)

    def __len__(self) -> int:
        return len(self._connections)
