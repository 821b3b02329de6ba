# src/cipher_relay/services/session_auth.py
"""First-frame bearer token authentication for relay connections."""

from __future__ import annotations

import logging

from cipher_relay.core.errors import AuthenticationError
from cipher_relay.core.security import decode_access_token
from cipher_relay.schemas.frames import AuthErrorFrame, AuthFrame, AuthSuccessFrame
from cipher_relay.services.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

# RFC 6455 policy violation
CLOSE_POLICY_VIOLATION = 1008


class SessionAuthenticator:
    """Binds a verified identity to a connection and makes it routable."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def authenticate(self, connection: Connection, frame: AuthFrame) -> bool:
        """Handle an auth frame.

        Returns True if the connection is authenticated afterwards. A repeated
        auth frame on an authenticated connection is ignored.
        """
        if connection.is_authenticated:
            return True

        try:
            identity = decode_access_token(frame.token)
        except AuthenticationError as exc:
            logger.info("Rejected connection authentication: %s", exc)
            await connection.send(AuthErrorFrame().dump())
            await connection.close(code=CLOSE_POLICY_VIOLATION)
            return False

        connection.bind(identity)
        await self.registry.register(identity, connection)
        logger.info("Connection authenticated for %s", identity)
        await connection.send(AuthSuccessFrame().dump())
        return True
