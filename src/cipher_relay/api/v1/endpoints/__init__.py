# src/cipher_relay/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .messages import router as messages_router
from .system import router as system_router
from .ws import router as relay_router

__all__ = [
    "messages_router",
    "relay_router",
    "system_router",
]
