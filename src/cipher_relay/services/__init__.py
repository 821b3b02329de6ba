# src/cipher_relay/services/__init__.py
"""Business logic services for the Cipher Relay application."""

from .background import BackgroundDispatcher
from .cache import CacheSynchronizer, ViewerCacheStore
from .history import HistoryReader
from .ingest import IngestPipeline
from .persistence import MessageRecord, MessageRepository
from .registry import Connection, ConnectionRegistry
from .relay import RelayHub, get_relay_hub
from .session_auth import SessionAuthenticator

__all__ = [
    "BackgroundDispatcher",
    "CacheSynchronizer",
    "ViewerCacheStore",
    "HistoryReader",
    "IngestPipeline",
    "MessageRecord",
    "MessageRepository",
    "Connection",
    "ConnectionRegistry",
    "RelayHub",
    "get_relay_hub",
    "SessionAuthenticator",
]
