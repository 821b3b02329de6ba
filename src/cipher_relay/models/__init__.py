# src/cipher_relay/models/__init__.py
"""SQLAlchemy models for the Cipher Relay service."""

from .message import Message
from .user import User

__all__ = ["Message", "User"]
