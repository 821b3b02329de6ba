# src/cipher_relay/core/errors.py
"""Error taxonomy shared by the relay services.

Only `PersistenceError` is allowed to fail a user-visible operation. Cache
failures are raised as `CacheError` by the store wrapper and absorbed by its
callers. Messages on these exceptions are for logs; clients receive generic
text chosen by the transport layer.
"""


class RelayError(RuntimeError):
    """Base exception for relay failures."""


class AuthenticationError(RelayError):
    """Raised when a bearer token is missing, expired or invalid."""


class ValidationError(RelayError):
    """Raised when an inbound frame or envelope is malformed."""


class PersistenceError(RelayError):
    """Raised when the durable store fails or times out."""


class CacheError(RelayError):
    """Raised when the cache backend fails, times out or returns garbage."""
