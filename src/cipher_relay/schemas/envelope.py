# src/cipher_relay/schemas/envelope.py
"""Encrypted envelope schema."""

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class Envelope(BaseModel):
    """Opaque hybrid-encryption bundle.

    The relay never interprets these fields; it only checks that all four are
    present and are strings.
    """

    iv: StrictStr = Field(..., description="Initialization vector")
    encryptedKey: StrictStr = Field(..., description="Wrapped symmetric key")
    encryptedMessage: StrictStr = Field(..., description="Ciphertext")
    authTag: StrictStr = Field(..., description="Authentication tag")

    model_config = ConfigDict(frozen=True, extra="ignore")
