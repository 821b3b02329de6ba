# src/cipher_relay/services/envelope.py
"""Structural validation of encrypted message envelopes."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from cipher_relay.core.errors import ValidationError
from cipher_relay.schemas.envelope import Envelope

INVALID_CONTENT_FORMAT = "Invalid content format"


def parse_envelope(value: Any) -> Envelope:
    """Return `value` as an `Envelope` or raise `ValidationError`.

    Accepts either a mapping or a JSON string encoding one. Only the shape is
    checked: the four fields must be present and must be strings.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as exc:
            raise ValidationError(INVALID_CONTENT_FORMAT) from exc

    if not isinstance(value, dict):
        raise ValidationError(INVALID_CONTENT_FORMAT)

    try:
        return Envelope.model_validate(value)
    except PydanticValidationError as exc:
        raise ValidationError(INVALID_CONTENT_FORMAT) from exc


def is_envelope(value: Any) -> bool:
    """Return True if `value` is a structurally valid envelope."""
    try:
        parse_envelope(value)
    except ValidationError:
        return False
    return True
