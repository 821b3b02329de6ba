"""Bearer token helpers built on python-jose."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from cipher_relay.core.errors import AuthenticationError
from cipher_relay.core.settings import settings


def create_access_token(
    subject: str,
    extra_claims: dict[str, object] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT access token for `subject`."""
    to_encode: dict[str, object] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str | None) -> str:
    """Verify a token's signature and expiry and return its identity claim.

    Args:
        token: Encoded JWT as received from the client.

    Returns:
        The `sub` claim identifying the user.

    Raises:
        AuthenticationError: If the token is missing, malformed, expired,
            signed with another key or carries no usable subject.
    """
    if not token:
        raise AuthenticationError("Missing token")
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise AuthenticationError("Invalid token") from err

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthenticationError("Token has no subject")
    return subject
