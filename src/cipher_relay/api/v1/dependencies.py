"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from cipher_relay.core.errors import AuthenticationError
from cipher_relay.core.security import decode_access_token
from cipher_relay.db.session import get_db
from cipher_relay.models import User
from cipher_relay.services.relay import RelayHub, get_relay_hub

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        User object for the authenticated user

    Raises:
        HTTPException: If token is missing or invalid, or the user is unknown
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, no token",
        )
    try:
        user_id = decode_access_token(credentials.credentials)
    except AuthenticationError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_relay_hub_dep() -> RelayHub:
    """Return the shared relay hub."""
    return get_relay_hub()


# Type aliases for injected dependencies
CurrentUserDep = Annotated[User, Depends(get_current_user)]
RelayHubDep = Annotated[RelayHub, Depends(get_relay_hub_dep)]
