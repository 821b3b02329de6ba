# src/cipher_relay/api/v1/endpoints/messages.py
"""Chat history endpoints for the Cipher Relay API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, status

from cipher_relay.api.v1.dependencies import CurrentUserDep, RelayHubDep
from cipher_relay.core.errors import PersistenceError

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/")
async def get_chats(current_user: CurrentUserDep, hub: RelayHubDep) -> list[dict[str, Any]]:
    """List the users the caller has chatted with, newest activity first."""
    try:
        return await hub.history.get_chat_list(current_user.id)
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error",
        ) from exc


@router.get("/{other_user_id}")
async def get_messages(
    other_user_id: str,
    current_user: CurrentUserDep,
    hub: RelayHubDep,
) -> list[dict[str, Any]]:
    """Return the caller's history with another user, newest first.

    Each item carries only the envelope the caller can decrypt. Unread messages
    from the other user are marked read as a side effect.
    """
    try:
        return await hub.history.get_history(current_user.id, other_user_id)
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error",
        ) from exc
