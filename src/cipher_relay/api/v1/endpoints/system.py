"""Operational endpoints for the Cipher Relay API."""

from __future__ import annotations

import secrets
import time
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from cipher_relay.api.v1.dependencies import RelayHubDep
from cipher_relay.core.errors import CacheError
from cipher_relay.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.post("/keepalive")
async def keepalive(
    hub: RelayHubDep,
    x_keepalive_token: Annotated[str | None, Header()] = None,
) -> dict[str, str]:
    """Write a tiny expiring key so hosted cache plans register activity.

    Requires the `X-Keepalive-Token` header to match `KEEPALIVE_TOKEN`.
    """
    expected = settings.keepalive_token
    if not expected or not x_keepalive_token or not secrets.compare_digest(
        x_keepalive_token, expected
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    try:
        await hub.store.set(
            f"keepalive:chat:{int(time.time() * 1000)}",
            "1",
            settings.keepalive_ttl_seconds,
        )
    except CacheError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="error",
        ) from exc
    return {"status": "ok"}


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings.
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "jwt_algorithm": settings.jwt_algorithm,
            "debug": settings.debug,
        },
        "cache": {
            "history_limit": settings.history_cache_limit,
            "history_ttl_seconds": settings.history_cache_ttl_seconds,
            "chat_list_ttl_seconds": settings.chat_list_cache_ttl_seconds,
        },
        "relay": {
            "echo_to_sender": settings.echo_to_sender,
        },
    }
