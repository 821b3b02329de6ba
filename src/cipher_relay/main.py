"""ASGI application for the Cipher Relay service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from cipher_relay.api.v1 import messages_router, relay_router, system_router
from cipher_relay.core.settings import settings
from cipher_relay.services.relay import shutdown_relay_hub

DESCRIPTION = "Relay for end-to-end encrypted direct messages"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Cipher Relay API",
    description=DESCRIPTION,
    version=settings.app_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(GZipMiddleware)

for router in (messages_router, system_router, relay_router):
    app.include_router(router, prefix="/api/v1")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    # Pending mark-read tasks finish before the cache client goes away.
    await shutdown_relay_hub()
    logger.info("Relay stopped")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Describe the service and where its entry points live."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": DESCRIPTION,
        "docs": "/docs",
        "websocket": "/api/v1/ws",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("cipher_relay.main:app", host="0.0.0.0", port=5050, reload=settings.debug)
