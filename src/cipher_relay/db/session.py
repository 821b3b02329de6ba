"""Database session configuration."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from cipher_relay.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import cipher_relay.models  # noqa: E402,F401

def connect_args_for(database_url: str, timeout_seconds: float) -> dict[str, Any]:
    """Driver arguments that bound lock waits and statements inside the transaction.

    A statement that hits the limit fails and its transaction rolls back.
    """
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if database_url.startswith("postgresql"):
        millis = int(timeout_seconds * 1000)
        return {"options": f"-c statement_timeout={millis} -c lock_timeout={millis}"}
    return {}


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    connect_args=connect_args_for(settings.database_url, settings.persistence_timeout_seconds),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
