# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import timedelta
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("KEEPALIVE_TOKEN", "keepalive-test-token")

from cipher_relay.api.v1.dependencies import get_relay_hub_dep
from cipher_relay.core.security import create_access_token
from cipher_relay.db.session import Base
from cipher_relay.db.session import get_db as app_get_session
from cipher_relay.main import app as fastapi_app
from cipher_relay.models import User
from cipher_relay.services.cache import ViewerCacheStore
from cipher_relay.services.persistence import MessageRepository
from cipher_relay.services.registry import Connection
from cipher_relay.services.relay import RelayHub


class FakeRedis:
    """In-memory stand-in for the asyncio Redis client used by the cache store."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def _check(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        if operation in self.failing or "*" in self.failing:
            raise RedisConnectionError(f"simulated {operation} failure")

    async def get(self, key: str) -> str | None:
        self._check("get", key)
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check("set", key)
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._check("delete", key)
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def aclose(self) -> None:
        return None


class FakeTransport:
    """Records frames the relay sends to a client."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_code: int | None = None

    async def send_json(self, data: Any) -> None:
        if self.closed:
            raise RuntimeError("send on closed transport")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.close_code = code

    def of_type(self, frame_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("type") == frame_type]


class CountingRepository(MessageRepository):
    """Repository that counts history queries hitting the store."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.history_queries = 0

    async def find_messages_between(self, user_a: str, user_b: str):  # type: ignore[override]
        self.history_queries += 1
        return await super().find_messages_between(user_a, user_b)


@pytest.fixture()
def engine(tmp_path) -> Generator[Engine, None, None]:
    # File-backed so worker threads each get their own connection.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'relay.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def repository(session_factory: sessionmaker[Session]) -> CountingRepository:
    return CountingRepository(session_factory, timeout_seconds=5.0)


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def cache_store(fake_redis: FakeRedis) -> ViewerCacheStore:
    return ViewerCacheStore(fake_redis, timeout_seconds=1.0)


@pytest.fixture()
def hub(repository: CountingRepository, cache_store: ViewerCacheStore) -> RelayHub:
    return RelayHub(repository, cache_store, echo_to_sender=True)


@pytest.fixture()
def make_connection() -> Callable[[], tuple[Connection, FakeTransport]]:
    def _make() -> tuple[Connection, FakeTransport]:
        transport = FakeTransport()
        return Connection(transport), transport

    return _make


def _create_user(session: Session, user_id: str, username: str) -> User:
    user = User(id=user_id, username=username, email=f"{username}@example.com")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def alice(db_session: Session) -> User:
    return _create_user(db_session, "u1", "alice")


@pytest.fixture()
def bob(db_session: Session) -> User:
    return _create_user(db_session, "u2", "bob")


@pytest.fixture()
def carol(db_session: Session) -> User:
    return _create_user(db_session, "u3", "carol")


@pytest.fixture()
def token_for() -> Callable[..., str]:
    def _token(user_id: str, *, expires_in: timedelta | None = None) -> str:
        return create_access_token(user_id, expires_delta=expires_in)

    return _token


@pytest.fixture()
def envelope() -> Callable[[str], dict[str, str]]:
    def _envelope(tag: str) -> dict[str, str]:
        return {
            "iv": f"iv-{tag}",
            "encryptedKey": f"key-{tag}",
            "encryptedMessage": f"ciphertext-{tag}",
            "authTag": f"tag-{tag}",
        }

    return _envelope


@pytest.fixture()
def app(hub: RelayHub, session_factory: sessionmaker[Session]) -> Iterator[FastAPI]:
    def _get_session_override() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[app_get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_relay_hub_dep] = lambda: hub
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(app_get_session, None)
        fastapi_app.dependency_overrides.pop(get_relay_hub_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def auth_headers(alice: User, token_for: Callable[..., str]) -> dict[str, str]:
    """Authorization headers for alice."""
    return {"Authorization": f"Bearer {token_for(alice.id)}"}
