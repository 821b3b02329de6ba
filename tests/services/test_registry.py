"""Tests for the connection registry."""

import asyncio

import pytest

from cipher_relay.services.registry import ConnectionRegistry, ConnectionState


@pytest.mark.asyncio
async def test_register_and_lookup(make_connection):
    registry = ConnectionRegistry()
    connection, _ = make_connection()

    assert await registry.register("u1", connection) is None
    assert await registry.lookup("u1") is connection
    assert await registry.lookup("u2") is None
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_second_registration_replaces_without_closing(make_connection):
    registry = ConnectionRegistry()
    first, first_transport = make_connection()
    second, _ = make_connection()

    await registry.register("u1", first)
    superseded = await registry.register("u1", second)

    assert superseded is first
    assert await registry.lookup("u1") is second
    assert first_transport.closed is False


@pytest.mark.asyncio
async def test_deregister_is_idempotent(make_connection):
    registry = ConnectionRegistry()
    connection, _ = make_connection()
    await registry.register("u1", connection)

    assert await registry.deregister("u1", connection) is True
    assert await registry.deregister("u1", connection) is False
    assert await registry.deregister("never-seen") is False
    assert await registry.lookup("u1") is None


@pytest.mark.asyncio
async def test_superseded_connection_does_not_unroute_replacement(make_connection):
    registry = ConnectionRegistry()
    first, _ = make_connection()
    second, _ = make_connection()
    await registry.register("u1", first)
    await registry.register("u1", second)

    assert await registry.deregister("u1", first) is False
    assert await registry.lookup("u1") is second


@pytest.mark.asyncio
async def test_concurrent_registrations(make_connection):
    registry = ConnectionRegistry()
    connections = [make_connection()[0] for _ in range(50)]

    await asyncio.gather(
        *(registry.register(f"user-{i}", conn) for i, conn in enumerate(connections))
    )

    assert sorted(await registry.online_identities()) == sorted(f"user-{i}" for i in range(50))


@pytest.mark.asyncio
async def test_connection_lifecycle(make_connection):
    connection, transport = make_connection()
    assert connection.state is ConnectionState.UNAUTHENTICATED

    connection.bind("u1")
    assert connection.is_authenticated
    assert connection.identity == "u1"

    await connection.close(code=1008)
    await connection.close()
    assert connection.is_closed
    assert transport.close_code == 1008

    await connection.send({"type": "error", "message": "late"})
    assert transport.sent == []
