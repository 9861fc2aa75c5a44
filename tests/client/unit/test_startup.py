import asyncio

import pytest

from tablesync.backend.store import InMemorySessionStore
from tablesync.client.errors import InitializationError, RejectionError
from tablesync.client.local_store import LocalStore
from tablesync.client.remote import LocalRemoteAuthority
from tablesync.client.startup import (
    TIMEOUT_REASON,
    create_session,
    guard_initialization,
    join_session,
    reconnect,
    reset_local_data,
    resolve_identity,
)


def test_guard_initialization_raises_after_timeout() -> None:
    async def never_ready():
        await asyncio.sleep(10)

    with pytest.raises(InitializationError) as excinfo:
        asyncio.run(guard_initialization(never_ready, timeout=0.01))

    assert str(excinfo.value) == TIMEOUT_REASON


def test_guard_initialization_wraps_unexpected_failures() -> None:
    async def broken():
        raise OSError("disk on fire")

    with pytest.raises(InitializationError) as excinfo:
        asyncio.run(guard_initialization(broken, timeout=1.0))

    assert str(excinfo.value) == "disk on fire"


def test_create_then_join_records_session_context(tmp_path) -> None:
    store = InMemorySessionStore(server_salt="salt")
    host_store = LocalStore.open(tmp_path / "host")
    player_store = LocalStore.open(tmp_path / "player")

    async def scenario():
        host = LocalRemoteAuthority(store=store, identity="host-1")
        player = LocalRemoteAuthority(store=store, identity="player-1")
        created = await create_session(host, "Crypt", "GM", timeout=1.0, password="pw", local_store=host_store)
        joined = await join_session(
            player, created.session.id, "Aria", timeout=1.0, password="pw", local_store=player_store
        )
        return created, joined

    created, joined = asyncio.run(scenario())

    assert created.context.is_host is True
    assert joined.context.is_host is False
    assert joined.session.is_member("player-1")
    assert player_store.session_context().session_id == created.session.id


def test_join_with_wrong_password_raises_rejection() -> None:
    store = InMemorySessionStore(server_salt="salt")
    session_id = store.create_session("host-1", "Crypt", "GM", password="pw").created_id
    player = LocalRemoteAuthority(store=store, identity="player-1")

    with pytest.raises(RejectionError) as excinfo:
        asyncio.run(join_session(player, session_id, "Aria", timeout=1.0, password="nope"))

    assert excinfo.value.message == "Incorrect password"


def test_reconnect_uses_last_session_context(tmp_path) -> None:
    store = InMemorySessionStore(server_salt="salt")
    local_store = LocalStore.open(tmp_path)
    host = LocalRemoteAuthority(store=store, identity="host-1")

    async def scenario():
        await create_session(host, "Crypt", "GM", timeout=1.0, local_store=local_store)
        return await reconnect(host, local_store, timeout=1.0)

    established = asyncio.run(scenario())

    assert established.session.name == "Crypt"
    assert established.context.nickname == "GM"


def test_reconnect_without_context_and_after_reset(tmp_path) -> None:
    store = InMemorySessionStore(server_salt="salt")
    local_store = LocalStore.open(tmp_path)
    host = LocalRemoteAuthority(store=store, identity="host-1")

    async def scenario():
        await create_session(host, "Crypt", "GM", timeout=1.0, local_store=local_store)
        reset_local_data(local_store)
        return await reconnect(host, local_store, timeout=1.0)

    assert asyncio.run(scenario()) is None


def test_restarted_host_reconnects_with_stored_identity(tmp_path) -> None:
    store = InMemorySessionStore(server_salt="salt")
    first_run = LocalStore.open(tmp_path)
    identity = resolve_identity(first_run)

    async def create():
        host = LocalRemoteAuthority(store=store, identity=identity)
        return await create_session(host, "Crypt", "GM", timeout=1.0, local_store=first_run)

    created = asyncio.run(create())

    second_run = LocalStore.open(tmp_path)
    restored = resolve_identity(second_run)

    async def rejoin():
        host = LocalRemoteAuthority(store=store, identity=restored)
        return await reconnect(host, second_run, timeout=1.0)

    established = asyncio.run(rejoin())

    assert restored == identity
    assert established.session.id == created.session.id
    assert established.session.host == identity
    assert established.context.is_host is True
    assert second_run.session_context().is_host is True


def test_explicit_identity_replaces_stored_one(tmp_path) -> None:
    local_store = LocalStore.open(tmp_path)
    generated = resolve_identity(local_store)

    chosen = resolve_identity(local_store, "host-1")

    assert generated
    assert chosen == "host-1"
    assert LocalStore.open(tmp_path).identity() == "host-1"
