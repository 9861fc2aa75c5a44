"""Session establishment guarded by an explicit timeout."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tablesync.backend.models import Session
from tablesync.backend.security import generate_identity
from tablesync.client.errors import InitializationError, RejectionError
from tablesync.client.local_store import LocalStore, SessionContext
from tablesync.client.remote import RemoteAuthority

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMEOUT_REASON = "Initialization timeout: the session authority is taking too long to respond"


@dataclass(frozen=True)
class EstablishedSession:
    session: Session
    context: SessionContext


async def guard_initialization(operation: Callable[[], Awaitable[T]], timeout: float) -> T:
    """Run ``operation`` once; any failure or timeout is terminal."""
    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error(f"Initialization timed out after {timeout}s")
        raise InitializationError(TIMEOUT_REASON) from exc
    except (InitializationError, RejectionError):
        raise
    except Exception as exc:
        logger.error(f"Initialization failed: {exc}")
        raise InitializationError(str(exc) or "Failed to initialize session connection") from exc


async def _join(remote: RemoteAuthority, session_id: int, nickname: str, password: str | None) -> Session:
    result = await remote.join_session(session_id, nickname=nickname, password=password)
    if not result.ok:
        raise RejectionError(result.message)
    session = await remote.get_session(session_id)
    if session is None:
        raise RejectionError("Session not found")
    return session


async def _create(remote: RemoteAuthority, name: str, nickname: str, password: str | None) -> Session:
    result = await remote.create_session(name, nickname=nickname, password=password)
    if not result.ok or result.created_id is None:
        raise RejectionError(result.message or "Session could not be created")
    session = await remote.get_session(result.created_id)
    if session is None:
        raise RejectionError("Session not found")
    return session


async def join_session(
    remote: RemoteAuthority,
    session_id: int,
    nickname: str,
    timeout: float,
    password: str | None = None,
    local_store: LocalStore | None = None,
) -> EstablishedSession:
    session = await guard_initialization(lambda: _join(remote, session_id, nickname, password), timeout)
    return _remember(remote, session, nickname, local_store)


async def create_session(
    remote: RemoteAuthority,
    name: str,
    nickname: str,
    timeout: float,
    password: str | None = None,
    local_store: LocalStore | None = None,
) -> EstablishedSession:
    session = await guard_initialization(lambda: _create(remote, name, nickname, password), timeout)
    return _remember(remote, session, nickname, local_store)


async def reconnect(remote: RemoteAuthority, local_store: LocalStore, timeout: float) -> EstablishedSession | None:
    """Rejoin the last session recorded in ``local_store``, if any."""
    context = local_store.session_context()
    if context is None:
        return None
    return await join_session(remote, context.session_id, context.nickname, timeout, local_store=local_store)


def _remember(
    remote: RemoteAuthority,
    session: Session,
    nickname: str,
    local_store: LocalStore | None,
) -> EstablishedSession:
    context = SessionContext(session_id=session.id, nickname=nickname, is_host=session.host == remote.identity)
    if local_store is not None:
        local_store.set_session_context(context)
    logger.info(f"Established session {session.id} as {nickname!r}")
    return EstablishedSession(session=session, context=context)


def resolve_identity(local_store: LocalStore, explicit: str | None = None) -> str:
    """Return the identity to act as, reusing the stored one across restarts.

    An explicit identity replaces the stored one. Otherwise a fresh identity
    is generated once and saved so a later reconnect keeps host rights.
    """
    if explicit:
        if explicit != local_store.identity():
            local_store.set_identity(explicit)
        return explicit
    stored = local_store.identity()
    if stored is not None:
        return stored
    identity = generate_identity()
    local_store.set_identity(identity)
    logger.info("Generated a new local identity")
    return identity


def reset_local_data(local_store: LocalStore) -> None:
    """Recovery path offered after a fatal initialization failure."""
    local_store.clear()
    logger.info("Local data cleared")
