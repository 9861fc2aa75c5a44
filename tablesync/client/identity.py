"""Capability checks comparing the caller identity with stored identities.

Nothing here is cached: callers recompute on every render so a changed
identity or entity never leaves a stale grant behind.
"""

from __future__ import annotations

from dataclasses import dataclass

from tablesync.backend.models import Channel, Document, DocumentComment, PlayerDocument, Session


@dataclass(frozen=True)
class Capabilities:
    view: bool = False
    edit: bool = False
    lock: bool = False
    rename: bool = False
    delete: bool = False
    set_visibility: bool = False


NO_CAPABILITIES = Capabilities()


def is_host(caller: str | None, session: Session | None) -> bool:
    return caller is not None and session is not None and session.host == caller


def is_member(caller: str | None, session: Session | None) -> bool:
    return caller is not None and session is not None and session.is_member(caller)


def document_capabilities(caller: str | None, session: Session | None, document: Document) -> Capabilities:
    if not is_member(caller, session):
        return NO_CAPABILITIES
    host = is_host(caller, session)
    manager = host or document.created_by == caller
    return Capabilities(view=True, edit=True, lock=host, rename=manager, delete=manager)


def player_document_capabilities(caller: str | None, session: Session | None, document: PlayerDocument) -> Capabilities:
    if caller is None:
        return NO_CAPABILITIES
    owner = document.owner == caller
    host = is_host(caller, session)
    return Capabilities(
        view=owner or host or not document.private,
        edit=owner,
        rename=owner,
        delete=owner or host,
        set_visibility=owner,
    )


def can_manage_channel(caller: str | None, session: Session | None, channel: Channel) -> bool:
    if is_host(caller, session):
        return True
    return channel.members and caller is not None and channel.created_by == caller


def can_create_channel(caller: str | None, session: Session | None, members: bool = False) -> bool:
    if members:
        return is_member(caller, session)
    return is_host(caller, session)


def can_delete_comment(caller: str | None, session: Session | None, comment: DocumentComment) -> bool:
    if is_host(caller, session):
        return True
    return caller is not None and comment.author_identity == caller
