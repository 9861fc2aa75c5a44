"""Resource keys identifying what the poller fetches and caches."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ResourceKind(str, Enum):
    SESSION = "session"
    CHANNELS = "channels"
    MEMBERS_CHANNELS = "members_channels"
    DOCUMENTS = "documents"
    DOCUMENT = "document"
    PLAYER_DOCUMENTS = "player_documents"
    PLAYER_DOCUMENT = "player_document"
    MESSAGES = "messages"
    COMMENTS = "comments"


@dataclass(frozen=True)
class ResourceKey:
    kind: ResourceKind
    scope_id: int | None = None

    @property
    def is_valid(self) -> bool:
        return self.scope_id is not None and self.scope_id >= 0

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.scope_id}"


def session_key(session_id: int | None) -> ResourceKey:
    return ResourceKey(ResourceKind.SESSION, session_id)


def channels_key(session_id: int | None, members: bool = False) -> ResourceKey:
    kind = ResourceKind.MEMBERS_CHANNELS if members else ResourceKind.CHANNELS
    return ResourceKey(kind, session_id)


def documents_key(session_id: int | None) -> ResourceKey:
    return ResourceKey(ResourceKind.DOCUMENTS, session_id)


def document_key(document_id: int | None) -> ResourceKey:
    return ResourceKey(ResourceKind.DOCUMENT, document_id)


def player_documents_key(session_id: int | None) -> ResourceKey:
    return ResourceKey(ResourceKind.PLAYER_DOCUMENTS, session_id)


def player_document_key(document_id: int | None) -> ResourceKey:
    return ResourceKey(ResourceKind.PLAYER_DOCUMENT, document_id)


def messages_key(channel_id: int | None) -> ResourceKey:
    return ResourceKey(ResourceKind.MESSAGES, channel_id)


def comments_key(document_id: int | None) -> ResourceKey:
    return ResourceKey(ResourceKind.COMMENTS, document_id)
