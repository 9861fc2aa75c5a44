"""Wire models shared by the session authority and its clients."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


DOCUMENT_LOCKED_MESSAGE = "Document is locked"


class WireModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class SessionMember(WireModel):
    identity: str
    nickname: str
    joined_at: int


class Channel(WireModel):
    id: int
    session_id: int
    name: str
    created_by: str
    members: bool = False


class Session(WireModel):
    id: int
    name: str
    host: str
    members: tuple[SessionMember, ...] = ()
    channels: tuple[Channel, ...] = ()
    members_channels: tuple[Channel, ...] = ()
    created_at: int = 0
    last_active: int = 0

    def is_member(self, identity: str | None) -> bool:
        return any(member.identity == identity for member in self.members)

    def nickname_of(self, identity: str | None) -> str | None:
        for member in self.members:
            if member.identity == identity:
                return member.nickname
        return None


class Message(WireModel):
    id: int
    channel_id: int
    author: str
    content: str
    timestamp: int
    image_id: int | None = None
    reply_to: int | None = None


class FileReference(WireModel):
    id: int
    document_id: int
    filename: str
    size: int
    type_tag: str
    image: bool = False


class Document(WireModel):
    id: int
    session_id: int
    name: str
    content: str
    created_by: str
    locked: bool = False
    revision: int = 1
    last_modified: int = 0
    files: tuple[FileReference, ...] = ()


class PlayerDocument(WireModel):
    id: int
    session_id: int
    owner: str
    name: str
    content: str
    private: bool = False
    last_modified: int = 0


class DocumentComment(WireModel):
    id: int
    document_id: int
    author: str
    author_identity: str
    text: str
    timestamp: int


class RollOutcome(WireModel):
    pattern: str
    rolls: tuple[int, ...]
    modifier: int
    total: int


class SessionExport(WireModel):
    session: Session
    channels: tuple[Channel, ...] = ()
    messages: tuple[Message, ...] = ()
    documents: tuple[Document, ...] = ()
    player_documents: tuple[PlayerDocument, ...] = ()
    files: tuple[FileReference, ...] = ()
    comments: tuple[DocumentComment, ...] = ()


class WriteResult(WireModel):
    """Outcome of a write; ``message`` is shown to users verbatim."""

    ok: bool
    message: str = ""
    created_id: int | None = None
    revision: int | None = None

    @classmethod
    def success(cls, message: str = "", created_id: int | None = None, revision: int | None = None) -> WriteResult:
        return cls(ok=True, message=message, created_id=created_id, revision=revision)

    @classmethod
    def failure(cls, message: str) -> WriteResult:
        return cls(ok=False, message=message)
