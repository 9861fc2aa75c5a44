"""In-memory session authority used for local development and tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import itertools
from typing import Callable, Iterator

from tablesync.backend.models import (
    DOCUMENT_LOCKED_MESSAGE,
    Channel,
    Document,
    DocumentComment,
    FileReference,
    Message,
    PlayerDocument,
    RollOutcome,
    Session,
    SessionExport,
    SessionMember,
    WriteResult,
)
from tablesync.backend.security import hash_password, verify_password
from tablesync.client.dice import execute_roll, parse_roll_pattern
from tablesync.client.markers import remap_marker_ids


DEFAULT_CHANNEL_NAME = "general"


def _utc_now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass
class _SessionRecord:
    id: int
    name: str
    host: str
    password_hash: str | None
    created_at: int
    last_active: int
    members: list[SessionMember] = field(default_factory=list)


@dataclass
class InMemorySessionStore:
    server_salt: str
    clock: Callable[[], int] = _utc_now_ms

    def __post_init__(self) -> None:
        self._ids: Iterator[int] = itertools.count(1)
        self._sessions: dict[int, _SessionRecord] = {}
        self._channels: dict[int, Channel] = {}
        self._messages: dict[int, list[Message]] = {}
        self._documents: dict[int, Document] = {}
        self._player_documents: dict[int, PlayerDocument] = {}
        self._comments: dict[int, DocumentComment] = {}
        self._files: dict[int, FileReference] = {}
        self._blobs: dict[int, bytes] = {}

    # sessions

    def create_session(self, caller: str, name: str, nickname: str, password: str | None = None) -> WriteResult:
        if not name.strip():
            return WriteResult.failure("Session name is required")
        if not nickname.strip():
            return WriteResult.failure("Nickname is required")
        now = self.clock()
        record = _SessionRecord(
            id=next(self._ids),
            name=name.strip(),
            host=caller,
            password_hash=hash_password(password, self.server_salt) if password else None,
            created_at=now,
            last_active=now,
            members=[SessionMember(identity=caller, nickname=nickname.strip(), joined_at=now)],
        )
        self._sessions[record.id] = record
        self._add_channel(record.id, DEFAULT_CHANNEL_NAME, created_by=caller, members=False)
        return WriteResult.success("Session created", created_id=record.id)

    def join_session(self, caller: str, session_id: int, nickname: str, password: str | None = None) -> WriteResult:
        record = self._sessions.get(session_id)
        if record is None:
            return WriteResult.failure("Session not found")
        if not nickname.strip():
            return WriteResult.failure("Nickname is required")
        if record.password_hash is not None and not verify_password(password or "", record.password_hash, self.server_salt):
            return WriteResult.failure("Incorrect password")

        now = self.clock()
        members = [member for member in record.members if member.identity != caller]
        existing = next((member for member in record.members if member.identity == caller), None)
        joined_at = existing.joined_at if existing is not None else now
        members.append(SessionMember(identity=caller, nickname=nickname.strip(), joined_at=joined_at))
        members.sort(key=lambda member: member.joined_at)
        record.members = members
        record.last_active = now
        return WriteResult.success("Joined session", created_id=session_id)

    def get_session(self, caller: str, session_id: int) -> Session | None:
        record = self._member_session(caller, session_id)
        if record is None:
            return None
        return self._build_session(record)

    # channels

    def list_channels(self, caller: str, session_id: int, members: bool = False) -> list[Channel]:
        if self._member_session(caller, session_id) is None:
            return []
        return self._session_channels(session_id, members=members)

    def create_channel(self, caller: str, session_id: int, name: str, members: bool = False) -> WriteResult:
        record = self._member_session(caller, session_id)
        if record is None:
            return WriteResult.failure("Session not found")
        if not members and record.host != caller:
            return WriteResult.failure("Only the host can create channels")
        if not name.strip():
            return WriteResult.failure("Channel name is required")
        channel = self._add_channel(session_id, name.strip(), created_by=caller, members=members)
        self._touch(record)
        return WriteResult.success("Channel created", created_id=channel.id)

    def rename_channel(self, caller: str, channel_id: int, name: str) -> WriteResult:
        channel = self._channels.get(channel_id)
        if channel is None or self._member_session(caller, channel.session_id) is None:
            return WriteResult.failure("Channel not found")
        if not self._may_manage_channel(caller, channel):
            return WriteResult.failure("Not allowed to rename this channel")
        if not name.strip():
            return WriteResult.failure("Channel name is required")
        self._channels[channel_id] = channel.model_copy(update={"name": name.strip()})
        self._touch(self._sessions[channel.session_id])
        return WriteResult.success("Channel renamed")

    def delete_channel(self, caller: str, channel_id: int) -> WriteResult:
        channel = self._channels.get(channel_id)
        if channel is None or self._member_session(caller, channel.session_id) is None:
            return WriteResult.failure("Channel not found")
        if not self._may_manage_channel(caller, channel):
            return WriteResult.failure("Not allowed to delete this channel")
        del self._channels[channel_id]
        self._messages.pop(channel_id, None)
        self._touch(self._sessions[channel.session_id])
        return WriteResult.success("Channel deleted")

    # messages

    def list_messages(self, caller: str, channel_id: int) -> list[Message]:
        channel = self._channels.get(channel_id)
        if channel is None or self._member_session(caller, channel.session_id) is None:
            return []
        return list(self._messages.get(channel_id, []))

    def post_message(
        self,
        caller: str,
        channel_id: int,
        content: str,
        image_id: int | None = None,
        reply_to: int | None = None,
    ) -> WriteResult:
        channel = self._channels.get(channel_id)
        record = self._member_session(caller, channel.session_id) if channel is not None else None
        if channel is None or record is None:
            return WriteResult.failure("Channel not found")
        if not content.strip() and image_id is None:
            return WriteResult.failure("Message cannot be empty")
        history = self._messages.setdefault(channel_id, [])
        if reply_to is not None and not any(message.id == reply_to for message in history):
            return WriteResult.failure("Reply target not found")
        if image_id is not None and image_id not in self._files:
            return WriteResult.failure("Image not found")

        message = Message(
            id=next(self._ids),
            channel_id=channel_id,
            author=self._nickname(record, caller),
            content=content,
            timestamp=self.clock(),
            image_id=image_id,
            reply_to=reply_to,
        )
        history.append(message)
        self._touch(record)
        return WriteResult.success("Message posted", created_id=message.id)

    # session documents

    def list_documents(self, caller: str, session_id: int) -> list[Document]:
        if self._member_session(caller, session_id) is None:
            return []
        return [self._with_files(document) for document in self._documents.values() if document.session_id == session_id]

    def get_document(self, caller: str, document_id: int) -> Document | None:
        document = self._documents.get(document_id)
        if document is None or self._member_session(caller, document.session_id) is None:
            return None
        return self._with_files(document)

    def create_document(self, caller: str, session_id: int, name: str, content: str = "") -> WriteResult:
        record = self._member_session(caller, session_id)
        if record is None:
            return WriteResult.failure("Session not found")
        if not name.strip():
            return WriteResult.failure("Document name is required")
        document = Document(
            id=next(self._ids),
            session_id=session_id,
            name=name.strip(),
            content=content,
            created_by=caller,
            locked=False,
            revision=1,
            last_modified=self.clock(),
        )
        self._documents[document.id] = document
        self._touch(record)
        return WriteResult.success("Document created", created_id=document.id, revision=document.revision)

    def rename_document(self, caller: str, document_id: int, name: str) -> WriteResult:
        document = self._documents.get(document_id)
        if document is None or self._member_session(caller, document.session_id) is None:
            return WriteResult.failure("Document not found")
        if not self._is_host_or(caller, document.session_id, document.created_by):
            return WriteResult.failure("Not allowed to rename this document")
        if not name.strip():
            return WriteResult.failure("Document name is required")
        self._documents[document_id] = document.model_copy(update={"name": name.strip(), "last_modified": self.clock()})
        return WriteResult.success("Document renamed")

    def delete_document(self, caller: str, document_id: int) -> WriteResult:
        document = self._documents.get(document_id)
        if document is None or self._member_session(caller, document.session_id) is None:
            return WriteResult.failure("Document not found")
        if not self._is_host_or(caller, document.session_id, document.created_by):
            return WriteResult.failure("Not allowed to delete this document")
        del self._documents[document_id]
        for comment_id in [comment.id for comment in self._comments.values() if comment.document_id == document_id]:
            del self._comments[comment_id]
        for file_id in [ref.id for ref in self._files.values() if ref.document_id == document_id]:
            del self._files[file_id]
            self._blobs.pop(file_id, None)
        return WriteResult.success("Document deleted")

    def edit_document(self, caller: str, document_id: int, content: str) -> WriteResult:
        document = self._documents.get(document_id)
        if document is None or self._member_session(caller, document.session_id) is None:
            return WriteResult.failure("Document not found")
        if document.locked:
            return WriteResult.failure(DOCUMENT_LOCKED_MESSAGE)
        revision = document.revision + 1
        self._documents[document_id] = document.model_copy(
            update={"content": content, "revision": revision, "last_modified": self.clock()}
        )
        self._touch(self._sessions[document.session_id])
        return WriteResult.success("Document saved", revision=revision)

    def lock_document(self, caller: str, document_id: int) -> WriteResult:
        return self._set_locked(caller, document_id, locked=True)

    def unlock_document(self, caller: str, document_id: int) -> WriteResult:
        return self._set_locked(caller, document_id, locked=False)

    # player documents

    def list_player_documents(self, caller: str, session_id: int) -> list[PlayerDocument]:
        record = self._member_session(caller, session_id)
        if record is None:
            return []
        return [
            document
            for document in self._player_documents.values()
            if document.session_id == session_id and self._may_view_player_document(caller, record, document)
        ]

    def get_player_document(self, caller: str, document_id: int) -> PlayerDocument | None:
        document = self._player_documents.get(document_id)
        if document is None:
            return None
        record = self._member_session(caller, document.session_id)
        if record is None or not self._may_view_player_document(caller, record, document):
            return None
        return document

    def create_player_document(
        self,
        caller: str,
        session_id: int,
        name: str,
        content: str = "",
        private: bool = False,
    ) -> WriteResult:
        record = self._member_session(caller, session_id)
        if record is None:
            return WriteResult.failure("Session not found")
        if not name.strip():
            return WriteResult.failure("Document name is required")
        document = PlayerDocument(
            id=next(self._ids),
            session_id=session_id,
            owner=caller,
            name=name.strip(),
            content=content,
            private=private,
            last_modified=self.clock(),
        )
        self._player_documents[document.id] = document
        return WriteResult.success("Player document created", created_id=document.id, revision=document.last_modified)

    def edit_player_document(self, caller: str, document_id: int, content: str) -> WriteResult:
        document = self._owned_player_document(caller, document_id)
        if document is None:
            return WriteResult.failure("Only the owner can edit this document")
        last_modified = max(self.clock(), document.last_modified + 1)
        self._player_documents[document_id] = document.model_copy(update={"content": content, "last_modified": last_modified})
        return WriteResult.success("Player document saved", revision=last_modified)

    def rename_player_document(self, caller: str, document_id: int, name: str) -> WriteResult:
        document = self._owned_player_document(caller, document_id)
        if document is None:
            return WriteResult.failure("Only the owner can rename this document")
        if not name.strip():
            return WriteResult.failure("Document name is required")
        self._player_documents[document_id] = document.model_copy(update={"name": name.strip()})
        return WriteResult.success("Player document renamed")

    def delete_player_document(self, caller: str, document_id: int) -> WriteResult:
        document = self._player_documents.get(document_id)
        if document is None or not self._is_host_or(caller, document.session_id, document.owner):
            return WriteResult.failure("Not allowed to delete this document")
        del self._player_documents[document_id]
        return WriteResult.success("Player document deleted")

    def set_player_document_privacy(self, caller: str, document_id: int, private: bool) -> WriteResult:
        document = self._owned_player_document(caller, document_id)
        if document is None:
            return WriteResult.failure("Only the owner can change visibility")
        self._player_documents[document_id] = document.model_copy(update={"private": private})
        return WriteResult.success("Visibility updated")

    # comments

    def list_comments(self, caller: str, document_id: int) -> list[DocumentComment]:
        if self.get_document(caller, document_id) is None:
            return []
        return [comment for comment in self._comments.values() if comment.document_id == document_id]

    def add_comment(self, caller: str, document_id: int, text: str) -> WriteResult:
        document = self._documents.get(document_id)
        record = self._member_session(caller, document.session_id) if document is not None else None
        if document is None or record is None:
            return WriteResult.failure("Document not found")
        if not text.strip():
            return WriteResult.failure("Comment cannot be empty")
        comment = DocumentComment(
            id=next(self._ids),
            document_id=document_id,
            author=self._nickname(record, caller),
            author_identity=caller,
            text=text.strip(),
            timestamp=self.clock(),
        )
        self._comments[comment.id] = comment
        return WriteResult.success("Comment added", created_id=comment.id)

    def delete_comment(self, caller: str, comment_id: int) -> WriteResult:
        comment = self._comments.get(comment_id)
        document = self._documents.get(comment.document_id) if comment is not None else None
        if comment is None or document is None:
            return WriteResult.failure("Comment not found")
        record = self._member_session(caller, document.session_id)
        if record is None:
            return WriteResult.failure("Comment not found")
        if caller not in (record.host, comment.author_identity):
            return WriteResult.failure("Not allowed to delete this comment")
        del self._comments[comment_id]
        return WriteResult.success("Comment deleted")

    # files

    def upload_file(
        self,
        caller: str,
        document_id: int,
        data: bytes,
        filename: str,
        type_tag: str,
        image: bool = False,
    ) -> WriteResult:
        document = self._documents.get(document_id)
        if document is None or self._member_session(caller, document.session_id) is None:
            return WriteResult.failure("Document not found")
        if not data:
            return WriteResult.failure("File is empty")
        reference = FileReference(
            id=next(self._ids),
            document_id=document_id,
            filename=filename,
            size=len(data),
            type_tag=type_tag,
            image=image,
        )
        self._files[reference.id] = reference
        self._blobs[reference.id] = bytes(data)
        return WriteResult.success("File uploaded", created_id=reference.id)

    def get_file_reference(self, caller: str, file_id: int) -> FileReference | None:
        reference = self._files.get(file_id)
        if reference is None or self.get_document(caller, reference.document_id) is None:
            return None
        return reference

    # rolls

    def roll(self, caller: str, session_id: int, pattern: str) -> RollOutcome | None:
        if self._member_session(caller, session_id) is None:
            return None
        result = execute_roll(parse_roll_pattern(pattern))
        return RollOutcome(
            pattern=result.request.pattern,
            rolls=result.rolls,
            modifier=result.request.modifier,
            total=result.total,
        )

    # export / import

    def export_session(self, caller: str, session_id: int) -> SessionExport | None:
        record = self._member_session(caller, session_id)
        if record is None or record.host != caller:
            return None
        channels = [channel for channel in self._channels.values() if channel.session_id == session_id]
        channel_ids = {channel.id for channel in channels}
        documents = [self._with_files(document) for document in self._documents.values() if document.session_id == session_id]
        document_ids = {document.id for document in documents}
        return SessionExport(
            session=self._build_session(record),
            channels=tuple(channels),
            messages=tuple(message for channel_id in channel_ids for message in self._messages.get(channel_id, [])),
            documents=tuple(document.model_copy(update={"files": ()}) for document in documents),
            player_documents=tuple(doc for doc in self._player_documents.values() if doc.session_id == session_id),
            files=tuple(ref for ref in self._files.values() if ref.document_id in document_ids),
            comments=tuple(comment for comment in self._comments.values() if comment.document_id in document_ids),
        )

    def import_session(self, caller: str, snapshot: SessionExport, nickname: str | None = None) -> WriteResult:
        """Recreate an exported session as a new session hosted by ``caller``."""
        now = self.clock()
        host_nickname = nickname or snapshot.session.nickname_of(snapshot.session.host) or "Host"
        record = _SessionRecord(
            id=next(self._ids),
            name=snapshot.session.name,
            host=caller,
            password_hash=None,
            created_at=now,
            last_active=now,
            members=[SessionMember(identity=caller, nickname=host_nickname, joined_at=now)],
        )
        self._sessions[record.id] = record

        channel_ids: dict[int, int] = {}
        for channel in snapshot.channels:
            created = self._add_channel(record.id, channel.name, created_by=caller, members=channel.members)
            channel_ids[channel.id] = created.id

        message_ids: dict[int, int] = {}
        for message in sorted(snapshot.messages, key=lambda item: item.id):
            if message.channel_id not in channel_ids:
                continue
            new_id = next(self._ids)
            message_ids[message.id] = new_id
            self._messages.setdefault(channel_ids[message.channel_id], []).append(
                message.model_copy(
                    update={
                        "id": new_id,
                        "channel_id": channel_ids[message.channel_id],
                        "reply_to": message_ids.get(message.reply_to) if message.reply_to is not None else None,
                        "image_id": None,
                    }
                )
            )

        document_ids: dict[int, int] = {}
        for document in snapshot.documents:
            document_ids[document.id] = next(self._ids)
        file_ids: dict[int, int] = {}
        for reference in snapshot.files:
            if reference.document_id not in document_ids:
                continue
            new_id = next(self._ids)
            file_ids[reference.id] = new_id
            self._files[new_id] = reference.model_copy(update={"id": new_id, "document_id": document_ids[reference.document_id]})
        for document in snapshot.documents:
            new_id = document_ids[document.id]
            self._documents[new_id] = document.model_copy(
                update={
                    "id": new_id,
                    "session_id": record.id,
                    "created_by": caller,
                    "content": remap_marker_ids(document.content, file_ids),
                    "files": (),
                }
            )
        for comment in snapshot.comments:
            if comment.document_id in document_ids:
                new_id = next(self._ids)
                self._comments[new_id] = comment.model_copy(update={"id": new_id, "document_id": document_ids[comment.document_id]})
        for player_document in snapshot.player_documents:
            new_id = next(self._ids)
            self._player_documents[new_id] = player_document.model_copy(
                update={"id": new_id, "session_id": record.id, "owner": caller}
            )
        return WriteResult.success("Session imported", created_id=record.id)

    # helpers

    def _member_session(self, caller: str, session_id: int) -> _SessionRecord | None:
        record = self._sessions.get(session_id)
        if record is None or not any(member.identity == caller for member in record.members):
            return None
        return record

    def _build_session(self, record: _SessionRecord) -> Session:
        return Session(
            id=record.id,
            name=record.name,
            host=record.host,
            members=tuple(record.members),
            channels=tuple(self._session_channels(record.id, members=False)),
            members_channels=tuple(self._session_channels(record.id, members=True)),
            created_at=record.created_at,
            last_active=record.last_active,
        )

    def _session_channels(self, session_id: int, members: bool) -> list[Channel]:
        return [
            channel
            for channel in self._channels.values()
            if channel.session_id == session_id and channel.members == members
        ]

    def _add_channel(self, session_id: int, name: str, created_by: str, members: bool) -> Channel:
        channel = Channel(id=next(self._ids), session_id=session_id, name=name, created_by=created_by, members=members)
        self._channels[channel.id] = channel
        return channel

    def _may_manage_channel(self, caller: str, channel: Channel) -> bool:
        if channel.members:
            return self._is_host_or(caller, channel.session_id, channel.created_by)
        return self._sessions[channel.session_id].host == caller

    def _is_host_or(self, caller: str, session_id: int, identity: str) -> bool:
        record = self._sessions.get(session_id)
        return caller == identity or (record is not None and record.host == caller)

    def _may_view_player_document(self, caller: str, record: _SessionRecord, document: PlayerDocument) -> bool:
        return not document.private or document.owner == caller or record.host == caller

    def _owned_player_document(self, caller: str, document_id: int) -> PlayerDocument | None:
        document = self._player_documents.get(document_id)
        if document is None or document.owner != caller:
            return None
        return document

    def _set_locked(self, caller: str, document_id: int, locked: bool) -> WriteResult:
        document = self._documents.get(document_id)
        record = self._member_session(caller, document.session_id) if document is not None else None
        if document is None or record is None:
            return WriteResult.failure("Document not found")
        if record.host != caller:
            return WriteResult.failure("Only the host can lock or unlock documents")
        self._documents[document_id] = document.model_copy(update={"locked": locked})
        return WriteResult.success("Document locked" if locked else "Document unlocked")

    def _with_files(self, document: Document) -> Document:
        files = tuple(ref for ref in self._files.values() if ref.document_id == document.id)
        return document.model_copy(update={"files": files})

    def _nickname(self, record: _SessionRecord, caller: str) -> str:
        for member in record.members:
            if member.identity == caller:
                return member.nickname
        return caller

    def _touch(self, record: _SessionRecord) -> None:
        record.last_active = self.clock()


def create_store(server_salt: str) -> InMemorySessionStore:
    return InMemorySessionStore(server_salt=server_salt)
