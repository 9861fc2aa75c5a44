"""Composes polling, drafts, chat and capabilities for one joined session."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from tablesync.backend.models import (
    Channel,
    Document,
    DocumentComment,
    FileReference,
    Message,
    PlayerDocument,
    Session,
    SessionExport,
    WriteResult,
)
from tablesync.client import identity as roles
from tablesync.client.config import PollingIntervals
from tablesync.client.dice import RollResult, execute_roll, format_roll_message, parse_roll_command
from tablesync.client.drafts import DocumentEditCoordinator, DraftState
from tablesync.client.errors import InputValidationError, RejectionError
from tablesync.client.local_store import LocalStore
from tablesync.client.markup import PreviewBlock, build_preview
from tablesync.client.poller import ResourcePoller, Snapshot
from tablesync.client.remote import RemoteAuthority
from tablesync.client.replies import ReplyPreview, reply_preview, resolve_reply
from tablesync.client.resources import (
    ResourceKey,
    channels_key,
    comments_key,
    document_key,
    documents_key,
    messages_key,
    player_document_key,
    player_documents_key,
    session_key,
)

logger = logging.getLogger(__name__)


class ViewKind(str, Enum):
    CHANNEL = "channel"
    DOCUMENT = "document"
    PLAYER_DOCUMENT = "player_document"


@dataclass(frozen=True)
class ActiveView:
    kind: ViewKind
    target_id: int


class SessionOrchestrator:
    def __init__(
        self,
        remote: RemoteAuthority,
        session_id: int,
        nickname: str,
        poller: ResourcePoller | None = None,
        intervals: PollingIntervals | None = None,
        rng: random.Random | None = None,
        local_store: LocalStore | None = None,
    ) -> None:
        self.remote = remote
        self.session_id = session_id
        self.nickname = nickname
        self.poller = poller if poller is not None else ResourcePoller()
        self.intervals = intervals if intervals is not None else PollingIntervals()
        self._rng = rng
        self.local_store = local_store
        self._view: ActiveView | None = None
        self._coordinator: DocumentEditCoordinator | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def identity(self) -> str:
        return self.remote.identity

    # lifecycle

    async def start(self) -> None:
        self._unsubscribe = self.poller.subscribe(self._on_snapshot)
        sid = self.session_id
        self._register(session_key(sid), lambda: self.remote.get_session(sid))
        self._register(channels_key(sid), lambda: self.remote.list_channels(sid))
        self._register(channels_key(sid, members=True), lambda: self.remote.list_channels(sid, members=True))
        self._register(documents_key(sid), lambda: self.remote.list_documents(sid))
        self._register(player_documents_key(sid), lambda: self.remote.list_player_documents(sid))
        logger.info(f"Orchestrator started for session {sid}")

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._view = None
        self._coordinator = None
        await self.poller.close()

    def _register(self, key: ResourceKey, fetcher: Callable[[], Awaitable[Any]]) -> None:
        self.poller.register(key, fetcher, self.intervals.for_kind(key.kind))

    # snapshots

    def snapshot(self, key: ResourceKey) -> Snapshot:
        return self.poller.snapshot(key)

    @property
    def session(self) -> Session | None:
        return self.snapshot(session_key(self.session_id)).value

    @property
    def channels(self) -> list[Channel]:
        return self.snapshot(channels_key(self.session_id)).value or []

    @property
    def members_channels(self) -> list[Channel]:
        return self.snapshot(channels_key(self.session_id, members=True)).value or []

    @property
    def documents(self) -> list[Document]:
        return self.snapshot(documents_key(self.session_id)).value or []

    @property
    def player_documents(self) -> list[PlayerDocument]:
        return self.snapshot(player_documents_key(self.session_id)).value or []

    @property
    def messages(self) -> list[Message]:
        if self._view is None or self._view.kind is not ViewKind.CHANNEL:
            return []
        return self.snapshot(messages_key(self._view.target_id)).value or []

    @property
    def open_document(self) -> Document | PlayerDocument | None:
        if self._view is None or self._view.kind is ViewKind.CHANNEL:
            return None
        return self.snapshot(self._view_key(self._view)).value

    @property
    def comments(self) -> list[DocumentComment]:
        if self._view is None or self._view.kind is not ViewKind.DOCUMENT:
            return []
        return self.snapshot(comments_key(self._view.target_id)).value or []

    def errors(self) -> dict[ResourceKey, str]:
        """Fetch errors of active keys, for a banner."""
        errors = {}
        for key in self.poller.active_keys():
            error = self.poller.snapshot(key).error
            if error is not None:
                errors[key] = error
        return errors

    # views

    @property
    def view(self) -> ActiveView | None:
        return self._view

    @property
    def draft(self) -> DraftState | None:
        return self._coordinator.state if self._coordinator is not None else None

    async def select_channel(self, channel_id: int) -> Snapshot:
        view = ActiveView(ViewKind.CHANNEL, channel_id)
        self._switch_view(view)
        key = messages_key(channel_id)
        self._register(key, lambda: self.remote.list_messages(channel_id))
        return await self.poller.refresh(key)

    async def open_session_document(self, document_id: int) -> DraftState | None:
        self._switch_view(ActiveView(ViewKind.DOCUMENT, document_id))
        self._register(document_key(document_id), lambda: self.remote.get_document(document_id))
        self._register(comments_key(document_id), lambda: self.remote.list_comments(document_id))
        await self.poller.refresh(document_key(document_id))
        return self.draft

    async def open_player_document(self, document_id: int) -> DraftState | None:
        self._switch_view(ActiveView(ViewKind.PLAYER_DOCUMENT, document_id))
        key = player_document_key(document_id)
        self._register(key, lambda: self.remote.get_player_document(document_id))
        await self.poller.refresh(key)
        return self.draft

    def close_view(self) -> None:
        self._switch_view(None)

    def _switch_view(self, view: ActiveView | None) -> None:
        previous = self._view
        if previous == view:
            return
        self._coordinator = None
        self._view = view
        if previous is not None:
            for key in self._view_keys(previous):
                self.poller.disable(key)
                self.poller.forget(key)
        logger.debug(f"Active view changed from {previous} to {view}")

    def _view_key(self, view: ActiveView) -> ResourceKey:
        if view.kind is ViewKind.CHANNEL:
            return messages_key(view.target_id)
        if view.kind is ViewKind.DOCUMENT:
            return document_key(view.target_id)
        return player_document_key(view.target_id)

    def _view_keys(self, view: ActiveView) -> list[ResourceKey]:
        keys = [self._view_key(view)]
        if view.kind is ViewKind.DOCUMENT:
            keys.append(comments_key(view.target_id))
        return keys

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        view = self._view
        if view is None or view.kind is ViewKind.CHANNEL or snapshot.key != self._view_key(view):
            return
        if snapshot.error is not None or snapshot.value is None:
            return
        if self._coordinator is None:
            self._coordinator = DocumentEditCoordinator(self.remote, snapshot.value)
        else:
            self._coordinator.apply_poll(snapshot.value)

    # drafts

    def _require_coordinator(self) -> DocumentEditCoordinator:
        if self._coordinator is None:
            raise InputValidationError("No document is open for editing")
        return self._coordinator

    def edit_draft(self, content: str) -> DraftState:
        return self._require_coordinator().edit(content)

    async def save_draft(self) -> DraftState:
        coordinator = self._require_coordinator()
        state = await coordinator.save()
        if coordinator.is_player_document:
            await self._refresh(player_document_key(state.document_id), player_documents_key(self.session_id))
        else:
            await self._refresh(document_key(state.document_id), documents_key(self.session_id))
        return self._coordinator.state if self._coordinator is not None else state

    async def attach_file(
        self,
        data: bytes,
        filename: str,
        type_tag: str,
        image: bool = False,
        offset: int | None = None,
    ) -> int:
        coordinator = self._require_coordinator()
        file_id = await coordinator.attach_file(data, filename, type_tag, image=image, offset=offset)
        await self._refresh(document_key(coordinator.document_id))
        return file_id

    def preview(self, content: str | None = None) -> list[PreviewBlock]:
        document = self.open_document
        files = {ref.id: ref for ref in document.files} if isinstance(document, Document) else {}
        if content is None:
            content = self.draft.content if self.draft is not None else ""
        return build_preview(content, files)

    def known_files(self) -> dict[int, FileReference]:
        return {ref.id: ref for document in self.documents for ref in document.files}

    # chat

    async def send_message(
        self,
        content: str,
        reply_to: int | None = None,
        image_id: int | None = None,
    ) -> WriteResult:
        if self._view is None or self._view.kind is not ViewKind.CHANNEL:
            raise InputValidationError("Select a channel before sending messages")
        if not content.strip() and image_id is None:
            raise InputValidationError("Message cannot be empty")

        roll = parse_roll_command(content)
        if roll is not None:
            content = format_roll_message(self.nickname, execute_roll(roll, rng=self._rng))

        channel_id = self._view.target_id
        return await self._mutate(
            self.remote.post_message(channel_id, content, image_id=image_id, reply_to=reply_to),
            messages_key(channel_id),
        )

    def roll(self, pattern: str) -> RollResult:
        """Roll without posting, for previews."""
        request = parse_roll_command(f"/roll {pattern}")
        return execute_roll(request, rng=self._rng)

    def reply_target(self, message: Message) -> Message | None:
        return resolve_reply(message, self.messages)

    def reply_preview(self, message: Message) -> ReplyPreview:
        return reply_preview(message, self.messages)

    # capabilities

    @property
    def is_host(self) -> bool:
        return roles.is_host(self.identity, self.session)

    def document_capabilities(self, document: Document) -> roles.Capabilities:
        return roles.document_capabilities(self.identity, self.session, document)

    def player_document_capabilities(self, document: PlayerDocument) -> roles.Capabilities:
        return roles.player_document_capabilities(self.identity, self.session, document)

    def can_manage_channel(self, channel: Channel) -> bool:
        return roles.can_manage_channel(self.identity, self.session, channel)

    def can_create_channel(self, members: bool = False) -> bool:
        return roles.can_create_channel(self.identity, self.session, members=members)

    def can_delete_comment(self, comment: DocumentComment) -> bool:
        return roles.can_delete_comment(self.identity, self.session, comment)

    # mutations

    async def _mutate(self, call: Awaitable[WriteResult], *keys: ResourceKey) -> WriteResult:
        result = await call
        if not result.ok:
            logger.info(f"Mutation rejected: {result.message}")
            raise RejectionError(result.message)
        await self._refresh(*keys)
        return result

    async def _refresh(self, *keys: ResourceKey) -> None:
        active = [key for key in dict.fromkeys(keys) if self.poller.is_active(key)]
        if active:
            await asyncio.gather(*(self.poller.refresh(key) for key in active))

    async def create_channel(self, name: str, members: bool = False) -> WriteResult:
        if not name.strip():
            raise InputValidationError("Channel name is required")
        return await self._mutate(
            self.remote.create_channel(self.session_id, name.strip(), members=members),
            channels_key(self.session_id, members=members),
            session_key(self.session_id),
        )

    async def rename_channel(self, channel: Channel, name: str) -> WriteResult:
        if not name.strip():
            raise InputValidationError("Channel name is required")
        return await self._mutate(
            self.remote.rename_channel(channel.id, name.strip()),
            channels_key(self.session_id, members=channel.members),
            session_key(self.session_id),
        )

    async def delete_channel(self, channel: Channel) -> WriteResult:
        result = await self._mutate(
            self.remote.delete_channel(channel.id),
            channels_key(self.session_id, members=channel.members),
            session_key(self.session_id),
        )
        if self._view == ActiveView(ViewKind.CHANNEL, channel.id):
            self.close_view()
        return result

    async def create_document(self, name: str, content: str = "") -> WriteResult:
        if not name.strip():
            raise InputValidationError("Document name is required")
        return await self._mutate(
            self.remote.create_document(self.session_id, name.strip(), content),
            documents_key(self.session_id),
        )

    async def rename_document(self, document_id: int, name: str) -> WriteResult:
        if not name.strip():
            raise InputValidationError("Document name is required")
        return await self._mutate(
            self.remote.rename_document(document_id, name.strip()),
            document_key(document_id),
            documents_key(self.session_id),
        )

    async def delete_document(self, document_id: int) -> WriteResult:
        result = await self._mutate(self.remote.delete_document(document_id), documents_key(self.session_id))
        if self._view == ActiveView(ViewKind.DOCUMENT, document_id):
            self.close_view()
        return result

    async def lock_document(self, document_id: int) -> WriteResult:
        return await self._mutate(
            self.remote.lock_document(document_id),
            document_key(document_id),
            documents_key(self.session_id),
        )

    async def unlock_document(self, document_id: int) -> WriteResult:
        return await self._mutate(
            self.remote.unlock_document(document_id),
            document_key(document_id),
            documents_key(self.session_id),
        )

    async def create_player_document(self, name: str, content: str = "", private: bool = False) -> WriteResult:
        if not name.strip():
            raise InputValidationError("Document name is required")
        return await self._mutate(
            self.remote.create_player_document(self.session_id, name.strip(), content, private=private),
            player_documents_key(self.session_id),
        )

    async def rename_player_document(self, document_id: int, name: str) -> WriteResult:
        if not name.strip():
            raise InputValidationError("Document name is required")
        return await self._mutate(
            self.remote.rename_player_document(document_id, name.strip()),
            player_document_key(document_id),
            player_documents_key(self.session_id),
        )

    async def delete_player_document(self, document_id: int) -> WriteResult:
        result = await self._mutate(
            self.remote.delete_player_document(document_id),
            player_documents_key(self.session_id),
        )
        if self._view == ActiveView(ViewKind.PLAYER_DOCUMENT, document_id):
            self.close_view()
        return result

    async def set_player_document_privacy(self, document_id: int, private: bool) -> WriteResult:
        return await self._mutate(
            self.remote.set_player_document_privacy(document_id, private),
            player_document_key(document_id),
            player_documents_key(self.session_id),
        )

    async def add_comment(self, text: str) -> WriteResult:
        if self._view is None or self._view.kind is not ViewKind.DOCUMENT:
            raise InputValidationError("Open a session document before commenting")
        if not text.strip():
            raise InputValidationError("Comment cannot be empty")
        document_id = self._view.target_id
        return await self._mutate(self.remote.add_comment(document_id, text.strip()), comments_key(document_id))

    async def delete_comment(self, comment: DocumentComment) -> WriteResult:
        return await self._mutate(self.remote.delete_comment(comment.id), comments_key(comment.document_id))

    # export / import

    async def export_session(self) -> SessionExport:
        snapshot = await self.remote.export_session(self.session_id)
        if snapshot is None:
            raise RejectionError("Only the host can export this session")
        if self.local_store is not None:
            self.local_store.save_template(snapshot)
        return snapshot

    async def import_session(self, snapshot: SessionExport, nickname: str | None = None) -> int:
        result = await self.remote.import_session(snapshot, nickname=nickname or self.nickname)
        if not result.ok or result.created_id is None:
            raise RejectionError(result.message or "Session could not be imported")
        return result.created_id
