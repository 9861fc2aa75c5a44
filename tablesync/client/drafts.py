"""Local edit buffer for an open document and its save/lock protocol."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Union

from tablesync.backend.models import Document, PlayerDocument
from tablesync.client.errors import DocumentLockedError, RejectionError, SyncError
from tablesync.client.files import validate_upload
from tablesync.client.markers import MarkerTag, create_marker, insert_marker
from tablesync.client.remote import RemoteAuthority

logger = logging.getLogger(__name__)

EditableDocument = Union[Document, PlayerDocument]


class DraftStatus(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"


@dataclass(frozen=True)
class DraftState:
    document_id: int
    content: str
    status: DraftStatus
    base_revision: int
    server_content: str
    server_revision: int
    locked: bool = False
    error: str | None = None
    submitted: str | None = None

    @property
    def dirty(self) -> bool:
        return self.status is not DraftStatus.CLEAN

    @property
    def saving(self) -> bool:
        return self.status is DraftStatus.SAVING


@dataclass(frozen=True)
class ContentEdited:
    content: str


@dataclass(frozen=True)
class PollReceived:
    document: EditableDocument


@dataclass(frozen=True)
class SaveStarted:
    pass


@dataclass(frozen=True)
class SaveSucceeded:
    content: str
    revision: int | None = None


@dataclass(frozen=True)
class SaveFailed:
    error: str


DraftEvent = Union[ContentEdited, PollReceived, SaveStarted, SaveSucceeded, SaveFailed]


def _revision_of(document: EditableDocument) -> int:
    if isinstance(document, Document):
        return document.revision
    return document.last_modified


def _locked(document: EditableDocument) -> bool:
    return isinstance(document, Document) and document.locked


def open_draft(document: EditableDocument) -> DraftState:
    revision = _revision_of(document)
    return DraftState(
        document_id=document.id,
        content=document.content,
        status=DraftStatus.CLEAN,
        base_revision=revision,
        server_content=document.content,
        server_revision=revision,
        locked=_locked(document),
    )


def reduce_draft(state: DraftState, event: DraftEvent) -> DraftState:
    """Apply one event to a draft and return the next draft."""
    if isinstance(event, ContentEdited):
        return _apply_edit(state, event)
    if isinstance(event, PollReceived):
        return _apply_poll(state, event)
    if isinstance(event, SaveStarted):
        return _apply_save_started(state)
    if isinstance(event, SaveSucceeded):
        return _apply_save_succeeded(state, event)
    if isinstance(event, SaveFailed):
        return _apply_save_failed(state, event)
    return state


def _apply_edit(state: DraftState, event: ContentEdited) -> DraftState:
    if state.status is DraftStatus.SAVING:
        return replace(state, content=event.content)
    if event.content == state.server_content:
        return replace(state, content=event.content, status=DraftStatus.CLEAN, base_revision=state.server_revision)
    return replace(state, content=event.content, status=DraftStatus.DIRTY)


def _apply_poll(state: DraftState, event: PollReceived) -> DraftState:
    document = event.document
    revision = _revision_of(document)
    if document.id != state.document_id or revision < state.server_revision:
        return state

    next_state = replace(
        state,
        server_content=document.content,
        server_revision=revision,
        locked=_locked(document),
    )
    if state.status is not DraftStatus.CLEAN:
        return next_state
    return replace(next_state, content=document.content, base_revision=revision, error=None)


def _apply_save_started(state: DraftState) -> DraftState:
    if state.status is not DraftStatus.DIRTY or state.locked:
        return state
    return replace(state, status=DraftStatus.SAVING, submitted=state.content, error=None)


def _apply_save_succeeded(state: DraftState, event: SaveSucceeded) -> DraftState:
    server_content = state.server_content
    server_revision = state.server_revision
    if event.revision is None or event.revision >= state.server_revision:
        server_content = event.content
        server_revision = event.revision if event.revision is not None else state.server_revision

    next_state = replace(
        state,
        server_content=server_content,
        server_revision=server_revision,
        base_revision=server_revision,
        submitted=None,
        error=None,
    )
    if state.content == event.content:
        return replace(next_state, content=server_content, status=DraftStatus.CLEAN)
    return replace(next_state, status=DraftStatus.DIRTY)


def _apply_save_failed(state: DraftState, event: SaveFailed) -> DraftState:
    return replace(state, status=DraftStatus.DIRTY, submitted=None, error=event.error)


class DocumentEditCoordinator:
    """Owns the draft of one open session or player document."""

    def __init__(
        self,
        remote: RemoteAuthority,
        document: EditableDocument,
        listener: Callable[[DraftState], None] | None = None,
    ) -> None:
        self._remote = remote
        self._player_document = isinstance(document, PlayerDocument)
        self._state = open_draft(document)
        self._listener = listener

    @property
    def state(self) -> DraftState:
        return self._state

    @property
    def document_id(self) -> int:
        return self._state.document_id

    @property
    def is_player_document(self) -> bool:
        return self._player_document

    def dispatch(self, event: DraftEvent) -> DraftState:
        next_state = reduce_draft(self._state, event)
        if next_state != self._state:
            self._state = next_state
            if self._listener is not None:
                self._listener(next_state)
        return self._state

    def edit(self, content: str) -> DraftState:
        return self.dispatch(ContentEdited(content))

    def apply_poll(self, document: EditableDocument) -> DraftState:
        if isinstance(document, PlayerDocument) != self._player_document:
            return self._state
        return self.dispatch(PollReceived(document))

    async def save(self) -> DraftState:
        """Submit the draft; raises on lock, rejection or transport failure."""
        state = self._state
        if state.status is not DraftStatus.DIRTY:
            return state
        if state.locked:
            error = DocumentLockedError()
            self.dispatch(SaveFailed(error.message))
            raise error

        state = self.dispatch(SaveStarted())
        submitted = state.content
        try:
            if self._player_document:
                result = await self._remote.edit_player_document(state.document_id, submitted)
            else:
                result = await self._remote.edit_document(state.document_id, submitted)
        except SyncError as exc:
            self.dispatch(SaveFailed(str(exc)))
            raise

        if not result.ok:
            logger.info(f"Save of document {state.document_id} rejected: {result.message}")
            self.dispatch(SaveFailed(result.message))
            raise RejectionError(result.message)

        return self.dispatch(SaveSucceeded(content=submitted, revision=result.revision))

    async def attach_file(
        self,
        data: bytes,
        filename: str,
        type_tag: str,
        image: bool = False,
        offset: int | None = None,
    ) -> int:
        """Upload a file to the open document and insert its marker into the draft."""
        if self._player_document:
            raise RejectionError("Files can only be attached to session documents")
        upload = validate_upload(data, filename, type_tag, image=image)
        if self._state.locked:
            raise DocumentLockedError()

        result = await self._remote.upload_file(
            self._state.document_id,
            data=upload.data,
            filename=upload.filename,
            type_tag=upload.type_tag,
            image=upload.image,
        )
        if not result.ok:
            raise RejectionError(result.message)
        if result.created_id is None:
            raise RejectionError("Upload did not return a file id")

        tag = MarkerTag.IMAGE if upload.image else MarkerTag.FILE
        marker = create_marker(tag, result.created_id, upload.filename)
        content = self._state.content
        position = len(content) if offset is None else offset
        self.edit(insert_marker(content, position, marker, own_line=not upload.image))
        return result.created_id
