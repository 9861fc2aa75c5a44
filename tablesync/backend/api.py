"""FastAPI endpoints exposing the development session authority over HTTP."""

from __future__ import annotations

import base64
import binascii
import os

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from pydantic import BaseModel, Field

from .models import (
    Channel,
    Document,
    DocumentComment,
    FileReference,
    Message,
    PlayerDocument,
    RollOutcome,
    Session,
    SessionExport,
    WriteResult,
)
from .store import InMemorySessionStore


IDENTITY_HEADER = "X-Identity"


class CreateSessionRequest(BaseModel):
    name: str = Field(max_length=200)
    nickname: str = Field(max_length=100)
    password: str | None = None


class JoinSessionRequest(BaseModel):
    nickname: str = Field(max_length=100)
    password: str | None = None


class NameRequest(BaseModel):
    name: str = Field(max_length=200)


class CreateChannelRequest(BaseModel):
    name: str = Field(max_length=200)
    members: bool = False


class PostMessageRequest(BaseModel):
    content: str = Field(max_length=4000)
    image_id: int | None = None
    reply_to: int | None = None


class CreateDocumentRequest(BaseModel):
    name: str = Field(max_length=200)
    content: str = ""


class CreatePlayerDocumentRequest(BaseModel):
    name: str = Field(max_length=200)
    content: str = ""
    private: bool = False


class ContentRequest(BaseModel):
    content: str


class PrivacyRequest(BaseModel):
    private: bool


class CommentRequest(BaseModel):
    text: str = Field(max_length=2000)


class UploadFileRequest(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    type_tag: str = Field(min_length=1, max_length=100)
    image: bool = False
    data_base64: str


class RollRequest(BaseModel):
    pattern: str = Field(min_length=1, max_length=50)


class ImportSessionRequest(BaseModel):
    snapshot: SessionExport
    nickname: str | None = None


def _default_store() -> InMemorySessionStore:
    server_salt = os.getenv("TABLESYNC_SERVER_SALT", "dev-salt")
    return InMemorySessionStore(server_salt=server_salt)


def caller_identity(x_identity: str = Header(alias=IDENTITY_HEADER, min_length=1)) -> str:
    return x_identity


def create_app(store: InMemorySessionStore | None = None) -> FastAPI:
    app = FastAPI(title="tablesync development authority", version="0.1.0")
    session_store = store if store is not None else _default_store()

    def get_store() -> InMemorySessionStore:
        return session_store

    @app.post("/api/sessions", response_model=WriteResult)
    def create_session(
        payload: CreateSessionRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.create_session(caller, name=payload.name, nickname=payload.nickname, password=payload.password)

    @app.post("/api/sessions/import", response_model=WriteResult)
    def import_session(
        payload: ImportSessionRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.import_session(caller, snapshot=payload.snapshot, nickname=payload.nickname)

    @app.post("/api/sessions/{session_id}/join", response_model=WriteResult)
    def join_session(
        session_id: int,
        payload: JoinSessionRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.join_session(caller, session_id, nickname=payload.nickname, password=payload.password)

    @app.get("/api/sessions/{session_id}", response_model=Session)
    def get_session(
        session_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> Session:
        session = local_store.get_session(caller, session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    @app.get("/api/sessions/{session_id}/export", response_model=SessionExport)
    def export_session(
        session_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> SessionExport:
        snapshot = local_store.export_session(caller, session_id)
        if snapshot is None:
            raise HTTPException(status_code=404, detail="Session not found or caller is not the host")
        return snapshot

    @app.post("/api/sessions/{session_id}/rolls", response_model=RollOutcome)
    def roll(
        session_id: int,
        payload: RollRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> RollOutcome:
        try:
            outcome = local_store.roll(caller, session_id, pattern=payload.pattern)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if outcome is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return outcome

    # channels and messages

    @app.get("/api/sessions/{session_id}/channels", response_model=list[Channel])
    def list_channels(
        session_id: int,
        members: bool = Query(default=False),
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> list[Channel]:
        return local_store.list_channels(caller, session_id, members=members)

    @app.post("/api/sessions/{session_id}/channels", response_model=WriteResult)
    def create_channel(
        session_id: int,
        payload: CreateChannelRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.create_channel(caller, session_id, name=payload.name, members=payload.members)

    @app.patch("/api/channels/{channel_id}", response_model=WriteResult)
    def rename_channel(
        channel_id: int,
        payload: NameRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.rename_channel(caller, channel_id, name=payload.name)

    @app.delete("/api/channels/{channel_id}", response_model=WriteResult)
    def delete_channel(
        channel_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.delete_channel(caller, channel_id)

    @app.get("/api/channels/{channel_id}/messages", response_model=list[Message])
    def list_messages(
        channel_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> list[Message]:
        return local_store.list_messages(caller, channel_id)

    @app.post("/api/channels/{channel_id}/messages", response_model=WriteResult)
    def post_message(
        channel_id: int,
        payload: PostMessageRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.post_message(
            caller,
            channel_id,
            content=payload.content,
            image_id=payload.image_id,
            reply_to=payload.reply_to,
        )

    # session documents

    @app.get("/api/sessions/{session_id}/documents", response_model=list[Document])
    def list_documents(
        session_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> list[Document]:
        return local_store.list_documents(caller, session_id)

    @app.post("/api/sessions/{session_id}/documents", response_model=WriteResult)
    def create_document(
        session_id: int,
        payload: CreateDocumentRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.create_document(caller, session_id, name=payload.name, content=payload.content)

    @app.get("/api/documents/{document_id}", response_model=Document)
    def get_document(
        document_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> Document:
        document = local_store.get_document(caller, document_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return document

    @app.patch("/api/documents/{document_id}", response_model=WriteResult)
    def rename_document(
        document_id: int,
        payload: NameRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.rename_document(caller, document_id, name=payload.name)

    @app.put("/api/documents/{document_id}/content", response_model=WriteResult)
    def edit_document(
        document_id: int,
        payload: ContentRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.edit_document(caller, document_id, content=payload.content)

    @app.delete("/api/documents/{document_id}", response_model=WriteResult)
    def delete_document(
        document_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.delete_document(caller, document_id)

    @app.post("/api/documents/{document_id}/lock", response_model=WriteResult)
    def lock_document(
        document_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.lock_document(caller, document_id)

    @app.post("/api/documents/{document_id}/unlock", response_model=WriteResult)
    def unlock_document(
        document_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.unlock_document(caller, document_id)

    # comments and files

    @app.get("/api/documents/{document_id}/comments", response_model=list[DocumentComment])
    def list_comments(
        document_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> list[DocumentComment]:
        return local_store.list_comments(caller, document_id)

    @app.post("/api/documents/{document_id}/comments", response_model=WriteResult)
    def add_comment(
        document_id: int,
        payload: CommentRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.add_comment(caller, document_id, text=payload.text)

    @app.delete("/api/comments/{comment_id}", response_model=WriteResult)
    def delete_comment(
        comment_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.delete_comment(caller, comment_id)

    @app.post("/api/documents/{document_id}/files", response_model=WriteResult)
    def upload_file(
        document_id: int,
        payload: UploadFileRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        try:
            data = base64.b64decode(payload.data_base64, validate=True)
        except (binascii.Error, ValueError):
            return WriteResult.failure("File data is not valid base64")
        return local_store.upload_file(
            caller,
            document_id,
            data=data,
            filename=payload.filename,
            type_tag=payload.type_tag,
            image=payload.image,
        )

    @app.get("/api/files/{file_id}", response_model=FileReference)
    def get_file_reference(
        file_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> FileReference:
        reference = local_store.get_file_reference(caller, file_id)
        if reference is None:
            raise HTTPException(status_code=404, detail="File not found")
        return reference

    # player documents

    @app.get("/api/sessions/{session_id}/player-documents", response_model=list[PlayerDocument])
    def list_player_documents(
        session_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> list[PlayerDocument]:
        return local_store.list_player_documents(caller, session_id)

    @app.post("/api/sessions/{session_id}/player-documents", response_model=WriteResult)
    def create_player_document(
        session_id: int,
        payload: CreatePlayerDocumentRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.create_player_document(
            caller,
            session_id,
            name=payload.name,
            content=payload.content,
            private=payload.private,
        )

    @app.get("/api/player-documents/{document_id}", response_model=PlayerDocument)
    def get_player_document(
        document_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> PlayerDocument:
        document = local_store.get_player_document(caller, document_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Player document not found")
        return document

    @app.put("/api/player-documents/{document_id}/content", response_model=WriteResult)
    def edit_player_document(
        document_id: int,
        payload: ContentRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.edit_player_document(caller, document_id, content=payload.content)

    @app.patch("/api/player-documents/{document_id}", response_model=WriteResult)
    def rename_player_document(
        document_id: int,
        payload: NameRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.rename_player_document(caller, document_id, name=payload.name)

    @app.put("/api/player-documents/{document_id}/privacy", response_model=WriteResult)
    def set_player_document_privacy(
        document_id: int,
        payload: PrivacyRequest,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.set_player_document_privacy(caller, document_id, private=payload.private)

    @app.delete("/api/player-documents/{document_id}", response_model=WriteResult)
    def delete_player_document(
        document_id: int,
        caller: str = Depends(caller_identity),
        local_store: InMemorySessionStore = Depends(get_store),
    ) -> WriteResult:
        return local_store.delete_player_document(caller, document_id)

    return app


app = create_app()
