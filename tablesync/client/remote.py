"""Contract of the remote session authority and its client adapters."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from tablesync.backend.models import (
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
from tablesync.backend.store import InMemorySessionStore
from tablesync.client.errors import InputValidationError, TransportError

logger = logging.getLogger(__name__)

IDENTITY_HEADER = "X-Identity"

ModelT = TypeVar("ModelT", bound=BaseModel)


class RemoteAuthority(Protocol):
    """Every call is bound to the caller identity the adapter was built with."""

    identity: str

    async def create_session(self, name: str, nickname: str, password: str | None = None) -> WriteResult: ...

    async def join_session(self, session_id: int, nickname: str, password: str | None = None) -> WriteResult: ...

    async def get_session(self, session_id: int) -> Session | None: ...

    async def list_channels(self, session_id: int, members: bool = False) -> list[Channel]: ...

    async def create_channel(self, session_id: int, name: str, members: bool = False) -> WriteResult: ...

    async def rename_channel(self, channel_id: int, name: str) -> WriteResult: ...

    async def delete_channel(self, channel_id: int) -> WriteResult: ...

    async def list_messages(self, channel_id: int) -> list[Message]: ...

    async def post_message(
        self,
        channel_id: int,
        content: str,
        image_id: int | None = None,
        reply_to: int | None = None,
    ) -> WriteResult: ...

    async def list_documents(self, session_id: int) -> list[Document]: ...

    async def get_document(self, document_id: int) -> Document | None: ...

    async def create_document(self, session_id: int, name: str, content: str = "") -> WriteResult: ...

    async def rename_document(self, document_id: int, name: str) -> WriteResult: ...

    async def delete_document(self, document_id: int) -> WriteResult: ...

    async def edit_document(self, document_id: int, content: str) -> WriteResult: ...

    async def lock_document(self, document_id: int) -> WriteResult: ...

    async def unlock_document(self, document_id: int) -> WriteResult: ...

    async def list_player_documents(self, session_id: int) -> list[PlayerDocument]: ...

    async def get_player_document(self, document_id: int) -> PlayerDocument | None: ...

    async def create_player_document(
        self,
        session_id: int,
        name: str,
        content: str = "",
        private: bool = False,
    ) -> WriteResult: ...

    async def edit_player_document(self, document_id: int, content: str) -> WriteResult: ...

    async def rename_player_document(self, document_id: int, name: str) -> WriteResult: ...

    async def delete_player_document(self, document_id: int) -> WriteResult: ...

    async def set_player_document_privacy(self, document_id: int, private: bool) -> WriteResult: ...

    async def list_comments(self, document_id: int) -> list[DocumentComment]: ...

    async def add_comment(self, document_id: int, text: str) -> WriteResult: ...

    async def delete_comment(self, comment_id: int) -> WriteResult: ...

    async def upload_file(
        self,
        document_id: int,
        data: bytes,
        filename: str,
        type_tag: str,
        image: bool = False,
    ) -> WriteResult: ...

    async def get_file_reference(self, file_id: int) -> FileReference | None: ...

    async def roll(self, session_id: int, pattern: str) -> RollOutcome | None: ...

    async def export_session(self, session_id: int) -> SessionExport | None: ...

    async def import_session(self, snapshot: SessionExport, nickname: str | None = None) -> WriteResult: ...


class LocalRemoteAuthority:
    """Binds an identity to an in-process :class:`InMemorySessionStore`.

    Each call yields to the event loop first so callers observe the same
    suspension points they would against a networked authority.
    """

    def __init__(self, store: InMemorySessionStore, identity: str) -> None:
        self.store = store
        self.identity = identity

    async def create_session(self, name: str, nickname: str, password: str | None = None) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.create_session(self.identity, name=name, nickname=nickname, password=password)

    async def join_session(self, session_id: int, nickname: str, password: str | None = None) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.join_session(self.identity, session_id, nickname=nickname, password=password)

    async def get_session(self, session_id: int) -> Session | None:
        await asyncio.sleep(0)
        return self.store.get_session(self.identity, session_id)

    async def list_channels(self, session_id: int, members: bool = False) -> list[Channel]:
        await asyncio.sleep(0)
        return self.store.list_channels(self.identity, session_id, members=members)

    async def create_channel(self, session_id: int, name: str, members: bool = False) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.create_channel(self.identity, session_id, name=name, members=members)

    async def rename_channel(self, channel_id: int, name: str) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.rename_channel(self.identity, channel_id, name=name)

    async def delete_channel(self, channel_id: int) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.delete_channel(self.identity, channel_id)

    async def list_messages(self, channel_id: int) -> list[Message]:
        await asyncio.sleep(0)
        return self.store.list_messages(self.identity, channel_id)

    async def post_message(
        self,
        channel_id: int,
        content: str,
        image_id: int | None = None,
        reply_to: int | None = None,
    ) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.post_message(self.identity, channel_id, content=content, image_id=image_id, reply_to=reply_to)

    async def list_documents(self, session_id: int) -> list[Document]:
        await asyncio.sleep(0)
        return self.store.list_documents(self.identity, session_id)

    async def get_document(self, document_id: int) -> Document | None:
        await asyncio.sleep(0)
        return self.store.get_document(self.identity, document_id)

    async def create_document(self, session_id: int, name: str, content: str = "") -> WriteResult:
        await asyncio.sleep(0)
        return self.store.create_document(self.identity, session_id, name=name, content=content)

    async def rename_document(self, document_id: int, name: str) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.rename_document(self.identity, document_id, name=name)

    async def delete_document(self, document_id: int) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.delete_document(self.identity, document_id)

    async def edit_document(self, document_id: int, content: str) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.edit_document(self.identity, document_id, content=content)

    async def lock_document(self, document_id: int) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.lock_document(self.identity, document_id)

    async def unlock_document(self, document_id: int) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.unlock_document(self.identity, document_id)

    async def list_player_documents(self, session_id: int) -> list[PlayerDocument]:
        await asyncio.sleep(0)
        return self.store.list_player_documents(self.identity, session_id)

    async def get_player_document(self, document_id: int) -> PlayerDocument | None:
        await asyncio.sleep(0)
        return self.store.get_player_document(self.identity, document_id)

    async def create_player_document(
        self,
        session_id: int,
        name: str,
        content: str = "",
        private: bool = False,
    ) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.create_player_document(self.identity, session_id, name=name, content=content, private=private)

    async def edit_player_document(self, document_id: int, content: str) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.edit_player_document(self.identity, document_id, content=content)

    async def rename_player_document(self, document_id: int, name: str) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.rename_player_document(self.identity, document_id, name=name)

    async def delete_player_document(self, document_id: int) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.delete_player_document(self.identity, document_id)

    async def set_player_document_privacy(self, document_id: int, private: bool) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.set_player_document_privacy(self.identity, document_id, private=private)

    async def list_comments(self, document_id: int) -> list[DocumentComment]:
        await asyncio.sleep(0)
        return self.store.list_comments(self.identity, document_id)

    async def add_comment(self, document_id: int, text: str) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.add_comment(self.identity, document_id, text=text)

    async def delete_comment(self, comment_id: int) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.delete_comment(self.identity, comment_id)

    async def upload_file(
        self,
        document_id: int,
        data: bytes,
        filename: str,
        type_tag: str,
        image: bool = False,
    ) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.upload_file(self.identity, document_id, data=data, filename=filename, type_tag=type_tag, image=image)

    async def get_file_reference(self, file_id: int) -> FileReference | None:
        await asyncio.sleep(0)
        return self.store.get_file_reference(self.identity, file_id)

    async def roll(self, session_id: int, pattern: str) -> RollOutcome | None:
        await asyncio.sleep(0)
        return self.store.roll(self.identity, session_id, pattern=pattern)

    async def export_session(self, session_id: int) -> SessionExport | None:
        await asyncio.sleep(0)
        return self.store.export_session(self.identity, session_id)

    async def import_session(self, snapshot: SessionExport, nickname: str | None = None) -> WriteResult:
        await asyncio.sleep(0)
        return self.store.import_session(self.identity, snapshot=snapshot, nickname=nickname)


class HttpRemoteAuthority:
    """Talks to the authority's HTTP API with an ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        identity: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.identity = identity
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={IDENTITY_HEADER: identity},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpRemoteAuthority:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {path} failed: {exc!r}")
            raise TransportError(f"Request to {path} failed: {exc}") from exc

    async def _read(self, path: str, model: type[ModelT], params: dict[str, Any] | None = None) -> ModelT | None:
        response = await self._request("GET", path, params=params)
        if response.status_code == 404:
            return None
        return self._decode(response, model)

    async def _read_list(self, path: str, model: type[ModelT], params: dict[str, Any] | None = None) -> list[ModelT]:
        response = await self._request("GET", path, params=params)
        return self._decode(response, TypeAdapter(list[model]))

    async def _write(self, method: str, path: str, payload: dict[str, Any] | None = None) -> WriteResult:
        response = await self._request(method, path, json=payload)
        if response.status_code >= 500:
            raise TransportError(f"{method} {path} returned {response.status_code}")
        if response.status_code != 200:
            return WriteResult.failure(_error_detail(response))
        return self._decode(response, WriteResult)

    def _decode(self, response: httpx.Response, model: Any) -> Any:
        if response.status_code != 200:
            raise TransportError(f"{response.request.method} {response.request.url.path} returned {response.status_code}")
        try:
            if isinstance(model, TypeAdapter):
                return model.validate_json(response.content)
            return model.model_validate_json(response.content)
        except ValidationError as exc:
            raise TransportError(f"Malformed response from {response.request.url.path}") from exc

    async def create_session(self, name: str, nickname: str, password: str | None = None) -> WriteResult:
        return await self._write("POST", "/api/sessions", {"name": name, "nickname": nickname, "password": password})

    async def join_session(self, session_id: int, nickname: str, password: str | None = None) -> WriteResult:
        return await self._write("POST", f"/api/sessions/{session_id}/join", {"nickname": nickname, "password": password})

    async def get_session(self, session_id: int) -> Session | None:
        return await self._read(f"/api/sessions/{session_id}", Session)

    async def list_channels(self, session_id: int, members: bool = False) -> list[Channel]:
        params = {"members": "true" if members else "false"}
        return await self._read_list(f"/api/sessions/{session_id}/channels", Channel, params=params)

    async def create_channel(self, session_id: int, name: str, members: bool = False) -> WriteResult:
        return await self._write("POST", f"/api/sessions/{session_id}/channels", {"name": name, "members": members})

    async def rename_channel(self, channel_id: int, name: str) -> WriteResult:
        return await self._write("PATCH", f"/api/channels/{channel_id}", {"name": name})

    async def delete_channel(self, channel_id: int) -> WriteResult:
        return await self._write("DELETE", f"/api/channels/{channel_id}")

    async def list_messages(self, channel_id: int) -> list[Message]:
        return await self._read_list(f"/api/channels/{channel_id}/messages", Message)

    async def post_message(
        self,
        channel_id: int,
        content: str,
        image_id: int | None = None,
        reply_to: int | None = None,
    ) -> WriteResult:
        payload = {"content": content, "image_id": image_id, "reply_to": reply_to}
        return await self._write("POST", f"/api/channels/{channel_id}/messages", payload)

    async def list_documents(self, session_id: int) -> list[Document]:
        return await self._read_list(f"/api/sessions/{session_id}/documents", Document)

    async def get_document(self, document_id: int) -> Document | None:
        return await self._read(f"/api/documents/{document_id}", Document)

    async def create_document(self, session_id: int, name: str, content: str = "") -> WriteResult:
        return await self._write("POST", f"/api/sessions/{session_id}/documents", {"name": name, "content": content})

    async def rename_document(self, document_id: int, name: str) -> WriteResult:
        return await self._write("PATCH", f"/api/documents/{document_id}", {"name": name})

    async def delete_document(self, document_id: int) -> WriteResult:
        return await self._write("DELETE", f"/api/documents/{document_id}")

    async def edit_document(self, document_id: int, content: str) -> WriteResult:
        return await self._write("PUT", f"/api/documents/{document_id}/content", {"content": content})

    async def lock_document(self, document_id: int) -> WriteResult:
        return await self._write("POST", f"/api/documents/{document_id}/lock")

    async def unlock_document(self, document_id: int) -> WriteResult:
        return await self._write("POST", f"/api/documents/{document_id}/unlock")

    async def list_player_documents(self, session_id: int) -> list[PlayerDocument]:
        return await self._read_list(f"/api/sessions/{session_id}/player-documents", PlayerDocument)

    async def get_player_document(self, document_id: int) -> PlayerDocument | None:
        return await self._read(f"/api/player-documents/{document_id}", PlayerDocument)

    async def create_player_document(
        self,
        session_id: int,
        name: str,
        content: str = "",
        private: bool = False,
    ) -> WriteResult:
        payload = {"name": name, "content": content, "private": private}
        return await self._write("POST", f"/api/sessions/{session_id}/player-documents", payload)

    async def edit_player_document(self, document_id: int, content: str) -> WriteResult:
        return await self._write("PUT", f"/api/player-documents/{document_id}/content", {"content": content})

    async def rename_player_document(self, document_id: int, name: str) -> WriteResult:
        return await self._write("PATCH", f"/api/player-documents/{document_id}", {"name": name})

    async def delete_player_document(self, document_id: int) -> WriteResult:
        return await self._write("DELETE", f"/api/player-documents/{document_id}")

    async def set_player_document_privacy(self, document_id: int, private: bool) -> WriteResult:
        return await self._write("PUT", f"/api/player-documents/{document_id}/privacy", {"private": private})

    async def list_comments(self, document_id: int) -> list[DocumentComment]:
        return await self._read_list(f"/api/documents/{document_id}/comments", DocumentComment)

    async def add_comment(self, document_id: int, text: str) -> WriteResult:
        return await self._write("POST", f"/api/documents/{document_id}/comments", {"text": text})

    async def delete_comment(self, comment_id: int) -> WriteResult:
        return await self._write("DELETE", f"/api/comments/{comment_id}")

    async def upload_file(
        self,
        document_id: int,
        data: bytes,
        filename: str,
        type_tag: str,
        image: bool = False,
    ) -> WriteResult:
        payload = {
            "filename": filename,
            "type_tag": type_tag,
            "image": image,
            "data_base64": base64.b64encode(data).decode("ascii"),
        }
        return await self._write("POST", f"/api/documents/{document_id}/files", payload)

    async def get_file_reference(self, file_id: int) -> FileReference | None:
        return await self._read(f"/api/files/{file_id}", FileReference)

    async def roll(self, session_id: int, pattern: str) -> RollOutcome | None:
        response = await self._request("POST", f"/api/sessions/{session_id}/rolls", json={"pattern": pattern})
        if response.status_code == 400:
            raise InputValidationError(_error_detail(response))
        if response.status_code == 404:
            return None
        return self._decode(response, RollOutcome)

    async def export_session(self, session_id: int) -> SessionExport | None:
        return await self._read(f"/api/sessions/{session_id}/export", SessionExport)

    async def import_session(self, snapshot: SessionExport, nickname: str | None = None) -> WriteResult:
        payload = {"snapshot": snapshot.model_dump(mode="json"), "nickname": nickname}
        return await self._write("POST", "/api/sessions/import", payload)


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, str) and detail:
        return detail
    return f"Request failed with status {response.status_code}"


def create_remote(
    server_url: str | None,
    identity: str,
    store: InMemorySessionStore | None = None,
    timeout: float = 10.0,
) -> RemoteAuthority:
    if store is not None:
        return LocalRemoteAuthority(store=store, identity=identity)
    if not server_url:
        raise ValueError("server_url is required without a local store")
    return HttpRemoteAuthority(base_url=server_url, identity=identity, timeout=timeout)
