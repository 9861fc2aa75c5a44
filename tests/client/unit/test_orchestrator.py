import asyncio
import random

import pytest

from tablesync.backend.models import DOCUMENT_LOCKED_MESSAGE
from tablesync.backend.store import InMemorySessionStore
from tablesync.client.config import PollingIntervals
from tablesync.client.drafts import DraftStatus
from tablesync.client.errors import DocumentLockedError, InputValidationError, RejectionError
from tablesync.client.local_store import LocalStore
from tablesync.client.orchestrator import SessionOrchestrator, ViewKind
from tablesync.client.remote import LocalRemoteAuthority
from tablesync.client.resources import comments_key, document_key, messages_key

SLOW = PollingIntervals(messages=60.0, lists=60.0, session=60.0, document=60.0)


class _ScriptedRandom(random.Random):
    def __init__(self, values: list[int]) -> None:
        super().__init__()
        self._values = list(values)

    def randint(self, a: int, b: int) -> int:
        return self._values.pop(0)


def _setup() -> tuple[InMemorySessionStore, int]:
    store = InMemorySessionStore(server_salt="salt")
    session_id = store.create_session("host-1", "Crypt", "GM").created_id
    store.join_session("player-1", session_id, "Aria")
    return store, session_id


async def _started(store: InMemorySessionStore, session_id: int, identity: str, nickname: str, **kwargs) -> SessionOrchestrator:
    remote = LocalRemoteAuthority(store=store, identity=identity)
    orchestrator = SessionOrchestrator(remote, session_id, nickname, intervals=SLOW, **kwargs)
    await orchestrator.start()
    await asyncio.sleep(0.01)
    return orchestrator


def test_start_loads_session_lists() -> None:
    store, session_id = _setup()

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            return orchestrator.session, orchestrator.channels, orchestrator.is_host
        finally:
            await orchestrator.close()

    session, channels, is_host = asyncio.run(scenario())

    assert session.name == "Crypt"
    assert [channel.name for channel in channels] == ["general"]
    assert is_host is False


def test_send_message_refreshes_messages_and_resolves_replies() -> None:
    store, session_id = _setup()

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            await orchestrator.select_channel(orchestrator.channels[0].id)
            first = await orchestrator.send_message("Where is the key?")
            await orchestrator.send_message("Under the mat", reply_to=first.created_id)
            messages = orchestrator.messages
            return messages, orchestrator.reply_preview(messages[-1])
        finally:
            await orchestrator.close()

    messages, preview = asyncio.run(scenario())

    assert [message.content for message in messages] == ["Where is the key?", "Under the mat"]
    assert preview.label == "Aria: Where is the key?"


def test_roll_command_is_posted_as_formatted_message() -> None:
    store, session_id = _setup()

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria", rng=_ScriptedRandom([4, 2, 5]))
        try:
            await orchestrator.select_channel(orchestrator.channels[0].id)
            await orchestrator.send_message("/roll 3d6-2")
            return orchestrator.messages
        finally:
            await orchestrator.close()

    messages = asyncio.run(scenario())

    assert messages[-1].content == "🎲 Aria rolls 3d6-2: [4, 2, 5] 11-2=9"


def test_preview_roll_runs_without_an_event_loop() -> None:
    store, session_id = _setup()
    remote = LocalRemoteAuthority(store=store, identity="player-1")
    orchestrator = SessionOrchestrator(remote, session_id, "Aria", intervals=SLOW, rng=_ScriptedRandom([3, 6]))

    result = orchestrator.roll("2d6+1")

    assert result.rolls == (3, 6)
    assert result.total == 10
    assert store.list_messages("player-1", store.list_channels("player-1", session_id)[0].id) == []


def test_invalid_input_is_rejected_before_any_write() -> None:
    store, session_id = _setup()

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            channel_id = orchestrator.channels[0].id
            await orchestrator.select_channel(channel_id)
            with pytest.raises(InputValidationError):
                await orchestrator.send_message("   ")
            with pytest.raises(InputValidationError):
                await orchestrator.send_message("/roll d0")
            return store.list_messages("player-1", channel_id)
        finally:
            await orchestrator.close()

    assert asyncio.run(scenario()) == []


def test_rejected_mutation_raises_with_authority_message() -> None:
    store, session_id = _setup()

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            with pytest.raises(RejectionError) as excinfo:
                await orchestrator.create_channel("loot")
            members = await orchestrator.create_channel("whispers", members=True)
            return excinfo.value.message, members, orchestrator.members_channels
        finally:
            await orchestrator.close()

    message, members, members_channels = asyncio.run(scenario())

    assert message == "Only the host can create channels"
    assert members.ok is True
    assert [channel.name for channel in members_channels] == ["whispers"]


def test_switching_views_disables_previous_scoped_keys() -> None:
    store, session_id = _setup()
    document_id = store.create_document("host-1", session_id, "Lore", "text").created_id

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            channel_id = orchestrator.channels[0].id
            await orchestrator.select_channel(channel_id)
            await orchestrator.open_session_document(document_id)
            after_open = (
                orchestrator.poller.is_active(messages_key(channel_id)),
                orchestrator.poller.is_active(document_key(document_id)),
                orchestrator.poller.is_active(comments_key(document_id)),
            )
            orchestrator.close_view()
            after_close = orchestrator.poller.is_active(document_key(document_id))
            return after_open, after_close, orchestrator.draft, orchestrator.view
        finally:
            await orchestrator.close()

    after_open, after_close, draft, view = asyncio.run(scenario())

    assert after_open == (False, True, True)
    assert after_close is False
    assert draft is None
    assert view is None


def test_open_edit_and_save_document() -> None:
    store, session_id = _setup()
    document_id = store.create_document("host-1", session_id, "Lore", "old").created_id

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            opened = await orchestrator.open_session_document(document_id)
            orchestrator.edit_draft("new")
            saved = await orchestrator.save_draft()
            return opened, saved, orchestrator.view.kind
        finally:
            await orchestrator.close()

    opened, saved, kind = asyncio.run(scenario())

    assert opened.content == "old"
    assert kind is ViewKind.DOCUMENT
    assert saved.status is DraftStatus.CLEAN
    assert saved.server_revision == 2
    assert store.get_document("host-1", document_id).content == "new"


def test_lock_observed_by_poll_blocks_save_without_write() -> None:
    store, session_id = _setup()
    document_id = store.create_document("host-1", session_id, "Lore", "old").created_id

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            await orchestrator.open_session_document(document_id)
            orchestrator.edit_draft("mine")
            store.lock_document("host-1", document_id)
            await orchestrator.poller.refresh(document_key(document_id))
            with pytest.raises(DocumentLockedError) as excinfo:
                await orchestrator.save_draft()
            return excinfo.value.message, orchestrator.draft
        finally:
            await orchestrator.close()

    message, draft = asyncio.run(scenario())

    assert message == DOCUMENT_LOCKED_MESSAGE
    assert draft.content == "mine"
    assert draft.locked is True
    assert store.get_document("host-1", document_id).revision == 1


def test_concurrent_remote_edit_does_not_clobber_local_draft() -> None:
    store, session_id = _setup()
    document_id = store.create_document("host-1", session_id, "Lore", "v1").created_id

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            await orchestrator.open_session_document(document_id)
            orchestrator.edit_draft("player text")
            store.edit_document("host-1", document_id, "host text")
            await orchestrator.poller.refresh(document_key(document_id))
            return orchestrator.draft
        finally:
            await orchestrator.close()

    draft = asyncio.run(scenario())

    assert draft.content == "player text"
    assert draft.server_content == "host text"
    assert draft.status is DraftStatus.DIRTY


def test_deleting_open_document_closes_view() -> None:
    store, session_id = _setup()

    async def scenario():
        orchestrator = await _started(store, session_id, "host-1", "GM")
        try:
            created = await orchestrator.create_document("Scratch")
            await orchestrator.open_session_document(created.created_id)
            await orchestrator.delete_document(created.created_id)
            return orchestrator.view, orchestrator.documents
        finally:
            await orchestrator.close()

    view, documents = asyncio.run(scenario())

    assert view is None
    assert documents == []


def test_player_document_and_comment_flow() -> None:
    store, session_id = _setup()
    document_id = store.create_document("host-1", session_id, "Lore", "").created_id

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            created = await orchestrator.create_player_document("Sheet", "hp 10", private=True)
            await orchestrator.open_player_document(created.created_id)
            orchestrator.edit_draft("hp 8")
            saved = await orchestrator.save_draft()
            await orchestrator.open_session_document(document_id)
            await orchestrator.add_comment("Nice lore")
            comments = orchestrator.comments
            return saved, comments, [orchestrator.can_delete_comment(comment) for comment in comments]
        finally:
            await orchestrator.close()

    saved, comments, deletable = asyncio.run(scenario())

    assert saved.status is DraftStatus.CLEAN
    assert saved.content == "hp 8"
    assert [comment.text for comment in comments] == ["Nice lore"]
    assert deletable == [True]


def test_export_saves_template_and_import_creates_session(tmp_path) -> None:
    store, session_id = _setup()
    local_store = LocalStore.open(tmp_path)

    async def scenario():
        orchestrator = await _started(store, session_id, "host-1", "GM", local_store=local_store)
        try:
            snapshot = await orchestrator.export_session()
            new_session_id = await orchestrator.import_session(snapshot)
            return snapshot, new_session_id
        finally:
            await orchestrator.close()

    snapshot, new_session_id = asyncio.run(scenario())

    assert local_store.template() == snapshot
    assert new_session_id != session_id
    assert store.get_session("host-1", new_session_id).name == "Crypt"


def test_export_by_non_host_is_rejected() -> None:
    store, session_id = _setup()

    async def scenario():
        orchestrator = await _started(store, session_id, "player-1", "Aria")
        try:
            await orchestrator.export_session()
        finally:
            await orchestrator.close()

    with pytest.raises(RejectionError):
        asyncio.run(scenario())
