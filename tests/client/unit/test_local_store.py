import json

import pytest

from tablesync.backend.models import Session, SessionExport
from tablesync.client.errors import InputValidationError
from tablesync.client.local_store import (
    MAX_STICKERS,
    STORE_FILENAME,
    LocalStore,
    QuickChatProfile,
    SessionContext,
    Sticker,
)


def test_open_without_file_returns_defaults(tmp_path) -> None:
    store = LocalStore.open(tmp_path)

    assert store.path == tmp_path / STORE_FILENAME
    assert store.preferences().theme_mode == "light"
    assert store.preferences().ui_scale == 100
    assert store.session_context() is None
    assert store.stickers() == []


def test_changes_are_saved_and_reloaded(tmp_path) -> None:
    store = LocalStore.open(tmp_path)
    store.update_preferences(theme_mode="dark", default_nickname="Aria")
    store.set_session_context(SessionContext(session_id=5, nickname="Aria", is_host=False))
    store.add_sticker(Sticker(id="s1", name="wave", data_url="data:image/png;base64,AAAA"))

    reloaded = LocalStore.open(tmp_path)

    assert reloaded.preferences().theme_mode == "dark"
    assert reloaded.preferences().default_nickname == "Aria"
    assert reloaded.session_context() == SessionContext(session_id=5, nickname="Aria", is_host=False)
    assert [sticker.id for sticker in reloaded.stickers()] == ["s1"]


def test_ui_scale_is_clamped(tmp_path) -> None:
    store = LocalStore.open(tmp_path)

    assert store.update_preferences(ui_scale=500).ui_scale == 200
    assert store.update_preferences(ui_scale=1).ui_scale == 10


def test_unknown_theme_mode_is_rejected(tmp_path) -> None:
    store = LocalStore.open(tmp_path)

    with pytest.raises(InputValidationError):
        store.update_preferences(theme_mode="neon")


def test_malformed_file_falls_back_to_defaults(tmp_path) -> None:
    (tmp_path / STORE_FILENAME).write_text("{broken", encoding="utf-8")

    store = LocalStore.open(tmp_path)

    assert store.preferences().theme_mode == "light"


def test_invalid_stored_values_are_sanitised(tmp_path) -> None:
    payload = {
        "preferences": {"theme_mode": "neon", "ui_scale": 999},
        "session_context": {"session_id": "x"},
        "stickers": [{"id": "a"}],
        "quick_chat_profile": {"display_name": ""},
        "template": {"session": "nope"},
        "identity": 42,
    }
    (tmp_path / STORE_FILENAME).write_text(json.dumps(payload), encoding="utf-8")

    store = LocalStore.open(tmp_path)

    assert store.preferences().theme_mode == "light"
    assert store.preferences().ui_scale == 200
    assert store.session_context() is None
    assert store.stickers() == []
    assert store.quick_chat_profile() is None
    assert store.template() is None
    assert store.identity() is None


def test_sticker_limit_and_data_url_checks(tmp_path) -> None:
    store = LocalStore.open(tmp_path)
    for index in range(MAX_STICKERS):
        store.add_sticker(Sticker(id=str(index), name="s", data_url="data:image/png;base64,AA"))

    with pytest.raises(InputValidationError):
        store.add_sticker(Sticker(id="extra", name="s", data_url="data:image/png;base64,AA"))
    store.remove_sticker("0")
    with pytest.raises(InputValidationError):
        store.add_sticker(Sticker(id="bad", name="s", data_url="https://example.com/s.png"))

    assert len(store.stickers()) == MAX_STICKERS - 1


def test_quick_chat_profile_validation(tmp_path) -> None:
    store = LocalStore.open(tmp_path)

    with pytest.raises(InputValidationError):
        store.set_quick_chat_profile(QuickChatProfile(display_name="  "))
    with pytest.raises(InputValidationError):
        store.set_quick_chat_profile(QuickChatProfile(display_name="Aria", avatar_data_url="not-an-image"))
    store.set_quick_chat_profile(QuickChatProfile(display_name="Aria"))

    assert store.quick_chat_profile() == QuickChatProfile(display_name="Aria")


def test_template_round_trips_and_clear_removes_file(tmp_path) -> None:
    store = LocalStore.open(tmp_path)
    snapshot = SessionExport(session=Session(id=1, name="Crypt", host="host-1"))
    store.save_template(snapshot)

    assert LocalStore.open(tmp_path).template() == snapshot

    store.clear()

    assert not store.path.exists()
    assert store.template() is None
    assert LocalStore.open(tmp_path).preferences().theme_mode == "light"


def test_identity_is_saved_and_cleared(tmp_path) -> None:
    store = LocalStore.open(tmp_path)
    assert store.identity() is None

    store.set_identity("abc123")

    assert LocalStore.open(tmp_path).identity() == "abc123"
    with pytest.raises(InputValidationError):
        store.set_identity("")

    store.clear()

    assert store.identity() is None
    assert LocalStore.open(tmp_path).identity() is None
