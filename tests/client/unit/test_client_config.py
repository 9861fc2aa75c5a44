from pathlib import Path

from tablesync.client.config import DEFAULT_CONFIG_DIR, PollingIntervals, load_settings
from tablesync.client.resources import ResourceKind

ENV_NAMES = (
    "TABLESYNC_SERVER_URL",
    "TABLESYNC_IDENTITY",
    "TABLESYNC_INIT_TIMEOUT",
    "TABLESYNC_REQUEST_TIMEOUT",
    "TABLESYNC_POLL_MESSAGES",
    "TABLESYNC_POLL_LISTS",
    "TABLESYNC_POLL_SESSION",
    "TABLESYNC_POLL_DOCUMENT",
    "TABLESYNC_CONFIG_DIR",
)


def test_load_settings_applies_defaults(monkeypatch) -> None:
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.server_url == "http://127.0.0.1:8000"
    assert settings.identity is None
    assert settings.init_timeout == 15.0
    assert settings.request_timeout == 10.0
    assert settings.polling == PollingIntervals(messages=3.0, lists=5.0, session=10.0, document=5.0)
    assert settings.config_dir == DEFAULT_CONFIG_DIR


def test_load_settings_reads_expected_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TABLESYNC_SERVER_URL", "http://table.local:9000")
    monkeypatch.setenv("TABLESYNC_IDENTITY", "player-1")
    monkeypatch.setenv("TABLESYNC_INIT_TIMEOUT", "30")
    monkeypatch.setenv("TABLESYNC_POLL_MESSAGES", "1.5")
    monkeypatch.setenv("TABLESYNC_CONFIG_DIR", str(tmp_path))

    settings = load_settings()

    assert settings.server_url == "http://table.local:9000"
    assert settings.identity == "player-1"
    assert settings.init_timeout == 30.0
    assert settings.polling.messages == 1.5
    assert settings.config_dir == Path(tmp_path)


def test_polling_intervals_map_resource_kinds() -> None:
    intervals = PollingIntervals(messages=1.0, lists=2.0, session=3.0, document=4.0)

    assert intervals.for_kind(ResourceKind.MESSAGES) == 1.0
    assert intervals.for_kind(ResourceKind.CHANNELS) == 2.0
    assert intervals.for_kind(ResourceKind.PLAYER_DOCUMENTS) == 2.0
    assert intervals.for_kind(ResourceKind.SESSION) == 3.0
    assert intervals.for_kind(ResourceKind.COMMENTS) == 4.0
