from tablesync.backend.config import load_settings


def test_load_settings_reads_expected_env(monkeypatch) -> None:
    monkeypatch.setenv("TABLESYNC_SERVER_SALT", "salt-1")
    monkeypatch.setenv("TABLESYNC_HOST", "localhost")
    monkeypatch.setenv("TABLESYNC_PORT", "9000")

    settings = load_settings()

    assert settings.server_salt == "salt-1"
    assert settings.host == "localhost"
    assert settings.port == 9000


def test_load_settings_applies_defaults(monkeypatch) -> None:
    monkeypatch.delenv("TABLESYNC_SERVER_SALT", raising=False)
    monkeypatch.delenv("TABLESYNC_HOST", raising=False)
    monkeypatch.delenv("TABLESYNC_PORT", raising=False)

    settings = load_settings()

    assert settings.server_salt == "dev-salt"
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
