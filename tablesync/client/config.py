"""Configuration helpers for the session client runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from tablesync.client.resources import ResourceKind


DEFAULT_CONFIG_DIR = Path.home() / ".config" / "tablesync"


@dataclass(frozen=True)
class PollingIntervals:
    messages: float = 3.0
    lists: float = 5.0
    session: float = 10.0
    document: float = 5.0

    def for_kind(self, kind: ResourceKind) -> float:
        if kind is ResourceKind.MESSAGES:
            return self.messages
        if kind is ResourceKind.SESSION:
            return self.session
        if kind in (ResourceKind.DOCUMENT, ResourceKind.PLAYER_DOCUMENT, ResourceKind.COMMENTS):
            return self.document
        return self.lists


@dataclass(frozen=True)
class ClientSettings:
    server_url: str
    identity: str | None
    init_timeout: float
    request_timeout: float
    polling: PollingIntervals
    config_dir: Path


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def load_settings() -> ClientSettings:
    defaults = PollingIntervals()
    config_dir = os.getenv("TABLESYNC_CONFIG_DIR")
    return ClientSettings(
        server_url=os.getenv("TABLESYNC_SERVER_URL", "http://127.0.0.1:8000"),
        identity=os.getenv("TABLESYNC_IDENTITY") or None,
        init_timeout=_float_env("TABLESYNC_INIT_TIMEOUT", 15.0),
        request_timeout=_float_env("TABLESYNC_REQUEST_TIMEOUT", 10.0),
        polling=PollingIntervals(
            messages=_float_env("TABLESYNC_POLL_MESSAGES", defaults.messages),
            lists=_float_env("TABLESYNC_POLL_LISTS", defaults.lists),
            session=_float_env("TABLESYNC_POLL_SESSION", defaults.session),
            document=_float_env("TABLESYNC_POLL_DOCUMENT", defaults.document),
        ),
        config_dir=Path(config_dir).expanduser() if config_dir else DEFAULT_CONFIG_DIR,
    )
