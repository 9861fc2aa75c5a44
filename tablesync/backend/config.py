"""Configuration helpers for the development session authority."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class BackendSettings:
    server_salt: str
    host: str
    port: int


def load_settings() -> BackendSettings:
    port_raw = os.getenv("TABLESYNC_PORT", "8000")
    return BackendSettings(
        server_salt=os.getenv("TABLESYNC_SERVER_SALT", "dev-salt"),
        host=os.getenv("TABLESYNC_HOST", "127.0.0.1"),
        port=int(port_raw),
    )
