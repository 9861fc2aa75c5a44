"""Versioned file format wrapping a session export for backup and templates."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from tablesync.backend.models import SessionExport
from tablesync.client.errors import InputValidationError


EXPORT_VERSION = "1.0"


def build_export_document(snapshot: SessionExport, exported_at: datetime | None = None) -> dict[str, Any]:
    moment = exported_at or datetime.now(timezone.utc)
    return {
        "version": EXPORT_VERSION,
        "exportedAt": moment.isoformat(),
        "data": snapshot.model_dump(mode="json"),
    }


def create_export_file(snapshot: SessionExport, exported_at: datetime | None = None) -> bytes:
    return json.dumps(build_export_document(snapshot, exported_at), indent=2).encode("utf-8")


def export_filename(session_name: str, exported_at: datetime | None = None) -> str:
    moment = exported_at or datetime.now(timezone.utc)
    safe_name = re.sub(r"[^a-z0-9]", "_", session_name, flags=re.IGNORECASE)
    return f"{safe_name}_{int(moment.timestamp() * 1000)}.json"


def validate_template(data: Any) -> bool:
    """Return True when ``data`` has the shape of an exported session."""
    if not isinstance(data, dict) or not isinstance(data.get("session"), dict):
        return False
    required_lists = ("channels", "messages", "documents", "player_documents", "files")
    return all(isinstance(data.get(name), list) for name in required_lists)


def parse_export_document(document: Any) -> SessionExport:
    if not isinstance(document, dict):
        raise InputValidationError("Invalid file format: expected a JSON object")
    version = document.get("version")
    if not version:
        raise InputValidationError("Invalid file format: missing version")
    if version != EXPORT_VERSION:
        raise InputValidationError(f"Incompatible version: expected {EXPORT_VERSION}, got {version}")
    data = document.get("data")
    if data is None:
        raise InputValidationError("Invalid file format: missing data")
    if not validate_template(data):
        raise InputValidationError("Invalid file format: corrupted session data")
    try:
        return SessionExport.model_validate(data)
    except ValidationError as exc:
        raise InputValidationError(f"Invalid file format: {exc.error_count()} invalid field(s)") from exc


def parse_import_file(raw: bytes | str) -> SessionExport:
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InputValidationError(f"Failed to parse file: {exc}") from exc
    return parse_export_document(document)
