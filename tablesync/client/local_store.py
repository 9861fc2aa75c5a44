"""Client-owned persisted state: identity, preferences, last session, stickers, templates.

Everything lives in one JSON file. A :class:`LocalStore` is loaded once at
startup, written back after every change, and handed by reference to the
components that need it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from tablesync.backend.models import SessionExport
from tablesync.client.errors import InputValidationError
from tablesync.client.exports import validate_template

logger = logging.getLogger(__name__)

STORE_FILENAME = "local-state.json"
MIN_UI_SCALE = 10
MAX_UI_SCALE = 200
MAX_STICKERS = 50
MAX_AVATAR_LENGTH = 5_000_000
THEME_MODES = ("light", "dark")


def clamp_ui_scale(scale: int) -> int:
    return max(MIN_UI_SCALE, min(MAX_UI_SCALE, int(scale)))


@dataclass(frozen=True)
class Preferences:
    theme_mode: str = "light"
    background_image: str | None = None
    default_nickname: str = ""
    ui_scale: int = 100


@dataclass(frozen=True)
class SessionContext:
    session_id: int
    nickname: str
    is_host: bool


@dataclass(frozen=True)
class Sticker:
    id: str
    name: str
    data_url: str


@dataclass(frozen=True)
class QuickChatProfile:
    display_name: str
    avatar_data_url: str = ""


@dataclass
class LocalState:
    preferences: Preferences = field(default_factory=Preferences)
    identity: str | None = None
    session_context: SessionContext | None = None
    stickers: list[Sticker] = field(default_factory=list)
    quick_chat_profile: QuickChatProfile | None = None
    template: dict[str, Any] | None = None


def _validated_profile(profile: QuickChatProfile) -> QuickChatProfile:
    if not profile.display_name.strip():
        raise InputValidationError("Display name is required")
    if profile.avatar_data_url and not profile.avatar_data_url.startswith("data:image/"):
        raise InputValidationError("Avatar must be an image data URL")
    if len(profile.avatar_data_url) > MAX_AVATAR_LENGTH:
        raise InputValidationError("Avatar image is too large")
    return profile


def _preferences_from(data: Any) -> Preferences:
    if not isinstance(data, dict):
        return Preferences()
    defaults = Preferences()
    theme_mode = data.get("theme_mode", defaults.theme_mode)
    background = data.get("background_image")
    ui_scale = data.get("ui_scale", defaults.ui_scale)
    return Preferences(
        theme_mode=theme_mode if theme_mode in THEME_MODES else defaults.theme_mode,
        background_image=background if isinstance(background, str) else None,
        default_nickname=str(data.get("default_nickname", defaults.default_nickname)),
        ui_scale=clamp_ui_scale(ui_scale) if isinstance(ui_scale, (int, float)) else defaults.ui_scale,
    )


def _session_context_from(data: Any) -> SessionContext | None:
    if not isinstance(data, dict):
        return None
    try:
        return SessionContext(
            session_id=int(data["session_id"]),
            nickname=str(data["nickname"]),
            is_host=bool(data["is_host"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def _stickers_from(data: Any) -> list[Sticker]:
    if not isinstance(data, list):
        return []
    stickers = []
    for item in data:
        if isinstance(item, dict) and item.get("id") and item.get("name") and item.get("data_url"):
            stickers.append(Sticker(id=str(item["id"]), name=str(item["name"]), data_url=str(item["data_url"])))
    return stickers[:MAX_STICKERS]


def _profile_from(data: Any) -> QuickChatProfile | None:
    if not isinstance(data, dict):
        return None
    profile = QuickChatProfile(
        display_name=str(data.get("display_name", "")),
        avatar_data_url=str(data.get("avatar_data_url", "")),
    )
    try:
        return _validated_profile(profile)
    except InputValidationError as exc:
        logger.warning(f"Discarding stored quick chat profile: {exc}")
        return None


class LocalStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._state = LocalState()

    @classmethod
    def open(cls, config_dir: Path) -> LocalStore:
        store = cls(Path(config_dir).expanduser() / STORE_FILENAME)
        store.load()
        return store

    def load(self) -> None:
        """Load state from disk, falling back to defaults."""
        if not self.path.exists():
            self._state = LocalState()
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            # Malformed state; keep the original file for inspection.
            logger.warning(f"Failed to load local state from {self.path}: {exc}")
            self._state = LocalState()
            return
        if not isinstance(data, dict):
            data = {}
        template = data.get("template")
        identity = data.get("identity")
        self._state = LocalState(
            preferences=_preferences_from(data.get("preferences")),
            identity=identity if isinstance(identity, str) and identity else None,
            session_context=_session_context_from(data.get("session_context")),
            stickers=_stickers_from(data.get("stickers")),
            quick_chat_profile=_profile_from(data.get("quick_chat_profile")),
            template=template if validate_template(template) else None,
        )

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(self._state), indent=2), encoding="utf-8")

    # preferences

    def preferences(self) -> Preferences:
        return self._state.preferences

    def update_preferences(self, **changes: Any) -> Preferences:
        updated = replace(self._state.preferences, **changes)
        if updated.theme_mode not in THEME_MODES:
            raise InputValidationError(f"Unknown theme mode: {updated.theme_mode}")
        updated = replace(updated, ui_scale=clamp_ui_scale(updated.ui_scale))
        self._state.preferences = updated
        self.save()
        return updated

    def reset_preferences(self) -> Preferences:
        self._state.preferences = Preferences()
        self.save()
        return self._state.preferences

    # identity

    def identity(self) -> str | None:
        return self._state.identity

    def set_identity(self, identity: str) -> None:
        if not identity:
            raise InputValidationError("Identity cannot be empty")
        self._state.identity = identity
        self.save()

    # session context

    def session_context(self) -> SessionContext | None:
        return self._state.session_context

    def set_session_context(self, context: SessionContext) -> None:
        self._state.session_context = context
        self.save()

    def clear_session_context(self) -> None:
        self._state.session_context = None
        self.save()

    # stickers

    def stickers(self) -> list[Sticker]:
        return list(self._state.stickers)

    def add_sticker(self, sticker: Sticker) -> list[Sticker]:
        if len(self._state.stickers) >= MAX_STICKERS:
            raise InputValidationError(f"Maximum {MAX_STICKERS} stickers allowed")
        if not sticker.data_url.startswith("data:image/"):
            raise InputValidationError("Sticker must be an image data URL")
        self._state.stickers.append(sticker)
        self.save()
        return self.stickers()

    def remove_sticker(self, sticker_id: str) -> list[Sticker]:
        self._state.stickers = [sticker for sticker in self._state.stickers if sticker.id != sticker_id]
        self.save()
        return self.stickers()

    # quick chat profile

    def quick_chat_profile(self) -> QuickChatProfile | None:
        return self._state.quick_chat_profile

    def set_quick_chat_profile(self, profile: QuickChatProfile) -> None:
        self._state.quick_chat_profile = _validated_profile(profile)
        self.save()

    def clear_quick_chat_profile(self) -> None:
        self._state.quick_chat_profile = None
        self.save()

    # template

    def template(self) -> SessionExport | None:
        if self._state.template is None:
            return None
        return SessionExport.model_validate(self._state.template)

    def save_template(self, snapshot: SessionExport) -> None:
        self._state.template = snapshot.model_dump(mode="json")
        self.save()

    def clear_template(self) -> None:
        self._state.template = None
        self.save()

    def clear(self) -> None:
        """Reset every piece of local data."""
        self._state = LocalState()
        if self.path.exists():
            self.path.unlink()
