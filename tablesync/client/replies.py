"""Resolve a message's reply target against the loaded message window."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tablesync.backend.models import Message


UNAVAILABLE_LABEL = "original message unavailable"
EXCERPT_LENGTH = 80


@dataclass(frozen=True)
class ReplyPreview:
    message: Message
    target: Message | None

    @property
    def is_reply(self) -> bool:
        return self.message.reply_to is not None

    @property
    def available(self) -> bool:
        return self.target is not None

    @property
    def label(self) -> str:
        if self.target is None:
            return UNAVAILABLE_LABEL
        return f"{self.target.author}: {excerpt(self.target.content)}"


def excerpt(content: str, limit: int = EXCERPT_LENGTH) -> str:
    flattened = " ".join(content.split())
    if len(flattened) <= limit:
        return flattened
    return flattened[: limit - 1].rstrip() + "…"


def resolve_reply(message: Message, window: Iterable[Message]) -> Message | None:
    """Single-hop lookup; absence is a normal outcome, never an error."""
    if message.reply_to is None:
        return None
    for candidate in window:
        if candidate.id == message.reply_to and candidate.channel_id == message.channel_id:
            return candidate
    return None


def reply_preview(message: Message, window: Iterable[Message]) -> ReplyPreview:
    return ReplyPreview(message=message, target=resolve_reply(message, window))
