"""Line directives and inline markup used when previewing content."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from tablesync.backend.models import FileReference
from tablesync.client.markers import ResolvedMarker, resolve_marker, tokenize


class LineDirective(str, Enum):
    CENTER = "center"
    EMPHASIS = "emphasis"
    HEADING = "heading"
    SMALL = "small"


class SpanKind(str, Enum):
    TEXT = "text"
    SPOILER = "spoiler"
    UNDERLINE = "underline"


_LINE_PREFIXES: tuple[tuple[str, LineDirective], ...] = (
    ("[C] ", LineDirective.CENTER),
    ("[B] ", LineDirective.EMPHASIS),
    ("# ", LineDirective.HEADING),
    ("-# ", LineDirective.SMALL),
)

_INLINE_RE = re.compile(r"\|\|(.+?)\|\||__(.+?)__")


@dataclass(frozen=True)
class InlineSpan:
    kind: SpanKind
    text: str


@dataclass(frozen=True)
class RenderedLine:
    directive: LineDirective | None
    spans: tuple[InlineSpan, ...]


@dataclass(frozen=True)
class PreviewBlock:
    """Either rendered text lines or a resolved marker."""

    lines: tuple[RenderedLine, ...] = ()
    marker: ResolvedMarker | None = None


def parse_line(line: str) -> tuple[LineDirective | None, str]:
    trimmed = line.lstrip()
    for prefix, directive in _LINE_PREFIXES:
        if trimmed.startswith(prefix):
            return directive, trimmed[len(prefix) :]
    return None, line


def parse_inline(text: str) -> list[InlineSpan]:
    spans: list[InlineSpan] = []
    last_index = 0
    for match in _INLINE_RE.finditer(text):
        if match.start() > last_index:
            spans.append(InlineSpan(SpanKind.TEXT, text[last_index : match.start()]))
        if match.group(1) is not None:
            spans.append(InlineSpan(SpanKind.SPOILER, match.group(1)))
        else:
            spans.append(InlineSpan(SpanKind.UNDERLINE, match.group(2)))
        last_index = match.end()
    if last_index < len(text) or not spans:
        spans.append(InlineSpan(SpanKind.TEXT, text[last_index:]))
    return spans


def render_text(text: str) -> list[RenderedLine]:
    lines = []
    for line in text.split("\n"):
        directive, body = parse_line(line)
        lines.append(RenderedLine(directive=directive, spans=tuple(parse_inline(body))))
    return lines


def build_preview(content: str, files: Mapping[int, FileReference]) -> list[PreviewBlock]:
    blocks: list[PreviewBlock] = []
    for segment in tokenize(content):
        if segment.marker is not None:
            blocks.append(PreviewBlock(marker=resolve_marker(segment.marker, files)))
        else:
            blocks.append(PreviewBlock(lines=tuple(render_text(segment.text))))
    return blocks
