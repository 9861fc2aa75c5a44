"""Inline file and image reference markers embedded in content.

A marker has the shape ``[TAG:id:label]`` where ``TAG`` is ``FILE`` or
``IMAGE`` (matched case-insensitively), ``id`` is a non-negative integer and
``label`` is free text without square brackets. Anything that does not form
a complete marker is ordinary text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from tablesync.backend.models import FileReference


class MarkerTag(str, Enum):
    FILE = "FILE"
    IMAGE = "IMAGE"


_MARKER_RE = re.compile(r"\[(FILE|IMAGE):(\d+):([^\[\]]*)\]", re.IGNORECASE)


@dataclass(frozen=True)
class Marker:
    tag: MarkerTag
    ref_id: int
    label: str
    start: int
    end: int
    literal: str


@dataclass(frozen=True)
class Segment:
    """A slice of content: plain text, or a marker when ``marker`` is set."""

    text: str
    marker: Marker | None = None

    @property
    def is_marker(self) -> bool:
        return self.marker is not None


@dataclass(frozen=True)
class ResolvedMarker:
    marker: Marker
    reference: FileReference | None

    @property
    def missing(self) -> bool:
        return self.reference is None

    @property
    def display_name(self) -> str:
        if self.reference is not None:
            return self.reference.filename
        return self.marker.label or f"{self.marker.tag.value.lower()} {self.marker.ref_id}"


def _coerce_tag(tag: MarkerTag | str) -> MarkerTag:
    return tag if isinstance(tag, MarkerTag) else MarkerTag(tag.upper())


def _marker_from_match(match: re.Match[str]) -> Marker:
    return Marker(
        tag=MarkerTag(match.group(1).upper()),
        ref_id=int(match.group(2)),
        label=match.group(3),
        start=match.start(),
        end=match.end(),
        literal=match.group(0),
    )


def create_marker(tag: MarkerTag | str, ref_id: int, label: str) -> str:
    """Build a marker, stripping brackets from ``label``."""
    if ref_id < 0:
        raise ValueError(f"marker id must be non-negative, got {ref_id}")
    sanitized = label.replace("[", "").replace("]", "")
    return f"[{_coerce_tag(tag).value}:{ref_id}:{sanitized}]"


def parse_markers(content: str, tag: MarkerTag | str | None = None) -> list[Marker]:
    wanted = _coerce_tag(tag) if tag is not None else None
    markers = [_marker_from_match(match) for match in _MARKER_RE.finditer(content)]
    if wanted is None:
        return markers
    return [marker for marker in markers if marker.tag is wanted]


def insert_marker(content: str, offset: int, marker: str, own_line: bool = False) -> str:
    position = max(0, min(offset, len(content)))
    if own_line:
        marker = f"\n{marker}\n"
    return content[:position] + marker + content[position:]


def remove_markers(content: str, ref_id: int, tag: MarkerTag | str | None = None) -> str:
    """Delete every marker referencing exactly ``ref_id``."""
    wanted = _coerce_tag(tag) if tag is not None else None

    def _replace(match: re.Match[str]) -> str:
        marker = _marker_from_match(match)
        if marker.ref_id != ref_id or (wanted is not None and marker.tag is not wanted):
            return match.group(0)
        return ""

    return _MARKER_RE.sub(_replace, content)


def remap_marker_ids(content: str, mapping: Mapping[int, int], tag: MarkerTag | str | None = None) -> str:
    """Rewrite marker ids through ``mapping``; unmapped markers are kept as-is."""
    wanted = _coerce_tag(tag) if tag is not None else None

    def _replace(match: re.Match[str]) -> str:
        marker = _marker_from_match(match)
        if marker.ref_id not in mapping or (wanted is not None and marker.tag is not wanted):
            return match.group(0)
        return f"[{match.group(1)}:{mapping[marker.ref_id]}:{marker.label}]"

    return _MARKER_RE.sub(_replace, content)


def tokenize(content: str) -> list[Segment]:
    """Split content into text and marker segments covering it without gaps."""
    segments: list[Segment] = []
    last_index = 0
    for match in _MARKER_RE.finditer(content):
        if match.start() > last_index:
            segments.append(Segment(text=content[last_index : match.start()]))
        segments.append(Segment(text=match.group(0), marker=_marker_from_match(match)))
        last_index = match.end()
    if last_index < len(content):
        segments.append(Segment(text=content[last_index:]))
    return segments


def resolve_marker(marker: Marker, files: Mapping[int, FileReference]) -> ResolvedMarker:
    reference = files.get(marker.ref_id)
    if reference is not None and reference.image != (marker.tag is MarkerTag.IMAGE):
        reference = None
    return ResolvedMarker(marker=marker, reference=reference)
