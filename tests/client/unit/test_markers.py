import pytest

from tablesync.backend.models import FileReference
from tablesync.client.markers import (
    MarkerTag,
    create_marker,
    insert_marker,
    parse_markers,
    remap_marker_ids,
    remove_markers,
    resolve_marker,
    tokenize,
)


def test_create_then_parse_returns_same_id_and_label() -> None:
    marker = create_marker(MarkerTag.IMAGE, 42, "goblin map.png")

    parsed = parse_markers(f"before {marker} after")

    assert marker == "[IMAGE:42:goblin map.png]"
    assert len(parsed) == 1
    assert parsed[0].tag is MarkerTag.IMAGE
    assert parsed[0].ref_id == 42
    assert parsed[0].label == "goblin map.png"


def test_create_marker_strips_brackets_from_label() -> None:
    marker = create_marker("file", 7, "notes [draft].pdf")

    assert marker == "[FILE:7:notes draft.pdf]"
    assert parse_markers(marker)[0].label == "notes draft.pdf"


def test_create_marker_rejects_negative_ids() -> None:
    with pytest.raises(ValueError):
        create_marker(MarkerTag.FILE, -1, "x")


def test_parse_markers_is_case_insensitive_and_filters_by_tag() -> None:
    content = "[file:1:a.txt] and [IMAGE:2:b.png] and [Image:3:c.png]"

    assert [marker.ref_id for marker in parse_markers(content)] == [1, 2, 3]
    assert [marker.ref_id for marker in parse_markers(content, MarkerTag.IMAGE)] == [2, 3]


def test_malformed_markers_are_plain_text() -> None:
    content = "[FILE:abc:x] [IMAGE:5] [FILE:6:unterminated"

    assert parse_markers(content) == []
    assert [segment.is_marker for segment in tokenize(content)] == [False]


def test_remove_markers_removes_only_exact_id_and_is_idempotent() -> None:
    content = "a [FILE:1:one] b [FILE:12:twelve] c [IMAGE:1:pic]"

    once = remove_markers(content, 1, MarkerTag.FILE)
    twice = remove_markers(once, 1, MarkerTag.FILE)

    assert once == "a  b [FILE:12:twelve] c [IMAGE:1:pic]"
    assert twice == once
    assert remove_markers(content, 1) == "a  b [FILE:12:twelve] c "


def test_insert_marker_clamps_offset_and_can_use_own_line() -> None:
    marker = create_marker(MarkerTag.FILE, 3, "doc.pdf")

    assert insert_marker("abc", 99, marker) == "abc[FILE:3:doc.pdf]"
    assert insert_marker("abc", -5, marker) == "[FILE:3:doc.pdf]abc"
    assert insert_marker("ab", 1, marker, own_line=True) == "a\n[FILE:3:doc.pdf]\nb"


def test_remap_marker_ids_keeps_unmapped_markers() -> None:
    content = "[FILE:1:a] [IMAGE:2:b] [FILE:3:c]"

    assert remap_marker_ids(content, {1: 10, 2: 20}) == "[FILE:10:a] [IMAGE:20:b] [FILE:3:c]"


def test_tokenize_covers_content_without_gaps() -> None:
    content = "intro [IMAGE:4:map.png]\ntext [FILE:5:rules.pdf]"

    segments = tokenize(content)

    assert "".join(segment.text for segment in segments) == content
    assert [segment.is_marker for segment in segments] == [False, True, False, True]


def test_resolve_marker_degrades_when_reference_is_missing() -> None:
    reference = FileReference(id=4, document_id=1, filename="map.png", size=10, type_tag="image/png", image=True)
    present, absent = parse_markers("[IMAGE:4:label] [IMAGE:9:lost.png]")

    resolved = resolve_marker(present, {4: reference})
    missing = resolve_marker(absent, {4: reference})

    assert resolved.missing is False
    assert resolved.display_name == "map.png"
    assert missing.missing is True
    assert missing.display_name == "lost.png"


def test_resolve_marker_treats_kind_mismatch_as_missing() -> None:
    reference = FileReference(id=4, document_id=1, filename="rules.pdf", size=10, type_tag="application/pdf")
    marker = parse_markers("[IMAGE:4:rules.pdf]")[0]

    assert resolve_marker(marker, {4: reference}).missing is True
