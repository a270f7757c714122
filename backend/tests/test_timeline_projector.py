from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from tapechart.errors import ValidationError
from tapechart.schemas_room_blocks import BlockRoom, RoomRef, Viewport
from tapechart.services.timeline_projector import TimelineProjector, find_block_room, stacking_order

JUNE = Viewport(start=date(2024, 6, 1), end=date(2024, 6, 30))


def _blocks(make_block):
    by_id = make_block(
        "blk_wedding",
        rooms=[BlockRoom(room_id="room_101"), BlockRoom(room_id="room_102", room_number="102")],
    )
    by_number = make_block(
        "blk_summit",
        start_date=date(2024, 6, 25),
        end_date=date(2024, 7, 5),
        rooms=[BlockRoom(room_id="legacy_9", room_number="101")],
    )
    elsewhere = make_block(
        "blk_july",
        start_date=date(2024, 7, 10),
        end_date=date(2024, 7, 12),
        rooms=[BlockRoom(room_id="room_101", room_number="101")],
    )
    return [by_id, by_number, elsewhere]


def test_projects_blocks_matched_by_id_or_number(make_block):
    segments = TimelineProjector().project(RoomRef(id="room_101", number="101"), JUNE, _blocks(make_block))

    assert [s.block_id for s in segments] == ["blk_wedding", "blk_summit"]

    wedding, summit = segments
    assert wedding.room_id == "room_101"
    assert wedding.offset_fraction == pytest.approx(9 / 29)
    assert wedding.width_fraction == pytest.approx(5 / 29)
    assert wedding.is_partial is False

    assert summit.room_id == "legacy_9"
    assert summit.effective_end == date(2024, 6, 30)
    assert summit.is_partial is True
    assert summit.offset_fraction + summit.width_fraction <= 1


def test_row_without_blocks_gets_no_segments(make_block):
    segments = TimelineProjector().project(RoomRef(id="room_555", number="555"), JUNE, _blocks(make_block))

    assert segments == []


def test_find_block_room_dual_key(make_block):
    block = make_block(rooms=[BlockRoom(room_id="room_101", room_number="101")])

    assert find_block_room(block, RoomRef(id="room_101")) is not None
    assert find_block_room(block, RoomRef(number="101")) is not None
    assert find_block_room(block, RoomRef(id="room_102", number="102")) is None
    assert find_block_room(block, RoomRef()) is None


def test_empty_viewport_is_rejected(make_block):
    viewport = Viewport(start=date(2024, 6, 10), end=date(2024, 6, 10))

    with pytest.raises(ValidationError):
        TimelineProjector().project(RoomRef(id="room_101"), viewport, [])


def test_block_with_empty_range_is_skipped(make_block):
    broken = make_block(
        "blk_broken",
        start_date=date(2024, 6, 12),
        end_date=date(2024, 6, 12),
        rooms=[BlockRoom(room_id="room_101")],
    )

    assert TimelineProjector().project(RoomRef(id="room_101"), JUNE, [broken]) == []


def test_segments_follow_input_order(make_block):
    blocks = list(reversed(_blocks(make_block)))

    segments = TimelineProjector().project(RoomRef(id="room_101", number="101"), JUNE, blocks)

    assert [s.block_id for s in segments] == ["blk_summit", "blk_wedding"]


def test_stacking_order_is_creation_time_then_id(make_block):
    older = make_block("blk_b", created_at=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))
    newer = make_block("blk_a", created_at=datetime(2024, 5, 2, 9, 0))
    tied = make_block("blk_0", created_at=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))
    undated = make_block("blk_z")

    ordered = stacking_order([undated, newer, older, tied])

    assert [b.id for b in ordered] == ["blk_0", "blk_b", "blk_a", "blk_z"]
