from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from tapechart.schemas_room_blocks import BlockRoom, RoomBlock, RoomRef, TimelineOverlaySegment, Viewport
from tapechart.utils.date_overlap import compute_overlap, require_range

logger = logging.getLogger("timeline_projector")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def find_block_room(block: RoomBlock, room: RoomRef) -> Optional[BlockRoom]:
    """Dual-key lookup: a row matches on room id OR room number.

    Upstream sources fill in either field, so both are checked.
    """

    for entry in block.rooms:
        if room.id and entry.room_id == room.id:
            return entry
        if room.number and entry.room_number == room.number:
            return entry
    return None


def _stacking_key(block: RoomBlock) -> Tuple[bool, datetime, str]:
    created = block.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (created is None, created or _EPOCH, block.id)


def stacking_order(blocks: Iterable[RoomBlock]) -> List[RoomBlock]:
    """Oldest block first; blocks without a creation time go last, ties by id."""
    return sorted(blocks, key=_stacking_key)


class TimelineProjector:
    """Turns room blocks into overlay segments for one tape chart row."""

    def project(
        self,
        room: RoomRef,
        viewport: Viewport,
        blocks: Iterable[RoomBlock],
    ) -> List[TimelineOverlaySegment]:
        """One segment per block that holds `room` and overlaps the viewport.

        Segments come back in the order `blocks` is given. Registry order is
        first-upsert order, which after a refresh is the remote listing order,
        so pass the blocks through `stacking_order` for a stable row layout.
        """

        require_range(viewport.start, viewport.end, "viewport")

        segments: List[TimelineOverlaySegment] = []
        for block in blocks:
            entry = find_block_room(block, room)
            if entry is None:
                continue
            if block.start_date >= block.end_date:
                logger.warning("Skipping block %s with empty date range", block.id)
                continue
            overlap = compute_overlap(block.start_date, block.end_date, viewport.start, viewport.end)
            if overlap is None:
                continue
            segments.append(
                TimelineOverlaySegment(
                    block_id=block.id,
                    room_id=entry.room_id,
                    offset_fraction=overlap.offset_fraction,
                    width_fraction=overlap.width_fraction,
                    is_partial=overlap.is_partial,
                    effective_start=overlap.effective_start,
                    effective_end=overlap.effective_end,
                )
            )
        return segments
