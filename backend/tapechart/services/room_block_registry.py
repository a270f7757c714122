from __future__ import annotations

import math
from typing import Dict, List, Optional

from tapechart.schemas_room_blocks import Pagination, RoomBlock, RoomBlockFilters, RoomBlockPage
from tapechart.utils.date_overlap import ranges_intersect


class RoomBlockRegistry:
    """In-memory set of loaded room blocks, keyed by block id.

    Readers (projector, reporter) always see the latest upserted entity.
    Insertion order is kept and used as the tie-breaker when sorting, so a
    re-upsert of an existing id keeps its original position.
    """

    def __init__(self) -> None:
        self._blocks: Dict[str, RoomBlock] = {}

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def get(self, block_id: str) -> Optional[RoomBlock]:
        return self._blocks.get(block_id)

    def all(self) -> List[RoomBlock]:
        return list(self._blocks.values())

    def upsert(self, block: RoomBlock) -> RoomBlock:
        """Insert or wholly replace the block with the same id. Fields are never merged."""
        self._blocks[block.id] = block
        return block

    def remove(self, block_id: str) -> Optional[RoomBlock]:
        """Drop a block. Only called once the remote service confirmed the deletion."""
        return self._blocks.pop(block_id, None)

    def filter(self, filters: Optional[RoomBlockFilters] = None) -> List[RoomBlock]:
        """Blocks matching search/status/event type/date window, sorted by start date.

        Ascending by default; ties keep insertion order in both directions.
        """

        filters = filters or RoomBlockFilters()
        needle = (filters.search or "").strip().lower()

        matched: List[RoomBlock] = []
        for block in self._blocks.values():
            if needle and not _matches_search(block, needle):
                continue
            if filters.status is not None and block.status != filters.status:
                continue
            if filters.event_type is not None and block.event_type != filters.event_type:
                continue
            if not _in_window(block, filters):
                continue
            matched.append(block)

        return sorted(matched, key=lambda b: b.start_date, reverse=filters.sort_order == "desc")

    def page(self, filters: Optional[RoomBlockFilters] = None) -> RoomBlockPage:
        filters = filters or RoomBlockFilters()
        matched = self.filter(filters)
        total = len(matched)
        pages = max(1, math.ceil(total / filters.limit))
        offset = (filters.page - 1) * filters.limit
        return RoomBlockPage(
            data=matched[offset : offset + filters.limit],
            pagination=Pagination(current=filters.page, pages=pages, total=total, limit=filters.limit),
        )


def _matches_search(block: RoomBlock, needle: str) -> bool:
    haystack = (block.block_name, block.group_name, block.contact_person.name or "")
    return any(needle in (value or "").lower() for value in haystack)


def _in_window(block: RoomBlock, filters: RoomBlockFilters) -> bool:
    if filters.start_date and filters.end_date:
        return ranges_intersect(block.start_date, block.end_date, filters.start_date, filters.end_date)
    if filters.start_date:
        return block.end_date > filters.start_date
    if filters.end_date:
        return block.start_date < filters.end_date
    return True
