"""Utilization, revenue and dashboard figures derived from room blocks.

Everything here is a pure read over RoomBlock entities; nothing is written
back to the registry.
"""

from __future__ import annotations

import math
from collections import Counter, OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional

from tapechart.config import DEFAULT_ROOM_RATE, UPCOMING_WINDOW_DAYS
from tapechart.domain.room_state_machine import TERMINAL_BLOCK_STATUSES, count_rooms
from tapechart.schemas_room_blocks import (
    BlockMetrics,
    EventTypeStat,
    PortfolioStats,
    RoomBlock,
    RoomBlockStats,
    StatusStat,
    TapeChartSummary,
)
from tapechart.utils.dates import days_between, today_utc


def compute_utilization(block: RoomBlock) -> int:
    """Booked share of the block in whole percent, rounded half up. Empty blocks give 0."""

    if block.total_rooms <= 0:
        return 0
    return int(math.floor(block.rooms_booked / block.total_rooms * 100 + 0.5))


def block_nights(block: RoomBlock) -> int:
    return max(1, days_between(block.start_date, block.end_date))


def estimate_revenue(block: RoomBlock, default_rate: float = DEFAULT_ROOM_RATE) -> float:
    """Estimated block revenue.

    1. any room carries its own rate -> sum of those rates * nights
    2. else block rate * rooms booked * nights
    3. else average room rate (default_rate where missing) * rooms booked * nights
    """

    nights = block_nights(block)
    explicit = [room.rate for room in block.rooms if room.rate is not None]
    if explicit:
        return round(sum(explicit) * nights, 2)
    if block.block_rate is not None:
        return round(block.block_rate * block.rooms_booked * nights, 2)
    if block.rooms:
        average = sum(room.rate if room.rate is not None else default_rate for room in block.rooms) / len(block.rooms)
    else:
        average = default_rate
    return round(average * block.rooms_booked * nights, 2)


def days_until_event(block: RoomBlock, today: Optional[date] = None) -> int:
    """Signed days from today to the block start. Negative means the event started already."""

    return days_between(today or today_utc(), block.start_date)


def days_until_label(days: int) -> str:
    if days < 0:
        return "overdue"
    if days == 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    return f"{days} days"


def release_date(block: RoomBlock) -> Optional[date]:
    return block.auto_release_date or block.cut_off_date


def build_remote_stats(blocks: Iterable[RoomBlock]) -> RoomBlockStats:
    """Stats rows in the shape the remote service returns them."""

    by_status: "OrderedDict[str, StatusStat]" = OrderedDict()
    by_event: Counter = Counter()
    for block in blocks:
        row = by_status.setdefault(block.status.value, StatusStat(_id=block.status.value))
        row.count += 1
        row.total_rooms += block.total_rooms
        row.total_booked_rooms += block.rooms_booked
        by_event[block.event_type.value] += 1

    return RoomBlockStats(
        status_stats=list(by_status.values()),
        event_type_stats=[EventTypeStat(_id=key, count=count) for key, count in by_event.items()],
    )


class UtilizationReporter:
    """Portfolio and per-block figures over the registry (or any subset of it)."""

    def __init__(
        self,
        registry,
        *,
        default_rate: float = DEFAULT_ROOM_RATE,
        window_days: int = UPCOMING_WINDOW_DAYS,
    ) -> None:
        self.registry = registry
        self.default_rate = default_rate
        self.window_days = window_days

    def _blocks(self, blocks: Optional[Iterable[RoomBlock]]) -> List[RoomBlock]:
        return list(blocks) if blocks is not None else self.registry.all()

    def block_metrics(self, block: RoomBlock, today: Optional[date] = None) -> BlockMetrics:
        days = days_until_event(block, today)
        return BlockMetrics(
            block_id=block.id,
            utilization=compute_utilization(block),
            estimated_revenue=estimate_revenue(block, self.default_rate),
            currency=block.currency,
            nights=block_nights(block),
            days_until_event=days,
            days_until_label=days_until_label(days),
            is_overdue=days < 0,
        )

    def status_counts(self, blocks: Optional[Iterable[RoomBlock]] = None) -> Dict[str, int]:
        return dict(Counter(b.status.value for b in self._blocks(blocks)))

    def event_type_counts(self, blocks: Optional[Iterable[RoomBlock]] = None) -> Dict[str, int]:
        return dict(Counter(b.event_type.value for b in self._blocks(blocks)))

    def tape_chart_summary(
        self,
        blocks: Optional[Iterable[RoomBlock]] = None,
        today: Optional[date] = None,
    ) -> TapeChartSummary:
        today = today or today_utc()
        summary = TapeChartSummary()
        for block in self._blocks(blocks):
            if block.status in TERMINAL_BLOCK_STATUSES:
                continue
            summary.active_blocks += 1
            _, _, blocked = count_rooms(block.rooms)
            summary.blocked_rooms += blocked
            when = release_date(block)
            if when is not None and 0 <= days_between(today, when) <= self.window_days:
                summary.upcoming_releases += 1
        return summary

    def portfolio(
        self,
        blocks: Optional[Iterable[RoomBlock]] = None,
        today: Optional[date] = None,
    ) -> PortfolioStats:
        items = self._blocks(blocks)
        today = today or today_utc()

        stats = PortfolioStats(
            total_blocks=len(items),
            status_counts=self.status_counts(items),
            event_type_counts=self.event_type_counts(items),
            summary=self.tape_chart_summary(items, today),
        )
        for block in items:
            stats.total_rooms += block.total_rooms
            stats.rooms_booked += block.rooms_booked
            stats.rooms_released += block.rooms_released
            days = days_until_event(block, today)
            if days < 0:
                stats.overdue += 1
            elif days <= self.window_days:
                stats.this_week += 1
        return stats
