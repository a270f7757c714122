from __future__ import annotations

from datetime import date

import pytest

from tapechart.schemas_room_blocks import BlockRoom, BlockStatus, RoomStatus
from tapechart.services.room_block_registry import RoomBlockRegistry
from tapechart.services.room_block_stats import (
    UtilizationReporter,
    build_remote_stats,
    compute_utilization,
    days_until_event,
    days_until_label,
    estimate_revenue,
)

TODAY = date(2024, 6, 12)


def test_utilization_of_empty_block_is_zero(make_block):
    block = make_block(room_count=0)

    assert block.total_rooms == 0
    assert compute_utilization(block) == 0


@pytest.mark.parametrize(
    "booked,total,expected",
    [(1, 3, 33), (2, 3, 67), (1, 8, 13), (10, 10, 100), (0, 5, 0)],
)
def test_utilization_rounds_half_up(make_block, booked, total, expected):
    block = make_block(room_count=total, rooms_booked=booked)

    assert compute_utilization(block) == expected


def test_revenue_uses_explicit_room_rates_first(make_block):
    block = make_block(
        start_date=date(2024, 6, 10),
        end_date=date(2024, 6, 12),
        block_rate=9999,
        rooms=[
            BlockRoom(room_id="r1", rate=4000),
            BlockRoom(room_id="r2", rate=5000),
            BlockRoom(room_id="r3"),
        ],
    )

    assert estimate_revenue(block) == 18000.0


def test_revenue_falls_back_to_block_rate(make_block):
    block = make_block(room_count=4, block_rate=3000, rooms_booked=2)

    assert estimate_revenue(block) == 30000.0


def test_revenue_falls_back_to_default_rate(make_block):
    block = make_block(room_count=3, rooms_booked=2)

    assert estimate_revenue(block) == 35000.0
    assert estimate_revenue(block, default_rate=1000) == 10000.0


def test_single_day_block_counts_one_night(make_block):
    block = make_block(room_count=1, rooms_booked=1, start_date=date(2024, 6, 10), end_date=date(2024, 6, 10))

    assert estimate_revenue(block) == 3500.0


def test_days_until_event_is_signed(make_block):
    started = make_block(start_date=date(2024, 6, 10))
    upcoming = make_block(start_date=date(2024, 6, 13), end_date=date(2024, 6, 15))

    assert days_until_event(started, TODAY) == -2
    assert days_until_event(upcoming, TODAY) == 1


@pytest.mark.parametrize(
    "days,label",
    [(-3, "overdue"), (0, "Today"), (1, "Tomorrow"), (5, "5 days")],
)
def test_days_until_label(days, label):
    assert days_until_label(days) == label


def test_block_metrics(make_block):
    reporter = UtilizationReporter(RoomBlockRegistry())
    block = make_block(room_count=4, rooms_booked=1, start_date=date(2024, 6, 14), end_date=date(2024, 6, 17))

    metrics = reporter.block_metrics(block, TODAY)

    assert metrics.utilization == 25
    assert metrics.nights == 3
    assert metrics.estimated_revenue == 3500 * 3
    assert metrics.days_until_event == 2
    assert metrics.days_until_label == "2 days"
    assert metrics.is_overdue is False


def test_portfolio_and_tape_chart_summary(make_block):
    registry = RoomBlockRegistry()
    registry.upsert(
        make_block(
            "blk_soon",
            room_count=4,
            start_date=date(2024, 6, 15),
            end_date=date(2024, 6, 18),
            auto_release_date=date(2024, 6, 14),
        )
    )
    registry.upsert(
        make_block(
            "blk_past",
            room_count=2,
            start_date=date(2024, 6, 1),
            end_date=date(2024, 6, 20),
            cut_off_date=date(2024, 5, 25),
            rooms=[
                BlockRoom(room_id="r1", status=RoomStatus.RESERVED),
                BlockRoom(room_id="r2", status=RoomStatus.RELEASED),
            ],
            rooms_booked=1,
            rooms_released=1,
            status=BlockStatus.PARTIALLY_RELEASED,
        )
    )
    registry.upsert(
        make_block(
            "blk_done",
            room_count=3,
            start_date=date(2024, 8, 1),
            end_date=date(2024, 8, 3),
            auto_release_date=date(2024, 6, 13),
            status=BlockStatus.CANCELLED,
        )
    )
    reporter = UtilizationReporter(registry, window_days=7)

    summary = reporter.tape_chart_summary(today=TODAY)
    portfolio = reporter.portfolio(today=TODAY)

    assert summary.active_blocks == 2
    assert summary.blocked_rooms == 4
    assert summary.upcoming_releases == 1

    assert portfolio.total_blocks == 3
    assert portfolio.status_counts == {"active": 1, "partially_released": 1, "cancelled": 1}
    assert portfolio.total_rooms == 9
    assert portfolio.rooms_booked == 1
    assert portfolio.this_week == 1
    assert portfolio.overdue == 1


def test_remote_stats_rows(make_block):
    blocks = [
        make_block("a", room_count=4, rooms_booked=2),
        make_block("b", room_count=2, rooms_booked=1),
        make_block("c", room_count=3, status=BlockStatus.CANCELLED),
    ]

    stats = build_remote_stats(blocks)
    rows = {row.id: row for row in stats.status_stats}

    assert rows["active"].count == 2
    assert rows["active"].total_rooms == 6
    assert rows["active"].total_booked_rooms == 3
    assert rows["cancelled"].count == 1
    assert stats.event_type_stats[0].id == "corporate_event"
    assert stats.event_type_stats[0].count == 3
    dumped = stats.model_dump(by_alias=True)
    assert dumped["statusStats"][0]["_id"] == "active"
