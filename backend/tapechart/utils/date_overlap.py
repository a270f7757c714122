"""Block-vs-viewport overlap math for the tape chart.

Pure functions, day granularity only. Fractions are relative to the viewport
width so the renderer can place a segment without knowing pixel sizes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from tapechart.errors import ValidationError
from tapechart.utils.dates import DateLike, days_between, to_date


@dataclass(frozen=True)
class Overlap:
    effective_start: date
    effective_end: date
    offset_fraction: float
    width_fraction: float
    is_partial: bool


def require_range(start: date, end: date, label: str) -> None:
    if start >= end:
        raise ValidationError(
            f"{label} start must be before its end",
            {"range": label, "start": start.isoformat(), "end": end.isoformat()},
        )


def compute_overlap(
    block_start: DateLike,
    block_end: DateLike,
    view_start: DateLike,
    view_end: DateLike,
) -> Optional[Overlap]:
    """Clip a block's date range to the visible window.

    Returns None when the ranges do not intersect; the caller draws nothing.
    Raises ValidationError for an empty/inverted block or viewport range.
    """

    b_start, b_end = to_date(block_start), to_date(block_end)
    v_start, v_end = to_date(view_start), to_date(view_end)
    require_range(b_start, b_end, "block")
    require_range(v_start, v_end, "viewport")

    effective_start = max(b_start, v_start)
    effective_end = min(b_end, v_end)
    if effective_start >= effective_end:
        return None

    total_days = days_between(v_start, v_end)
    start_day = days_between(v_start, effective_start)
    duration = days_between(effective_start, effective_end)

    offset = start_day / total_days
    width = duration / total_days
    # Float rounding must not push the segment past the right edge.
    offset = min(max(offset, 0.0), 1.0)
    width = min(max(width, 0.0), 1.0 - offset)

    return Overlap(
        effective_start=effective_start,
        effective_end=effective_end,
        offset_fraction=offset,
        width_fraction=width,
        is_partial=b_start < v_start or b_end > v_end,
    )


def ranges_intersect(start_a: DateLike, end_a: DateLike, start_b: DateLike, end_b: DateLike) -> bool:
    """Half-open [start, end) intersection test used by list filters."""

    return max(to_date(start_a), to_date(start_b)) < min(to_date(end_a), to_date(end_b))
