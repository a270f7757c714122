from __future__ import annotations

from typing import Dict, Iterable, Set, Tuple

from tapechart.schemas_room_blocks import BlockRoom, BlockStatus, RoomBlock, RoomStatus


_ALLOWED_TRANSITIONS: Dict[RoomStatus, Set[RoomStatus]] = {
    RoomStatus.BLOCKED: {RoomStatus.RESERVED, RoomStatus.OCCUPIED, RoomStatus.RELEASED},
    RoomStatus.RESERVED: {RoomStatus.OCCUPIED, RoomStatus.RELEASED},
    RoomStatus.OCCUPIED: {RoomStatus.RELEASED},
    RoomStatus.RELEASED: set(),
}

BOOKED_STATUSES = frozenset({RoomStatus.RESERVED, RoomStatus.OCCUPIED})
TERMINAL_BLOCK_STATUSES = frozenset({BlockStatus.COMPLETED, BlockStatus.CANCELLED})


class RoomStateTransitionError(ValueError):
    """Raised when an invalid room state transition is requested."""

    def __init__(self, room_id: str, current: RoomStatus, target: RoomStatus) -> None:
        super().__init__(f"Invalid room state transition for {room_id}: {current.value} -> {target.value}")
        self.room_id = room_id
        self.current = current
        self.target = target


def validate_transition(room: BlockRoom, target: RoomStatus) -> None:
    """Validate that `room` may move to `target`.

    Raises RoomStateTransitionError if not allowed.
    """

    allowed = _ALLOWED_TRANSITIONS.get(room.status, set())
    if target not in allowed:
        raise RoomStateTransitionError(room.room_id, room.status, target)


def transition(room: BlockRoom, target: RoomStatus, **changes) -> BlockRoom:
    """Return a copy of `room` in `target` status. The input is never mutated."""

    validate_transition(room, target)
    return room.model_copy(update={"status": target, **changes})


def count_rooms(rooms: Iterable[BlockRoom]) -> Tuple[int, int, int]:
    """(booked, released, blocked) counts."""

    booked = released = blocked = 0
    for room in rooms:
        if room.status in BOOKED_STATUSES:
            booked += 1
        elif room.status == RoomStatus.RELEASED:
            released += 1
        else:
            blocked += 1
    return booked, released, blocked


def derive_block_status(block: RoomBlock) -> BlockStatus:
    """Block status as a function of its room states.

    - cancelled / completed are terminal and never re-derived
    - every room released one by one -> completed (cancelled is reserved for
      an explicit whole-block cancellation)
    - some but not all rooms released -> partially_released
    - otherwise active; bookings alone never change the status
    """

    if block.status in TERMINAL_BLOCK_STATUSES:
        return block.status

    total = len(block.rooms)
    _, released, _ = count_rooms(block.rooms)
    if total > 0 and released == total:
        return BlockStatus.COMPLETED
    if 0 < released < total:
        return BlockStatus.PARTIALLY_RELEASED
    return BlockStatus.ACTIVE


def reconcile(block: RoomBlock) -> RoomBlock:
    """Recompute aggregate counters and status from the room list.

    Counters coming from a caller or the remote service are never trusted.
    """

    booked, released, _ = count_rooms(block.rooms)
    counted = block.model_copy(
        update={
            "total_rooms": len(block.rooms),
            "rooms_booked": booked,
            "rooms_released": released,
        }
    )
    return counted.model_copy(update={"status": derive_block_status(counted)})
