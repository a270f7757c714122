from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from tapechart.config import DEFAULT_CURRENCY, DEFAULT_ROOM_RATE
from tapechart.domain.room_state_machine import (
    TERMINAL_BLOCK_STATUSES,
    RoomStateTransitionError,
    count_rooms,
    reconcile,
    transition,
    validate_transition,
)
from tapechart.errors import InvalidStateError, NotFoundError, ValidationError
from tapechart.schemas_room_blocks import (
    AvailableRoom,
    BlockRoom,
    BlockStatus,
    Note,
    NoteAuthor,
    RoomBlock,
    RoomBlockCreate,
    RoomBlockFilters,
    RoomBlockPage,
    RoomBlockStats,
    RoomBlockUpdate,
    RoomStatus,
)
from tapechart.services.room_block_client import RoomBlockClient
from tapechart.services.room_block_registry import RoomBlockRegistry
from tapechart.services.room_block_stats import compute_utilization, estimate_revenue
from tapechart.utils.dates import now_utc, today_utc
from tapechart.utils.ids import generate_block_code

logger = logging.getLogger("room_block_lifecycle")

SYSTEM_AUTHOR = NoteAuthor(id="system", name="System")

_EMAIL_RE = re.compile(r"\S+@\S+\.\S+")

# Patch keys a caller may explicitly set to null.
_NULLABLE_FIELDS = frozenset(
    {"corporateId", "blockRate", "cutOffDate", "autoReleaseDate", "specialInstructions", "cateringRequirements"}
)


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


class BlockLifecycleManager:
    """Create/book/release/annotate room blocks against the remote service.

    Responsibilities:
    - Validate input and room/block state locally before any remote call
    - Call the remote service and treat its response as authoritative
    - Recompute counters and status from the returned rooms, then upsert

    The registry is only written after the remote call succeeded, so a failed
    operation (local or remote) leaves it exactly as it was.
    """

    def __init__(
        self,
        client: RoomBlockClient,
        registry: Optional[RoomBlockRegistry] = None,
        *,
        default_rate: float = DEFAULT_ROOM_RATE,
        default_currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self.client = client
        self.registry = registry if registry is not None else RoomBlockRegistry()
        self.default_rate = default_rate
        self.default_currency = default_currency

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_block(self, block_id: str) -> RoomBlock:
        block = self.registry.get(block_id)
        if block is None:
            logger.warning("Room block %s is not loaded", block_id)
            raise NotFoundError(f"Room block {block_id} not found", {"block_id": block_id})
        return block

    def _require_room(self, block: RoomBlock, room_id: str) -> BlockRoom:
        room = block.find_room(room_id)
        if room is None:
            logger.warning("Room %s is not part of block %s", room_id, block.id)
            raise NotFoundError(
                f"Room {room_id} is not part of block {block.id}",
                {"block_id": block.id, "room_id": room_id},
            )
        return room

    def _assert_open(self, block: RoomBlock, action: str) -> None:
        if block.status in TERMINAL_BLOCK_STATUSES:
            logger.warning("Cannot %s in %s block %s", action, block.status.value, block.id)
            raise InvalidStateError(
                f"Cannot {action} in a {block.status.value} block",
                {"block_id": block.id, "status": block.status.value},
            )

    def _assert_transition(self, block: RoomBlock, room: BlockRoom, target: RoomStatus) -> None:
        try:
            validate_transition(room, target)
        except RoomStateTransitionError as exc:
            logger.warning("Rejected room transition in block %s: %s", block.id, exc)
            raise InvalidStateError(
                str(exc),
                {
                    "block_id": block.id,
                    "room_id": room.room_id,
                    "status": exc.current.value,
                    "target": exc.target.value,
                },
            ) from exc

    @staticmethod
    def validate_create(spec: RoomBlockCreate) -> None:
        """Raise ValidationError with a per-field map if `spec` cannot be submitted."""

        fields: Dict[str, str] = {}
        if not spec.block_name.strip():
            fields["blockName"] = "Block name is required"
        if not spec.group_name.strip():
            fields["groupName"] = "Group name is required"
        if spec.start_date is None:
            fields["startDate"] = "Start date is required"
        if spec.end_date is None:
            fields["endDate"] = "End date is required"
        if spec.start_date and spec.end_date and spec.start_date >= spec.end_date:
            fields["endDate"] = "End date must be after start date"
        if not spec.rooms:
            fields["rooms"] = "At least one room must be selected"
        else:
            seen: set[str] = set()
            for room in spec.rooms:
                if not room.room_id:
                    fields["rooms"] = "Every room needs a room id"
                    break
                if room.room_id in seen:
                    fields["rooms"] = f"Room {room.room_id} is selected more than once"
                    break
                seen.add(room.room_id)
        if not (spec.billing_instructions or "").strip():
            fields["billingInstructions"] = "Billing instructions are required"
        email = spec.contact_person.email
        if email and not _EMAIL_RE.search(email):
            fields["contactEmail"] = "Invalid email format"

        if fields:
            raise ValidationError("Room block is invalid", {"fields": fields})

    # ------------------------------------------------------------------
    # Registry sync
    # ------------------------------------------------------------------

    def _commit(self, block: RoomBlock) -> RoomBlock:
        stored = reconcile(block)
        self.registry.upsert(stored)
        return stored

    async def refresh(self, filters: Optional[RoomBlockFilters] = None) -> RoomBlockPage:
        """Re-populate the registry from the remote listing. Safe to call on every poll."""

        page = await self.client.list_room_blocks(filters or RoomBlockFilters())
        data = [self._commit(block) for block in page.data]
        logger.info("Refreshed %d room blocks", len(data))
        return page.model_copy(update={"data": data})

    async def load_block(self, block_id: str) -> RoomBlock:
        return self._commit(await self.client.get_room_block(block_id))

    def get_block(self, block_id: str) -> RoomBlock:
        return self._require_block(block_id)

    def list_blocks(self, filters: Optional[RoomBlockFilters] = None) -> RoomBlockPage:
        return self.registry.page(filters)

    async def get_stats(self) -> RoomBlockStats:
        return await self.client.get_room_block_stats()

    async def available_rooms(self, start_date: date, end_date: date) -> List[AvailableRoom]:
        if start_date >= end_date:
            raise ValidationError("End date must be after start date", {"fields": {"endDate": "End date must be after start date"}})
        return await self.client.get_available_rooms(start_date, end_date)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def create_block(self, spec: RoomBlockCreate) -> RoomBlock:
        self.validate_create(spec)

        rooms = [
            BlockRoom(
                room_id=sel.room_id,
                room_number=sel.room_number,
                room_type=sel.room_type,
                rate=sel.rate,
                status=RoomStatus.BLOCKED,
            )
            for sel in spec.rooms
        ]
        payload = spec.model_dump(by_alias=True, mode="json", exclude={"rooms"})
        payload.update(
            {
                "blockId": generate_block_code(),
                "currency": spec.currency or self.default_currency,
                "rooms": [_dump(room) for room in rooms],
                "totalRooms": len(rooms),
                "roomsBooked": 0,
                "roomsReleased": 0,
                "status": BlockStatus.ACTIVE.value,
                "notes": [],
            }
        )

        created = self._commit(await self.client.create_room_block(payload))
        logger.info("Created room block %s (%s) with %d rooms", created.id, created.block_name, created.total_rooms)
        return created

    async def update_block(self, block_id: str, patch: RoomBlockUpdate) -> RoomBlock:
        block = self._require_block(block_id)
        self._assert_open(block, "update")

        changes = patch.model_dump(by_alias=True, mode="json", exclude_unset=True)
        # Null dates mean "keep the current one".
        for key in ("startDate", "endDate"):
            if key in changes and changes[key] is None:
                del changes[key]
        if not changes:
            raise ValidationError("Nothing to update", {"block_id": block_id})
        fields: Dict[str, str] = {
            key: "Field cannot be cleared" for key, value in changes.items() if value is None and key not in _NULLABLE_FIELDS
        }
        for key, label in (("blockName", "Block name"), ("groupName", "Group name"), ("billingInstructions", "Billing instructions")):
            value = changes.get(key)
            if isinstance(value, str) and not value.strip():
                fields[key] = f"{label} is required"
        if fields:
            raise ValidationError("Room block update is invalid", {"fields": fields})
        start = patch.start_date or block.start_date
        end = patch.end_date or block.end_date
        if start >= end:
            raise ValidationError(
                "End date must be after start date",
                {"fields": {"endDate": "End date must be after start date"}},
            )
        if patch.contact_person and patch.contact_person.email and not _EMAIL_RE.search(patch.contact_person.email):
            raise ValidationError("Invalid email format", {"fields": {"contactEmail": "Invalid email format"}})

        updated = self._commit(await self.client.update_room_block(block_id, changes))
        logger.info("Updated room block %s fields=%s", block_id, sorted(changes))
        return updated

    async def book_room(
        self,
        block_id: str,
        room_id: str,
        *,
        guest_name: str,
        special_requests: Optional[str] = None,
    ) -> RoomBlock:
        """blocked -> reserved. Bookings never change the block status by themselves."""

        if not (guest_name or "").strip():
            raise ValidationError("Guest name is required", {"fields": {"guestName": "Guest name is required"}})
        block = self._require_block(block_id)
        self._assert_open(block, "book a room")
        room = self._require_room(block, room_id)
        if room.status != RoomStatus.BLOCKED:
            logger.warning("Room %s in block %s is already %s", room.room_id, block_id, room.status.value)
            raise InvalidStateError(
                f"Room {room.room_id} is {room.status.value} and cannot be booked",
                {"block_id": block_id, "room_id": room.room_id, "status": room.status.value},
            )
        self._assert_transition(block, room, RoomStatus.RESERVED)

        updated = self._commit(
            await self.client.book_room(
                block_id,
                room.room_id,
                guest_name=guest_name.strip(),
                special_requests=special_requests,
            )
        )
        logger.info("Booked room %s in block %s (booked=%d)", room.room_id, block_id, updated.rooms_booked)
        return updated

    async def release_room(self, block_id: str, room_id: str, reason: Optional[str] = None) -> RoomBlock:
        """Free a room back to general inventory. All rooms released one by one completes the block."""

        block = self._require_block(block_id)
        room = self._require_room(block, room_id)
        self._assert_transition(block, room, RoomStatus.RELEASED)
        self._assert_open(block, "release a room")

        updated = self._commit(await self.client.release_room(block_id, room.room_id, reason))
        logger.info(
            "Released room %s in block %s (released=%d, status=%s)",
            room.room_id,
            block_id,
            updated.rooms_released,
            updated.status.value,
        )
        return updated

    async def check_in_room(self, block_id: str, room_id: str) -> RoomBlock:
        """reserved -> occupied. Counters are unchanged since both count as booked."""

        block = self._require_block(block_id)
        self._assert_open(block, "check in a room")
        room = self._require_room(block, room_id)
        if room.status != RoomStatus.RESERVED:
            raise InvalidStateError(
                f"Room {room.room_id} is {room.status.value}; only reserved rooms can be checked in",
                {"block_id": block_id, "room_id": room.room_id, "status": room.status.value},
            )
        occupied = transition(room, RoomStatus.OCCUPIED)
        rooms = [occupied if r is room else r for r in block.rooms]

        updated = self._commit(
            await self.client.update_room_block(block_id, {"rooms": [_dump(r) for r in rooms]})
        )
        logger.info("Checked in room %s in block %s", room.room_id, block_id)
        return updated

    async def add_note(
        self,
        block_id: str,
        content: str,
        author: NoteAuthor,
        is_internal: bool = True,
    ) -> RoomBlock:
        """Append a note and refetch the block. Notes are never edited or removed."""

        if not (content or "").strip():
            raise ValidationError("Note content is required", {"fields": {"content": "Note content is required"}})
        if author is None or not author.id:
            raise ValidationError("Note author is required", {"fields": {"author": "Note author is required"}})
        self._require_block(block_id)

        await self.client.add_note(block_id, content.strip(), is_internal=is_internal, author=author)
        updated = self._commit(await self.client.get_room_block(block_id))
        logger.info("Added %s note to block %s by %s", "internal" if is_internal else "external", block_id, author.id)
        return updated

    async def cancel_block(
        self,
        block_id: str,
        reason: str = "",
        author: Optional[NoteAuthor] = None,
    ) -> RoomBlock:
        """Release every room, mark the block cancelled and record the reason as a note."""

        block = self._require_block(block_id)
        self._assert_open(block, "cancel")

        rooms = [
            r if r.status == RoomStatus.RELEASED else r.model_copy(update={"status": RoomStatus.RELEASED})
            for r in block.rooms
        ]
        content = f"Block cancelled: {reason.strip()}" if (reason or "").strip() else "Block cancelled"
        note = Note(content=content, created_by=author or SYSTEM_AUTHOR, created_at=now_utc(), is_internal=True)
        booked, released, _ = count_rooms(rooms)
        patch = {
            "status": BlockStatus.CANCELLED.value,
            "rooms": [_dump(r) for r in rooms],
            "roomsBooked": booked,
            "roomsReleased": released,
            "notes": [_dump(n) for n in [*block.notes, note]],
        }

        updated = self._commit(await self.client.update_room_block(block_id, patch))
        logger.info("Cancelled room block %s", block_id)
        return updated

    async def complete_block(self, block_id: str, author: Optional[NoteAuthor] = None) -> RoomBlock:
        """Mark a block completed. Triggered externally (event over), never automatically."""

        block = self._require_block(block_id)
        self._assert_open(block, "complete")

        note = Note(content="Block completed", created_by=author or SYSTEM_AUTHOR, created_at=now_utc(), is_internal=True)
        patch = {
            "status": BlockStatus.COMPLETED.value,
            "notes": [_dump(n) for n in [*block.notes, note]],
        }
        updated = self._commit(await self.client.update_room_block(block_id, patch))
        logger.info("Completed room block %s", block_id)
        return updated

    async def complete_expired_blocks(self, today: Optional[date] = None) -> List[RoomBlock]:
        """Complete every open block whose end date has been reached.

        Meant to be driven by a caller-owned scheduler. Blocks are handled one at
        a time; an error stops the run and propagates, already completed blocks
        stay completed.
        """

        today = today or today_utc()
        due = [
            b.id
            for b in self.registry.all()
            if b.status not in TERMINAL_BLOCK_STATUSES and b.end_date <= today
        ]
        completed = [await self.complete_block(block_id) for block_id in due]
        if completed:
            logger.info("Completed %d expired room blocks", len(completed))
        return completed

    async def delete_block(self, block_id: str) -> None:
        """Release the whole block on the remote service, then drop it locally."""

        self._require_block(block_id)
        await self.client.release_room_block(block_id)
        self.registry.remove(block_id)
        logger.info("Deleted room block %s", block_id)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def compute_utilization(self, block: RoomBlock) -> int:
        return compute_utilization(block)

    def estimate_revenue(self, block: RoomBlock) -> float:
        return estimate_revenue(block, self.default_rate)
