from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tapechart.config import (
    DEFAULT_BILLING_INSTRUCTIONS,
    DEFAULT_CANCELLATION_POLICY,
    DEFAULT_CURRENCY,
    DEFAULT_DEPOSIT_PERCENTAGE,
    DEFAULT_PAGE_SIZE,
)
from tapechart.utils.dates import to_date


class _CamelModel(BaseModel):
    """Remote payloads and API responses use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _coerce_day(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (date, str)):
        return to_date(value)
    return value


class EventType(str, Enum):
    CONFERENCE = "conference"
    WEDDING = "wedding"
    CORPORATE_EVENT = "corporate_event"
    GROUP_BOOKING = "group_booking"
    CONVENTION = "convention"
    OTHER = "other"


class BlockStatus(str, Enum):
    ACTIVE = "active"
    PARTIALLY_RELEASED = "partially_released"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RoomStatus(str, Enum):
    BLOCKED = "blocked"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    RELEASED = "released"


class VipStatus(str, Enum):
    STANDARD = "standard"
    VIP = "vip"
    CORPORATE = "corporate"


# ---------------------------------------------------------------------------
# Entity models
# ---------------------------------------------------------------------------


class ContactPerson(_CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None


class PaymentTerms(_CamelModel):
    deposit_percentage: float = DEFAULT_DEPOSIT_PERCENTAGE
    cancellation_policy: str = DEFAULT_CANCELLATION_POLICY


class NoteAuthor(_CamelModel):
    id: str
    name: Optional[str] = None


class Note(_CamelModel):
    content: str
    created_by: NoteAuthor
    created_at: datetime
    is_internal: bool = True


class BlockRoom(_CamelModel):
    room_id: str
    room_number: str = ""
    room_type: str = ""
    status: RoomStatus = RoomStatus.BLOCKED
    guest_name: Optional[str] = None
    special_requests: Optional[str] = None
    rate: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def unwrap_room_ref(cls, data: Any) -> Any:
        # Some upstream sources embed the room document instead of its id.
        if not isinstance(data, dict):
            return data
        key = "roomId" if "roomId" in data else "room_id"
        ref = data.get(key)
        if isinstance(ref, dict):
            data = dict(data)
            data[key] = str(ref.get("_id") or ref.get("id") or "")
            if not data.get("roomNumber") and not data.get("room_number"):
                data["roomNumber"] = str(ref.get("roomNumber") or "")
            if not data.get("roomType") and not data.get("room_type"):
                data["roomType"] = str(ref.get("roomType") or "")
        return data

    @field_validator("status", mode="before")
    @classmethod
    def normalize_legacy_status(cls, value: Any) -> Any:
        if value == "booked":
            return RoomStatus.RESERVED
        return value


class RoomBlock(_CamelModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    block_id: Optional[str] = None
    block_name: str
    group_name: str
    corporate_id: Optional[str] = None
    event_type: EventType = EventType.CONFERENCE
    start_date: date
    end_date: date
    rooms: List[BlockRoom] = Field(default_factory=list)
    total_rooms: int = 0
    rooms_booked: int = 0
    rooms_released: int = 0
    block_rate: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    cut_off_date: Optional[date] = None
    auto_release_date: Optional[date] = None
    status: BlockStatus = BlockStatus.ACTIVE
    contact_person: ContactPerson = Field(default_factory=ContactPerson)
    vip_status: VipStatus = VipStatus.STANDARD
    billing_instructions: str = DEFAULT_BILLING_INSTRUCTIONS
    special_instructions: Optional[str] = None
    catering_requirements: Optional[str] = None
    amenities: List[str] = Field(default_factory=list)
    notes: List[Note] = Field(default_factory=list)
    payment_terms: PaymentTerms = Field(default_factory=PaymentTerms)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "cut_off_date", "auto_release_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return _coerce_day(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def available_rooms(self) -> int:
        return self.total_rooms - self.rooms_booked - self.rooms_released

    def find_room(self, room_ref: str) -> Optional[BlockRoom]:
        """Look a room up by id first, then by room number."""
        for room in self.rooms:
            if room.room_id == room_ref:
                return room
        for room in self.rooms:
            if room.room_number and room.room_number == room_ref:
                return room
        return None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class RoomSelection(_CamelModel):
    room_id: str
    room_number: str = ""
    room_type: str = ""
    rate: Optional[float] = None


class RoomBlockCreate(_CamelModel):
    block_name: str = ""
    group_name: str = ""
    event_type: EventType = EventType.CONFERENCE
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    rooms: List[RoomSelection] = Field(default_factory=list)
    corporate_id: Optional[str] = None
    block_rate: Optional[float] = None
    currency: Optional[str] = None
    cut_off_date: Optional[date] = None
    auto_release_date: Optional[date] = None
    contact_person: ContactPerson = Field(default_factory=ContactPerson)
    vip_status: VipStatus = VipStatus.STANDARD
    billing_instructions: Optional[str] = DEFAULT_BILLING_INSTRUCTIONS
    special_instructions: Optional[str] = None
    catering_requirements: Optional[str] = None
    amenities: List[str] = Field(default_factory=list)
    payment_terms: PaymentTerms = Field(default_factory=PaymentTerms)
    created_by: Optional[str] = None

    @field_validator("start_date", "end_date", "cut_off_date", "auto_release_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return _coerce_day(value)


class RoomBlockUpdate(_CamelModel):
    """Descriptive fields only; rooms, counters, status and notes are owned by the lifecycle."""

    block_name: Optional[str] = None
    group_name: Optional[str] = None
    event_type: Optional[EventType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    corporate_id: Optional[str] = None
    block_rate: Optional[float] = None
    currency: Optional[str] = None
    cut_off_date: Optional[date] = None
    auto_release_date: Optional[date] = None
    contact_person: Optional[ContactPerson] = None
    vip_status: Optional[VipStatus] = None
    billing_instructions: Optional[str] = None
    special_instructions: Optional[str] = None
    catering_requirements: Optional[str] = None
    amenities: Optional[List[str]] = None
    payment_terms: Optional[PaymentTerms] = None

    @field_validator("start_date", "end_date", "cut_off_date", "auto_release_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return _coerce_day(value)


class BookRoomRequest(_CamelModel):
    guest_name: str
    special_requests: Optional[str] = None


class ReleaseRoomRequest(_CamelModel):
    reason: Optional[str] = None


class NoteCreate(_CamelModel):
    content: str
    author: NoteAuthor
    is_internal: bool = True


class CancelBlockRequest(_CamelModel):
    reason: str = ""
    author: Optional[NoteAuthor] = None


class RoomBlockFilters(_CamelModel):
    search: Optional[str] = None
    status: Optional[BlockStatus] = None
    event_type: Optional[EventType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=500)
    sort_order: Literal["asc", "desc"] = "asc"


# ---------------------------------------------------------------------------
# Responses / derived values
# ---------------------------------------------------------------------------


class Pagination(_CamelModel):
    current: int = 1
    pages: int = 1
    total: int = 0
    limit: int = DEFAULT_PAGE_SIZE


class RoomBlockPage(_CamelModel):
    data: List[RoomBlock] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class StatusStat(_CamelModel):
    id: str = Field(alias="_id")
    count: int = 0
    total_rooms: int = 0
    total_booked_rooms: int = 0


class EventTypeStat(_CamelModel):
    id: str = Field(alias="_id")
    count: int = 0


class RoomBlockStats(_CamelModel):
    status_stats: List[StatusStat] = Field(default_factory=list)
    event_type_stats: List[EventTypeStat] = Field(default_factory=list)


class AvailableRoom(_CamelModel):
    room_id: str = Field(validation_alias=AliasChoices("roomId", "room_id", "_id", "id"))
    room_number: str = ""
    room_type: str = ""
    floor: Optional[int] = None
    rate: Optional[float] = None


class RoomRef(_CamelModel):
    """A tape chart row. Either identity may be the one the upstream source populated."""

    id: Optional[str] = None
    number: Optional[str] = None


class Viewport(_CamelModel):
    start: date
    end: date

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return _coerce_day(value)


class TimelineOverlaySegment(_CamelModel):
    block_id: str
    room_id: str
    offset_fraction: float
    width_fraction: float
    is_partial: bool
    effective_start: date
    effective_end: date


class BlockMetrics(_CamelModel):
    block_id: str
    utilization: int
    estimated_revenue: float
    currency: str
    nights: int
    days_until_event: int
    days_until_label: str
    is_overdue: bool


class TapeChartSummary(_CamelModel):
    active_blocks: int = 0
    blocked_rooms: int = 0
    upcoming_releases: int = 0


class PortfolioStats(_CamelModel):
    total_blocks: int = 0
    status_counts: Dict[str, int] = Field(default_factory=dict)
    event_type_counts: Dict[str, int] = Field(default_factory=dict)
    total_rooms: int = 0
    rooms_booked: int = 0
    rooms_released: int = 0
    this_week: int = 0
    overdue: int = 0
    summary: TapeChartSummary = Field(default_factory=TapeChartSummary)
