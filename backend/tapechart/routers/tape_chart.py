from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from tapechart.config import (
    API_PREFIX,
    DEFAULT_CURRENCY,
    DEFAULT_PAGE_SIZE,
    REFRESH_INTERVAL_SECONDS,
    UPCOMING_WINDOW_DAYS,
)
from tapechart.deps import get_lifecycle_manager, get_projector, get_reporter
from tapechart.schemas_room_blocks import (
    AvailableRoom,
    BlockMetrics,
    BlockStatus,
    BookRoomRequest,
    CancelBlockRequest,
    EventType,
    NoteCreate,
    PortfolioStats,
    ReleaseRoomRequest,
    RoomBlock,
    RoomBlockCreate,
    RoomBlockFilters,
    RoomBlockPage,
    RoomBlockStats,
    RoomBlockUpdate,
    RoomRef,
    TimelineOverlaySegment,
    Viewport,
)
from tapechart.services.room_block_lifecycle import BlockLifecycleManager
from tapechart.services.room_block_stats import UtilizationReporter
from tapechart.services.timeline_projector import TimelineProjector, stacking_order

router = APIRouter(prefix=f"{API_PREFIX}/tape-chart", tags=["tape-chart"])


async def _ensure_loaded(manager: BlockLifecycleManager, block_id: str) -> RoomBlock:
    # After a restart the registry is empty until the next poll; fetch on demand.
    if block_id in manager.registry:
        return manager.get_block(block_id)
    return await manager.load_block(block_id)


@router.get("/settings")
async def get_settings() -> Dict[str, Any]:
    return {
        "refreshIntervalSeconds": REFRESH_INTERVAL_SECONDS,
        "upcomingWindowDays": UPCOMING_WINDOW_DAYS,
        "defaultCurrency": DEFAULT_CURRENCY,
        "pageSize": DEFAULT_PAGE_SIZE,
    }


@router.get("/room-blocks", response_model=RoomBlockPage)
async def list_room_blocks(
    search: Optional[str] = None,
    status: Optional[BlockStatus] = None,
    event_type: Optional[EventType] = Query(None, alias="eventType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=500),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlockPage:
    """Refresh the registry from the remote listing and return that page."""

    filters = RoomBlockFilters(
        search=search,
        status=status,
        event_type=event_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
        sort_order=sort_order,
    )
    return await manager.refresh(filters)


@router.get("/room-blocks/stats", response_model=RoomBlockStats)
async def room_block_stats(manager: BlockLifecycleManager = Depends(get_lifecycle_manager)) -> RoomBlockStats:
    return await manager.get_stats()


@router.get("/room-blocks/portfolio", response_model=PortfolioStats)
async def room_block_portfolio(reporter: UtilizationReporter = Depends(get_reporter)) -> PortfolioStats:
    """Dashboard figures over the blocks currently loaded in the registry."""

    return reporter.portfolio()


@router.get("/available-rooms", response_model=List[AvailableRoom])
async def available_rooms(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> List[AvailableRoom]:
    return await manager.available_rooms(start_date, end_date)


@router.post("/room-blocks", response_model=RoomBlock, status_code=201)
async def create_room_block(
    payload: RoomBlockCreate,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    return await manager.create_block(payload)


@router.get("/room-blocks/{block_id}", response_model=RoomBlock)
async def get_room_block(block_id: str, manager: BlockLifecycleManager = Depends(get_lifecycle_manager)) -> RoomBlock:
    return await manager.load_block(block_id)


@router.patch("/room-blocks/{block_id}", response_model=RoomBlock)
async def update_room_block(
    block_id: str,
    payload: RoomBlockUpdate,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    await _ensure_loaded(manager, block_id)
    return await manager.update_block(block_id, payload)


@router.delete("/room-blocks/{block_id}")
async def delete_room_block(
    block_id: str,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> Dict[str, Any]:
    await _ensure_loaded(manager, block_id)
    await manager.delete_block(block_id)
    return {"ok": True, "id": block_id}


@router.post("/room-blocks/{block_id}/rooms/{room_id}/book", response_model=RoomBlock)
async def book_room(
    block_id: str,
    room_id: str,
    payload: BookRoomRequest,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    await _ensure_loaded(manager, block_id)
    return await manager.book_room(
        block_id,
        room_id,
        guest_name=payload.guest_name,
        special_requests=payload.special_requests,
    )


@router.post("/room-blocks/{block_id}/rooms/{room_id}/release", response_model=RoomBlock)
async def release_room(
    block_id: str,
    room_id: str,
    payload: Optional[ReleaseRoomRequest] = None,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    await _ensure_loaded(manager, block_id)
    return await manager.release_room(block_id, room_id, payload.reason if payload else None)


@router.post("/room-blocks/{block_id}/rooms/{room_id}/check-in", response_model=RoomBlock)
async def check_in_room(
    block_id: str,
    room_id: str,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    await _ensure_loaded(manager, block_id)
    return await manager.check_in_room(block_id, room_id)


@router.post("/room-blocks/{block_id}/notes", response_model=RoomBlock)
async def add_note(
    block_id: str,
    payload: NoteCreate,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    await _ensure_loaded(manager, block_id)
    return await manager.add_note(block_id, payload.content, payload.author, payload.is_internal)


@router.post("/room-blocks/{block_id}/cancel", response_model=RoomBlock)
async def cancel_room_block(
    block_id: str,
    payload: Optional[CancelBlockRequest] = None,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    await _ensure_loaded(manager, block_id)
    payload = payload or CancelBlockRequest()
    return await manager.cancel_block(block_id, payload.reason, payload.author)


@router.post("/room-blocks/{block_id}/complete", response_model=RoomBlock)
async def complete_room_block(
    block_id: str,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
) -> RoomBlock:
    await _ensure_loaded(manager, block_id)
    return await manager.complete_block(block_id)


@router.get("/room-blocks/{block_id}/metrics", response_model=BlockMetrics)
async def room_block_metrics(
    block_id: str,
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
    reporter: UtilizationReporter = Depends(get_reporter),
) -> BlockMetrics:
    block = await _ensure_loaded(manager, block_id)
    return reporter.block_metrics(block)


@router.get("/rooms/{room_id}/overlays", response_model=List[TimelineOverlaySegment])
async def room_overlays(
    room_id: str,
    start: date,
    end: date,
    room_number: Optional[str] = Query(None, alias="roomNumber"),
    manager: BlockLifecycleManager = Depends(get_lifecycle_manager),
    projector: TimelineProjector = Depends(get_projector),
) -> List[TimelineOverlaySegment]:
    """Overlay segments for one tape chart row over the [start, end) viewport."""

    viewport = Viewport(start=start, end=end)
    blocks = stacking_order(manager.registry.all())
    return projector.project(RoomRef(id=room_id, number=room_number), viewport, blocks)
