"""Remote room-block service: client contract, in-memory mock and HTTP client.

The lifecycle manager only talks to the `RoomBlockClient` protocol. The mock
implementation is deterministic (sequential ids, same transition rules as the
core) and is used in tests and local development. The HTTP client is a thin
httpx wrapper; it maps upstream failures to the AppError taxonomy and never
retries.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

import httpx

from tapechart.config import (
    ROOM_BLOCK_CLIENT_MODE,
    ROOM_BLOCK_SERVICE_API_KEY,
    ROOM_BLOCK_SERVICE_BASE_URL,
    ROOM_BLOCK_SERVICE_TIMEOUT_SECONDS,
)
from tapechart.domain.room_state_machine import (
    TERMINAL_BLOCK_STATUSES,
    RoomStateTransitionError,
    reconcile,
    transition,
)
from tapechart.errors import AppError, NotFoundError, RemoteError
from tapechart.schemas_room_blocks import (
    AvailableRoom,
    BlockStatus,
    Note,
    NoteAuthor,
    RoomBlock,
    RoomBlockFilters,
    RoomBlockPage,
    RoomBlockStats,
    RoomStatus,
)
from tapechart.services.room_block_registry import RoomBlockRegistry
from tapechart.services.room_block_stats import build_remote_stats
from tapechart.utils.date_overlap import ranges_intersect
from tapechart.utils.dates import format_day, now_utc

logger = logging.getLogger("room_block_client")


# ---------------------------------------------------------------------------
# Client protocol / interface
# ---------------------------------------------------------------------------


class RoomBlockClient(Protocol):
    """Operations consumed from the remote room-block service.

    All methods are async; every call is a suspension point for the caller.
    """

    async def list_room_blocks(self, filters: RoomBlockFilters) -> RoomBlockPage:  # pragma: no cover - interface
        ...

    async def get_room_block_stats(self) -> RoomBlockStats:  # pragma: no cover - interface
        ...

    async def get_room_block(self, block_id: str) -> RoomBlock:  # pragma: no cover - interface
        ...

    async def create_room_block(self, payload: Dict[str, Any]) -> RoomBlock:  # pragma: no cover - interface
        ...

    async def update_room_block(self, block_id: str, patch: Dict[str, Any]) -> RoomBlock:  # pragma: no cover - interface
        ...

    async def release_room_block(self, block_id: str) -> None:  # pragma: no cover - interface
        ...

    async def book_room(
        self,
        block_id: str,
        room_id: str,
        *,
        guest_name: str,
        special_requests: Optional[str] = None,
    ) -> RoomBlock:  # pragma: no cover - interface
        ...

    async def release_room(self, block_id: str, room_id: str, reason: Optional[str] = None) -> RoomBlock:  # pragma: no cover - interface
        ...

    async def add_note(
        self,
        block_id: str,
        content: str,
        *,
        is_internal: bool,
        author: NoteAuthor,
    ) -> None:  # pragma: no cover - interface
        ...

    async def get_available_rooms(self, start_date: date, end_date: date) -> List[AvailableRoom]:  # pragma: no cover - interface
        ...


# ---------------------------------------------------------------------------
# Deterministic in-memory mock client
# ---------------------------------------------------------------------------


class MockRoomBlockClient:
    """In-memory stand-in for the room-block service.

    Guarantees sequential ids (mock_block_0001, ...) so tests are stable.
    `fail_next()` makes the next call raise the given error, which is how tests
    exercise "remote rejected the request" paths.
    """

    def __init__(self, inventory: Optional[List[AvailableRoom]] = None) -> None:
        self._store = RoomBlockRegistry()
        self._inventory: List[AvailableRoom] = list(inventory or [])
        self._seq: int = 1
        self._pending_error: Optional[AppError] = None
        self.calls: List[str] = []

    def fail_next(self, error: AppError) -> None:
        self._pending_error = error

    def seed(self, block: RoomBlock) -> RoomBlock:
        """Insert a block as if another session had created it."""
        stored = reconcile(block)
        self._store.upsert(stored)
        return stored.model_copy(deep=True)

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self._pending_error is not None:
            err, self._pending_error = self._pending_error, None
            raise err

    def _require(self, block_id: str) -> RoomBlock:
        block = self._store.get(block_id)
        if block is None:
            raise NotFoundError(f"Room block {block_id} not found", {"block_id": block_id})
        return block

    def _save(self, block: RoomBlock) -> RoomBlock:
        stored = reconcile(block.model_copy(update={"updated_at": now_utc()}))
        self._store.upsert(stored)
        return stored.model_copy(deep=True)

    def _transition_room(self, block: RoomBlock, room_id: str, target: RoomStatus, **changes) -> RoomBlock:
        room = block.find_room(room_id)
        if room is None:
            raise NotFoundError(
                f"Room {room_id} is not part of block {block.id}",
                {"block_id": block.id, "room_id": room_id},
            )
        try:
            updated = transition(room, target, **changes)
        except RoomStateTransitionError as exc:
            raise RemoteError(
                str(exc),
                status_code=409,
                code="room_state_conflict",
                details={"block_id": block.id, "room_id": room_id, "status": room.status.value},
            ) from exc
        rooms = [updated if r is room else r for r in block.rooms]
        return block.model_copy(update={"rooms": rooms})

    async def list_room_blocks(self, filters: RoomBlockFilters) -> RoomBlockPage:
        self._enter("list_room_blocks")
        page = self._store.page(filters)
        return page.model_copy(deep=True)

    async def get_room_block_stats(self) -> RoomBlockStats:
        self._enter("get_room_block_stats")
        return build_remote_stats(self._store.all())

    async def get_room_block(self, block_id: str) -> RoomBlock:
        self._enter("get_room_block")
        return self._require(block_id).model_copy(deep=True)

    async def create_room_block(self, payload: Dict[str, Any]) -> RoomBlock:
        self._enter("create_room_block")
        block_id = f"mock_block_{self._seq:04d}"
        self._seq += 1
        now = now_utc()
        doc = dict(payload)
        doc.update({"id": block_id, "createdAt": now, "updatedAt": now})
        block = RoomBlock.model_validate(doc)
        return self._save(block)

    async def update_room_block(self, block_id: str, patch: Dict[str, Any]) -> RoomBlock:
        self._enter("update_room_block")
        current = self._require(block_id)
        doc = current.model_dump(by_alias=True)
        doc.update(patch)
        doc["id"] = current.id
        return self._save(RoomBlock.model_validate(doc))

    async def release_room_block(self, block_id: str) -> None:
        self._enter("release_room_block")
        self._require(block_id)
        self._store.remove(block_id)

    async def book_room(
        self,
        block_id: str,
        room_id: str,
        *,
        guest_name: str,
        special_requests: Optional[str] = None,
    ) -> RoomBlock:
        self._enter("book_room")
        block = self._require(block_id)
        if block.status in TERMINAL_BLOCK_STATUSES:
            raise RemoteError(
                f"Room block {block_id} is {block.status.value}",
                status_code=409,
                code="block_closed",
                details={"block_id": block_id, "status": block.status.value},
            )
        updated = self._transition_room(
            block,
            room_id,
            RoomStatus.RESERVED,
            guest_name=guest_name,
            special_requests=special_requests,
        )
        return self._save(updated)

    async def release_room(self, block_id: str, room_id: str, reason: Optional[str] = None) -> RoomBlock:
        self._enter("release_room")
        block = self._require(block_id)
        updated = self._transition_room(block, room_id, RoomStatus.RELEASED)
        return self._save(updated)

    async def add_note(
        self,
        block_id: str,
        content: str,
        *,
        is_internal: bool,
        author: NoteAuthor,
    ) -> None:
        self._enter("add_note")
        block = self._require(block_id)
        note = Note(content=content, created_by=author, created_at=now_utc(), is_internal=is_internal)
        self._save(block.model_copy(update={"notes": [*block.notes, note]}))

    async def get_available_rooms(self, start_date: date, end_date: date) -> List[AvailableRoom]:
        self._enter("get_available_rooms")
        held: set[str] = set()
        for block in self._store.all():
            if block.status == BlockStatus.CANCELLED:
                continue
            if not ranges_intersect(block.start_date, block.end_date, start_date, end_date):
                continue
            held.update(r.room_id for r in block.rooms if r.status != RoomStatus.RELEASED)
        return [room.model_copy() for room in self._inventory if room.room_id not in held]


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body and "pagination" not in body:
        return body["data"]
    return body


class HttpRoomBlockClient:
    """Thin httpx client for the remote tape-chart room-block endpoints.

    - Does not retry; retry/backoff belongs to whoever drives the transport
    - 404 -> NotFoundError, any other non-2xx -> RemoteError
    - Transport failures -> RemoteError(retryable=True)
    """

    def __init__(
        self,
        base_url: str = ROOM_BLOCK_SERVICE_BASE_URL,
        api_key: str = ROOM_BLOCK_SERVICE_API_KEY,
        timeout: float = ROOM_BLOCK_SERVICE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = float(timeout or 10.0)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Room block service unreachable: %s %s: %s", method, path, exc)
            raise RemoteError(
                "Room block service unavailable",
                status_code=503,
                code="remote_unavailable",
                details={"path": path, "reason": str(exc)},
                retryable=True,
            ) from exc

        if resp.status_code >= 400:
            self._raise_for_status(resp, path)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("Room block service returned non-JSON body: %s %s", method, path)
            raise RemoteError(
                "Room block service returned an invalid payload",
                status_code=502,
                code="remote_bad_payload",
                details={"path": path, "upstream_status": resp.status_code},
            ) from exc

    def _raise_for_status(self, resp: httpx.Response, path: str) -> None:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        err = body.get("error") if isinstance(body, dict) else None
        if isinstance(err, dict):
            code = err.get("code") or "remote_error"
            message = err.get("message") or resp.text
        elif isinstance(body, dict):
            code = body.get("code") or "remote_error"
            message = body.get("message") or resp.text
        else:
            code, message = "remote_error", resp.text
        details = {"path": path, "upstream_status": resp.status_code}

        logger.warning("Room block service rejected %s: %s %s", path, resp.status_code, message)
        if resp.status_code == 404:
            raise NotFoundError(message or "Room block not found", details)
        raise RemoteError(
            message or "Room block service error",
            status_code=resp.status_code,
            code=str(code),
            details=details,
            retryable=resp.status_code >= 500,
        )

    async def list_room_blocks(self, filters: RoomBlockFilters) -> RoomBlockPage:
        params = filters.model_dump(by_alias=True, exclude_none=True, mode="json")
        body = await self._request("GET", "/tape-chart/room-blocks", params=params)
        if isinstance(body, list):
            return RoomBlockPage.model_validate({"data": body})
        return RoomBlockPage.model_validate(body or {})

    async def get_room_block_stats(self) -> RoomBlockStats:
        body = await self._request("GET", "/tape-chart/room-blocks/stats")
        return RoomBlockStats.model_validate(_unwrap(body) or {})

    async def get_room_block(self, block_id: str) -> RoomBlock:
        body = await self._request("GET", f"/tape-chart/room-blocks/{block_id}")
        return RoomBlock.model_validate(_unwrap(body))

    async def create_room_block(self, payload: Dict[str, Any]) -> RoomBlock:
        body = await self._request("POST", "/tape-chart/room-blocks", json=payload)
        return RoomBlock.model_validate(_unwrap(body))

    async def update_room_block(self, block_id: str, patch: Dict[str, Any]) -> RoomBlock:
        body = await self._request("PUT", f"/tape-chart/room-blocks/{block_id}", json=patch)
        return RoomBlock.model_validate(_unwrap(body))

    async def release_room_block(self, block_id: str) -> None:
        await self._request("POST", f"/tape-chart/room-blocks/{block_id}/release")

    async def book_room(
        self,
        block_id: str,
        room_id: str,
        *,
        guest_name: str,
        special_requests: Optional[str] = None,
    ) -> RoomBlock:
        body = await self._request(
            "POST",
            f"/tape-chart/room-blocks/{block_id}/rooms/{room_id}/book",
            json={"guestName": guest_name, "specialRequests": special_requests},
        )
        return RoomBlock.model_validate(_unwrap(body))

    async def release_room(self, block_id: str, room_id: str, reason: Optional[str] = None) -> RoomBlock:
        body = await self._request(
            "POST",
            f"/tape-chart/room-blocks/{block_id}/rooms/{room_id}/release",
            json={"reason": reason},
        )
        return RoomBlock.model_validate(_unwrap(body))

    async def add_note(
        self,
        block_id: str,
        content: str,
        *,
        is_internal: bool,
        author: NoteAuthor,
    ) -> None:
        await self._request(
            "POST",
            f"/tape-chart/room-blocks/{block_id}/notes",
            json={
                "content": content,
                "isInternal": is_internal,
                "createdBy": author.model_dump(by_alias=True),
            },
        )

    async def get_available_rooms(self, start_date: date, end_date: date) -> List[AvailableRoom]:
        body = await self._request(
            "GET",
            "/tape-chart/room-blocks/available-rooms",
            params={"startDate": format_day(start_date), "endDate": format_day(end_date)},
        )
        return [AvailableRoom.model_validate(item) for item in (_unwrap(body) or [])]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_room_block_client(mode: str = ROOM_BLOCK_CLIENT_MODE, **kwargs: Any) -> RoomBlockClient:
    """Return a room-block client implementation for `mode` ("mock" or "http")."""

    normalized = (mode or "mock").strip().lower()
    if normalized == "http":
        return HttpRoomBlockClient(**kwargs)
    if normalized == "mock":
        return MockRoomBlockClient(**kwargs)
    raise ValueError(f"Unsupported room block client mode: {mode}")
