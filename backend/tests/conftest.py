"""Shared test configuration and fixtures for the tape chart backend.

Key principles:
- No remote service; the room-block collaborator is MockRoomBlockClient.
- All HTTP calls go through the local ASGI app via httpx.AsyncClient.
- AnyIO is the single async runner via pytest-anyio (@pytest.mark.anyio).
"""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, List

import httpx
import pytest
from httpx import ASGITransport

# Ensure backend root is on sys.path so that `server` module is importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from server import app  # noqa: E402
from tapechart.deps import get_lifecycle_manager  # noqa: E402
from tapechart.schemas_room_blocks import (  # noqa: E402
    AvailableRoom,
    BlockRoom,
    ContactPerson,
    EventType,
    RoomBlock,
    RoomBlockCreate,
    RoomSelection,
)
from tapechart.services.room_block_client import MockRoomBlockClient  # noqa: E402
from tapechart.services.room_block_lifecycle import BlockLifecycleManager  # noqa: E402


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


def room_selections(count: int) -> List[RoomSelection]:
    return [
        RoomSelection(room_id=f"room_{i:03d}", room_number=str(100 + i), room_type="deluxe")
        for i in range(1, count + 1)
    ]


@pytest.fixture
def make_block_spec() -> Callable[..., RoomBlockCreate]:
    """Factory for a valid create request; keyword overrides replace fields."""

    def _make(room_count: int = 10, **overrides: Any) -> RoomBlockCreate:
        data: dict[str, Any] = {
            "block_name": "Sharma Wedding",
            "group_name": "Sharma Family",
            "event_type": EventType.WEDDING,
            "start_date": date(2024, 6, 10),
            "end_date": date(2024, 6, 15),
            "rooms": room_selections(room_count),
            "contact_person": ContactPerson(name="Anil Sharma", email="anil@example.com"),
        }
        data.update(overrides)
        return RoomBlockCreate(**data)

    return _make


@pytest.fixture
def make_block() -> Callable[..., RoomBlock]:
    """Factory for RoomBlock entities used by pure (non-lifecycle) tests."""

    def _make(block_id: str = "blk_1", room_count: int = 3, **overrides: Any) -> RoomBlock:
        data: dict[str, Any] = {
            "id": block_id,
            "block_name": "Acme Sales Kickoff",
            "group_name": "Acme Corp",
            "event_type": EventType.CORPORATE_EVENT,
            "start_date": date(2024, 6, 10),
            "end_date": date(2024, 6, 15),
            "rooms": [
                BlockRoom(room_id=f"room_{i:03d}", room_number=str(100 + i), room_type="standard")
                for i in range(1, room_count + 1)
            ],
            "total_rooms": room_count,
        }
        data.update(overrides)
        return RoomBlock(**data)

    return _make


@pytest.fixture
def inventory() -> List[AvailableRoom]:
    return [
        AvailableRoom(room_id=f"room_{i:03d}", room_number=str(100 + i), room_type="deluxe", floor=1, rate=4000)
        for i in range(1, 13)
    ]


@pytest.fixture
def mock_client(inventory: List[AvailableRoom]) -> MockRoomBlockClient:
    return MockRoomBlockClient(inventory=inventory)


@pytest.fixture
def manager(mock_client: MockRoomBlockClient) -> BlockLifecycleManager:
    return BlockLifecycleManager(mock_client)


@pytest.fixture
async def async_client(manager: BlockLifecycleManager) -> AsyncGenerator[httpx.AsyncClient, None]:
    """ASGI client wired to a fresh lifecycle manager per test."""

    app.dependency_overrides[get_lifecycle_manager] = lambda: manager
    transport = ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
