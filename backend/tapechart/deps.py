from __future__ import annotations

from typing import Optional

from fastapi import Depends

from tapechart.config import ROOM_BLOCK_CLIENT_MODE
from tapechart.services.room_block_client import get_room_block_client
from tapechart.services.room_block_lifecycle import BlockLifecycleManager
from tapechart.services.room_block_stats import UtilizationReporter
from tapechart.services.timeline_projector import TimelineProjector


_manager: Optional[BlockLifecycleManager] = None
_projector = TimelineProjector()


def get_lifecycle_manager() -> BlockLifecycleManager:
    """Process-wide manager: one registry per running console session."""

    global _manager

    if _manager is None:
        _manager = BlockLifecycleManager(get_room_block_client(ROOM_BLOCK_CLIENT_MODE))
    return _manager


def get_projector() -> TimelineProjector:
    return _projector


def get_reporter(manager: BlockLifecycleManager = Depends(get_lifecycle_manager)) -> UtilizationReporter:
    return UtilizationReporter(manager.registry, default_rate=manager.default_rate)
