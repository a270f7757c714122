"""Tape chart / room block configuration.

Env-based, module-level constants. Defaults reproduce the console's
behaviour when no environment is set.
"""

from __future__ import annotations

import os


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Application constants
API_PREFIX = "/api"
APP_NAME = "Tape Chart Room Blocks API"
APP_VERSION = "1.0.0"
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

ENABLE_TAPE_CHART_API: bool = _env_flag("ENABLE_TAPE_CHART_API", default=True)

# Remote room-block service
ROOM_BLOCK_CLIENT_MODE = os.environ.get("ROOM_BLOCK_CLIENT_MODE", "mock")
ROOM_BLOCK_SERVICE_BASE_URL = os.environ.get("ROOM_BLOCK_SERVICE_BASE_URL", "http://localhost:5000/api/v1")
ROOM_BLOCK_SERVICE_API_KEY = os.environ.get("ROOM_BLOCK_SERVICE_API_KEY", "")
ROOM_BLOCK_SERVICE_TIMEOUT_SECONDS = float(os.environ.get("ROOM_BLOCK_SERVICE_TIMEOUT_SECONDS", "10"))

# Revenue estimation fallback when no room or block rate is known
DEFAULT_ROOM_RATE = float(os.environ.get("ROOM_BLOCK_DEFAULT_ROOM_RATE", "3500"))
DEFAULT_CURRENCY = os.environ.get("ROOM_BLOCK_DEFAULT_CURRENCY", "INR")

# Polling cadence is owned by the caller; exposed so the UI can read it.
REFRESH_INTERVAL_SECONDS: int = _env_int("ROOM_BLOCK_REFRESH_INTERVAL_SECONDS", 30)
UPCOMING_WINDOW_DAYS: int = _env_int("ROOM_BLOCK_UPCOMING_WINDOW_DAYS", 7)
DEFAULT_PAGE_SIZE: int = _env_int("ROOM_BLOCK_PAGE_SIZE", 10)

DEFAULT_DEPOSIT_PERCENTAGE = 50
DEFAULT_CANCELLATION_POLICY = "standard"
DEFAULT_BILLING_INSTRUCTIONS = "master_account"
