from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import Optional

from tapechart.utils.dates import now_utc

_BASE36 = string.digits + string.ascii_lowercase


def generate_block_code(now: Optional[datetime] = None, length: int = 6) -> str:
    """Human-facing block code, e.g. block_1718000000000_k3x9qa."""

    ts = now or now_utc()
    millis = int(ts.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(length))
    return f"block_{millis}_{suffix}"
