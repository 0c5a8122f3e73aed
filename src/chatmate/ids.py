from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

TASK_ID_PATTERN = re.compile(r"^\d{14}$")


def generate_unique_task_id(now: Optional[datetime] = None) -> str:
    """Task identifier in SSMMHHDDMMYYYY form (seconds first, 4-digit year last)."""
    now = now or datetime.now()
    return (
        f"{now.second:02d}{now.minute:02d}{now.hour:02d}"
        f"{now.day:02d}{now.month:02d}{now.year:04d}"
    )


def is_task_id(value: str) -> bool:
    return bool(TASK_ID_PATTERN.match(value or ""))
