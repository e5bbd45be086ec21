from __future__ import annotations

import time
from datetime import datetime


def unix_now() -> int:
    """Current time as integer unix seconds (the Typecho timestamp format)."""
    return int(time.time())


def upload_subdir(now: datetime) -> str:
    return f"usr/uploads/{now.year}/{now.month}"
