from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


def epoch_millis() -> int:
    """Current instant as integer milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def millis_to_utc_z(value: Optional[int]) -> Optional[str]:
    """
    Serializes epoch milliseconds to ISO-8601 with trailing 'Z'.
    """
    if value is None:
        return None
    dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def backup_date_stamp(value: int) -> str:
    """YYYY-MM-DD (UTC) of an epoch-millis instant, used in backup filenames."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
