from __future__ import annotations

import time
from datetime import datetime
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def start_of_day(timestamp_ms: int) -> int:
    """Local midnight of the day containing `timestamp_ms`, in epoch milliseconds."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000)
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)
