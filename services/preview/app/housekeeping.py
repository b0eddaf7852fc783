"""
Weekly cache clear.

The cache knows nothing about scheduling; this timer just calls clear_all()
at a fixed weekday/hour (UTC). Started on app startup when
CACHE_CLEAR_WEEKDAY >= 0, cancelled on shutdown.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from .cache import PreviewCache

logger = logging.getLogger("preview.housekeeping")

def next_run(now: datetime, weekday: int, hour: int) -> datetime:
    """
    First datetime strictly after `now` that falls on `weekday` at `hour`:00.
    """
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    candidate += timedelta(days=(weekday - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate

async def weekly_clear(
    cache: PreviewCache,
    weekday: int,
    hour: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Optional[Callable[[], datetime]] = None,
    runs: Optional[int] = None,
) -> None:
    """
    Loop forever (or `runs` times): sleep until the next slot, then clear.
    """
    clock = clock or (lambda: datetime.now(tz=timezone.utc))
    done = 0
    while runs is None or done < runs:
        now = clock()
        target = next_run(now, weekday, hour)
        logger.info("Next scheduled cache clear at %s", target.isoformat())
        await sleep((target - now).total_seconds())
        dropped = cache.clear_all()
        logger.info("Scheduled cache clear dropped %s entries", dropped)
        done += 1
