# backend/pestalert/clock.py
import asyncio
from datetime import datetime, timezone


class Clock:
    """Time source for the scheduler, dispatcher and pipeline; tests swap in a fake."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


SYSTEM_CLOCK = Clock()
