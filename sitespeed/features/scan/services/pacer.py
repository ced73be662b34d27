import asyncio
from typing import Optional

from sitespeed.platform.config import settings


class Pacer:
    """
    Fixed gap between PageSpeed calls.

    This is a policy delay, not a backoff: every call is followed by the
    same pause, system-wide. The pause is cut short when the run's
    cancellation event is set.
    """

    def __init__(self, seconds: Optional[float] = None) -> None:
        self.seconds = settings.SCAN_PACE_SECONDS if seconds is None else max(0.0, float(seconds))

    async def wait(self, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """Sleep for the pace. Returns True if cancellation cut it short."""
        if cancel_event is not None and cancel_event.is_set():
            return True
        if self.seconds <= 0:
            return False
        if cancel_event is None:
            await asyncio.sleep(self.seconds)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.seconds)
        except asyncio.TimeoutError:
            return False
        return True
