"""
In-process publish/subscribe for scan progress.

The orchestrator publishes an event after every item transition; each SSE
connection owns one subscriber queue. Scans live in a single process, so
nothing leaves memory.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


def _get_current_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ScanEventBroker:

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._subscribers: List[asyncio.Queue] = []
        self._max_queue_size = max_queue_size

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.append(queue)
        logger.debug(f"SSE subscriber added ({len(self._subscribers)} active)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug(f"SSE subscriber removed ({len(self._subscribers)} active)")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: str, **data: Any) -> int:
        """
        Fan an event out to every subscriber. Returns how many received it.

        A subscriber that stopped draining its queue loses its oldest event
        rather than blocking the scan.
        """
        payload: Dict[str, Any] = {"event": event, "timestamp": _get_current_timestamp(), **data}
        delivered = 0
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(payload)
            delivered += 1
        return delivered
