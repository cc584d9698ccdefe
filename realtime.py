"""
Change notifications for storefront clients.

Every write to a watched collection is published as ``{"table", "event"}``.
Subscribers hold a bounded queue bound to their own event loop; a subscriber
whose queue is full or whose loop has gone away is dropped, so writers never
wait on a slow socket. A dropped queue receives ``CLOSED`` so its reader can
hang up.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

WATCHED_TABLES = {"product", "order", "coupon", "app_settings"}

# Handed to a dropped subscriber in place of a change
CLOSED = None


class ChangeBroadcaster:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[asyncio.Queue, asyncio.AbstractEventLoop] = {}

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[queue] = asyncio.get_running_loop()
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.pop(queue, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _deliver(self, queue: asyncio.Queue, message: dict) -> None:
        if queue not in self._subscribers:
            return
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Dropping slow change subscriber")
            self.unsubscribe(queue)
            # make room for the close marker; the client refetches on reconnect
            while not queue.empty():
                queue.get_nowait()
            queue.put_nowait(CLOSED)

    def publish(self, table: str, event: str) -> None:
        if table not in WATCHED_TABLES:
            return
        message = {"table": table, "event": event}
        for queue, loop in list(self._subscribers.items()):
            try:
                loop.call_soon_threadsafe(self._deliver, queue, message)
            except RuntimeError:
                # loop closed under us
                self.unsubscribe(queue)

    async def next_change(self, queue: asyncio.Queue, timeout: Optional[float] = None) -> Optional[dict]:
        """Wait for the next change; ``CLOSED`` once the subscriber was dropped."""
        return await asyncio.wait_for(queue.get(), timeout)


broadcaster = ChangeBroadcaster()
