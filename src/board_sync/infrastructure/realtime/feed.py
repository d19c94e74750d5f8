"""In-process change feed.

Repositories publish one :class:`ChangeNotification` per committed row write.
Each subscriber gets its own ordered queue, so delivery is per-row ordered and
independent of any transport's callback registration.
"""

import asyncio
import logging
from typing import List, Optional

from board_sync.models.case import ChangeNotification

logger = logging.getLogger(__name__)


class Subscription:
    """Ordered channel of notifications for one consumer.

    Iterate with ``async for``; call :meth:`ack` once a notification has been
    applied so :meth:`join` can report when the consumer has caught up.
    """

    def __init__(self, feed: "ChangeFeed", name: str):
        self._feed = feed
        self.name = name
        self._queue: "asyncio.Queue[Optional[ChangeNotification]]" = asyncio.Queue()
        self.closed = False

    def _put(self, notification: ChangeNotification) -> None:
        if not self.closed:
            self._queue.put_nowait(notification)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeNotification:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            self._queue.task_done()
            raise StopAsyncIteration
        return item

    def ack(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every delivered notification has been acknowledged."""
        await self._queue.join()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._detach(self)
        # Wake a consumer blocked on get()
        self._queue.put_nowait(None)
        logger.debug(f"Subscription {self.name} closed")

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    """Fan-out of change notifications to every open subscription."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(self, name: str = "cases") -> Subscription:
        subscription = Subscription(self, name)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscription {name} opened")
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, notification: ChangeNotification) -> None:
        for subscription in list(self._subscriptions):
            subscription._put(notification)
