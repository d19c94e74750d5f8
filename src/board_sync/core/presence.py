"""Presence reporting for the active session."""

import asyncio
import logging
from typing import Callable, Optional

from board_sync.exceptions import TransientIOError
from board_sync.infrastructure.persistence import CaseRepository
from board_sync.models.case import ActiveDevice, utc_now

logger = logging.getLogger(__name__)


class PresenceHeartbeat:
    """Periodically upserts this session's presence record.

    Owned by one session: :meth:`start` reports immediately and schedules
    further reports every ``interval`` seconds, :meth:`stop` cancels the
    timer and waits for it to finish. Reporting is best-effort.
    """

    def __init__(
        self,
        repository: CaseRepository,
        get_actor: Callable[[], str],
        app_version: str,
        interval: float = 20.0,
    ):
        self.repository = repository
        self.get_actor = get_actor
        self.app_version = app_version
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self.reports = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def report_active(self, reason: str = "unknown") -> bool:
        """Upsert the presence record. Returns False if nothing was reported."""
        user_name = self.get_actor()
        if not user_name:
            logger.debug("No user name, skipping presence report")
            return False

        try:
            await self.repository.upsert_device(
                ActiveDevice(
                    user_name=user_name,
                    app_version=self.app_version,
                    last_seen=utc_now(),
                )
            )
        except TransientIOError as e:
            logger.warning(f"Failed to report presence ({reason}): {e}")
            return False

        self.reports += 1
        logger.debug(f"Reported active ({reason})")
        return True

    async def _tick(self, reason: str) -> None:
        try:
            await self.report_active(reason)
        except Exception as e:
            logger.exception(f"Presence report failed ({reason}): {e}")

    async def _loop(self) -> None:
        await self._tick("heartbeat-start")
        while True:
            await asyncio.sleep(self.interval)
            await self._tick("heartbeat-interval")

    def start(self) -> None:
        if self.running:
            return
        logger.info(f"Starting presence heartbeat every {self.interval}s")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Presence heartbeat ended with error: {e}")
        logger.info("Presence heartbeat stopped")
