"""Board session: the scoped owner of every live resource of one client."""

import asyncio
import logging
from typing import List, Optional

from board_sync.config import Settings
from board_sync.core.cache import LocalCacheStore
from board_sync.core.dispatcher import CommandContext, CommandDispatcher, LoggingMiddleware
from board_sync.core.handlers import CaseCommandHandlers
from board_sync.core.presence import PresenceHeartbeat
from board_sync.core.reconciler import (
    PendingUpdateListener,
    RealtimeReconciler,
    split_sentinel_rows,
)
from board_sync.infrastructure.persistence import CaseRepository
from board_sync.infrastructure.realtime import Subscription
from board_sync.models.case import Case
from board_sync.models.commands import BatchResult, Command, EmptyPayload, SetNamePayload

logger = logging.getLogger(__name__)


class BoardSession:
    """Live board state for one actor.

    Entering the session subscribes to the change feed, loads the cache,
    starts the reconciler task and the presence heartbeat, and wires the
    dispatcher. Leaving it releases all of them.

    Usage:
        async with BoardSession(repository, actor_name="Dana") as session:
            await session.dispatch(Command(name="case.toggle_rush", payload={"id": case_id}))
    """

    def __init__(
        self,
        repository: CaseRepository,
        actor_name: str = "",
        app_version: str = "1.0.0",
        presence_interval: float = 20.0,
        active_window_seconds: float = 120.0,
        sentinel: str = "update",
        on_pending_update: Optional[PendingUpdateListener] = None,
        dispatcher: Optional[CommandDispatcher] = None,
        log_commands: bool = True,
    ):
        self.repository = repository
        self.actor_name = actor_name
        self.cache = LocalCacheStore()
        self.dispatcher = dispatcher or CommandDispatcher()
        self.reconciler = RealtimeReconciler(
            self.cache,
            repository,
            sentinel=sentinel,
            on_pending_update=on_pending_update,
        )
        self.heartbeat = PresenceHeartbeat(
            repository,
            get_actor=lambda: self.actor_name,
            app_version=app_version,
            interval=presence_interval,
        )
        self.handlers = CaseCommandHandlers(
            repository,
            self.cache,
            active_window_seconds=active_window_seconds,
            sentinel=sentinel,
        )
        self._log_commands = log_commands
        self._subscription: Optional[Subscription] = None
        self._reconciler_task: Optional[asyncio.Task] = None
        self._remove_logging = None

    @classmethod
    def from_settings(
        cls,
        repository: CaseRepository,
        settings: Settings,
        on_pending_update: Optional[PendingUpdateListener] = None,
    ) -> "BoardSession":
        return cls(
            repository,
            actor_name=settings.actor_name,
            app_version=settings.app_version,
            presence_interval=settings.presence_interval_seconds,
            active_window_seconds=settings.presence_active_window_seconds,
            sentinel=settings.sentinel_case_number,
            on_pending_update=on_pending_update,
        )

    @property
    def active(self) -> bool:
        return self._subscription is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _wire_dispatcher(self) -> None:
        self.dispatcher.set_context(
            CommandContext(get_case=self.cache.get, get_actor=lambda: self.actor_name)
        )
        self.handlers.register(self.dispatcher)
        self.dispatcher.register("user.set_name", self._set_name, SetNamePayload)
        self.dispatcher.register("data.refresh", self._refresh, EmptyPayload)
        if self._log_commands:
            self._remove_logging = self.dispatcher.use(LoggingMiddleware())

    async def load(self) -> List[Case]:
        """Replace the cache with the store's non-archived cases.

        Pending-update control rows are signalled and purged, never cached.
        """
        cases = await self.repository.list(archived=False)
        real, control = split_sentinel_rows(cases, self.reconciler.sentinel)
        for row in control:
            self.reconciler.signal_pending_update(row.modifiers)
        if control:
            await self.reconciler.purge_control_rows()
        self.cache.replace_all(real)
        logger.info(f"Loaded {len(real)} cases")
        return real

    async def start(self) -> "BoardSession":
        if self.active:
            return self
        # Subscribe before loading so no write between the two is missed
        self._subscription = self.repository.feed.subscribe("cases-realtime")
        try:
            await self.load()
        except Exception:
            self._subscription.close()
            self._subscription = None
            raise
        self._reconciler_task = asyncio.create_task(self.reconciler.run(self._subscription))
        self._wire_dispatcher()
        self.heartbeat.start()
        logger.info(f"Board session started for {self.actor_name or 'anonymous'}")
        return self

    async def close(self) -> None:
        if not self.active:
            return
        try:
            await self.heartbeat.stop()
        finally:
            if self._remove_logging is not None:
                self._remove_logging()
                self._remove_logging = None

            subscription, self._subscription = self._subscription, None
            subscription.close()
            task, self._reconciler_task = self._reconciler_task, None
            if task is not None:
                try:
                    await asyncio.wait_for(task, timeout=5)
                except asyncio.TimeoutError:
                    logger.warning("Reconciler did not stop in time; cancelled")
            logger.info("Board session closed")

    async def __aenter__(self) -> "BoardSession":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def settle(self) -> None:
        """Wait until every notification delivered so far has been applied."""
        if self._subscription is not None:
            await self._subscription.join()

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(self, command: Command):
        return await self.dispatcher.dispatch(command)

    async def dispatch_batch(self, commands: List[Command], **kwargs) -> BatchResult:
        return await self.dispatcher.dispatch_batch(commands, **kwargs)

    async def _set_name(self, payload: SetNamePayload, ctx: CommandContext) -> str:
        self.actor_name = payload.name.strip()
        await self.heartbeat.report_active("name-set")
        return self.actor_name

    async def _refresh(self, payload: EmptyPayload, ctx: CommandContext) -> int:
        return len(await self.load())
