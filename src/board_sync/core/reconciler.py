"""Realtime merge of change notifications into the local cache."""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from board_sync.core.cache import LocalCacheStore
from board_sync.exceptions import TransientIOError
from board_sync.infrastructure.persistence import CaseRepository, is_sentinel_number
from board_sync.infrastructure.realtime import Subscription
from board_sync.models.case import (
    Case,
    ChangeKind,
    ChangeNotification,
    PendingUpdateNotice,
    UpdatePriority,
)
from board_sync.utils import create_custom_retry

logger = logging.getLogger(__name__)

PendingUpdateListener = Callable[[PendingUpdateNotice], Any]

_PRIORITIES = {p.value for p in UpdatePriority}

purge_retry = create_custom_retry(max_attempts=3, min_wait=0.5, max_wait=4)


def decode_pending_update(modifiers: Optional[Iterable[str]]) -> PendingUpdateNotice:
    """Read urgency and note out of a control row's modifier tags."""
    tags = list(modifiers or [])
    priority = next((t for t in tags if t in _PRIORITIES), UpdatePriority.NORMAL.value)
    notes = next((t for t in tags if t not in _PRIORITIES), "")
    return PendingUpdateNotice(priority=UpdatePriority(priority), notes=notes)


def log_pending_update(notice: PendingUpdateNotice) -> None:
    if notice.reload_required:
        logger.warning("Forced update published; reload required")
    elif notice.critical:
        logger.warning(f"Critical update available: {notice.notes or 'no notes'}")
    else:
        logger.info(f"Update available: {notice.notes or 'no notes'}")


def split_sentinel_rows(
    cases: Iterable[Case], sentinel: str
) -> Tuple[List[Case], List[Case]]:
    """Partition cases into (real cases, pending-update control rows)."""
    real, control = [], []
    for case in cases:
        (control if is_sentinel_number(case.case_number, sentinel) else real).append(case)
    return real, control


class RealtimeReconciler:
    """Applies an ordered stream of per-row notifications to the cache.

    Rules, first match wins:
    1. archived row -> remove by id
    2. pending-update control row -> signal listener, purge control rows
    3. delete -> remove by id
    4. insert/update -> upsert by id, keeping the position of existing rows

    Applying the same notification twice leaves the cache unchanged the
    second time. There is no timestamp reconciliation: the last applied
    notification for a row wins.
    """

    def __init__(
        self,
        cache: LocalCacheStore,
        repository: CaseRepository,
        sentinel: str = "update",
        on_pending_update: Optional[PendingUpdateListener] = None,
    ):
        self.cache = cache
        self.repository = repository
        self.sentinel = sentinel
        self.on_pending_update = on_pending_update or log_pending_update
        self.applied = 0

    async def apply(self, notification: ChangeNotification) -> None:
        new: Optional[Dict[str, Any]] = notification.new
        old: Optional[Dict[str, Any]] = notification.old

        if new and new.get("archived"):
            if not new.get("id"):
                logger.warning(f"Dropping archived {notification.kind.value} without id")
                return
            self.cache.remove(new["id"])
            return

        if new and is_sentinel_number(new.get("casenumber"), self.sentinel):
            self.signal_pending_update(new.get("modifiers"))
            await self.purge_control_rows()
            return

        if notification.kind is ChangeKind.DELETE:
            row_id = (old or {}).get("id")
            if not row_id:
                logger.warning("Dropping delete notification without id")
                return
            self.cache.remove(row_id)
            return

        if not new or not new.get("id"):
            logger.warning(f"Dropping {notification.kind.value} notification without id")
            return

        try:
            case = Case.model_validate(new)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed row {new.get('id')}: {e}")
            return
        self.cache.upsert(case)

    def signal_pending_update(self, modifiers: Optional[Iterable[str]]) -> None:
        notice = decode_pending_update(modifiers)
        try:
            self.on_pending_update(notice)
        except Exception as e:
            logger.error(f"Pending update listener failed: {e}")

    async def purge_control_rows(self) -> None:
        try:
            removed = await purge_retry(self.repository.purge_sentinel_rows)(self.sentinel)
        except TransientIOError as e:
            logger.error(f"Failed to purge update rows: {e}")
            return
        logger.info(f"Purged {removed} update rows")

    async def run(self, subscription: Subscription) -> None:
        """Consume ``subscription`` until it is closed."""
        logger.info(f"Reconciler listening on {subscription.name}")
        async for notification in subscription:
            try:
                await self.apply(notification)
                self.applied += 1
            except Exception as e:
                logger.exception(f"Failed to apply {notification.kind.value} notification: {e}")
            finally:
                subscription.ack()
        logger.info(f"Reconciler on {subscription.name} stopped")
