"""Case Repository for board persistence.

This module provides the repository pattern for case, audit history and
presence records. Every committed case write is published to the change feed
so connected sessions can reconcile their caches.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from board_sync.infrastructure.realtime import ChangeFeed
from board_sync.models.case import (
    ActiveDevice,
    Case,
    CaseHistoryEntry,
    ChangeKind,
    ChangeNotification,
)


def is_sentinel_number(case_number: Optional[str], sentinel: str) -> bool:
    """True if ``case_number`` marks a pending-update control row."""
    if not isinstance(case_number, str):
        return False
    return case_number.strip().lower() == sentinel.strip().lower()


# ============================================================
# Repository Interface
# ============================================================

class CaseRepository(ABC):
    """
    Abstract repository interface for board persistence.

    Implementations:
    - SQLAlchemyCaseRepository: Production database
    - InMemoryCaseRepository: Testing and development
    """

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed or ChangeFeed()

    def _publish(self, kind: ChangeKind, new: Optional[Case] = None, old: Optional[Case] = None) -> None:
        self.feed.publish(
            ChangeNotification(
                kind=kind,
                new=new.to_record() if new is not None else None,
                old=old.to_record() if old is not None else None,
            )
        )

    @abstractmethod
    async def save(self, case: Case) -> Case:
        """
        Insert or replace a case by id.

        Args:
            case: Case domain object

        Returns:
            Saved case as persisted

        Raises:
            TransientIOError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, case_id: str) -> Optional[Case]:
        """
        Retrieve case by ID.

        Args:
            case_id: Case identifier

        Returns:
            Case if found, None otherwise

        Raises:
            TransientIOError: If retrieval fails
        """
        pass

    @abstractmethod
    async def list(
        self,
        archived: Optional[bool] = False,
        completed: Optional[bool] = None,
    ) -> List[Case]:
        """
        List cases ordered by due date.

        Args:
            archived: Filter on the archived flag (None for both)
            completed: Filter on the completed flag (None for both)

        Returns:
            Matching cases

        Raises:
            TransientIOError: If the query fails
        """
        pass

    @abstractmethod
    async def delete(self, case_id: str) -> bool:
        """
        Delete case by ID.

        Returns:
            True if deleted, False if not found

        Raises:
            TransientIOError: If deletion fails
        """
        pass

    @abstractmethod
    async def purge_sentinel_rows(self, sentinel: str) -> int:
        """
        Delete every row whose case number normalizes to ``sentinel``.

        Returns:
            Number of rows deleted

        Raises:
            TransientIOError: If deletion fails
        """
        pass

    @abstractmethod
    async def add_history(self, entry: CaseHistoryEntry) -> CaseHistoryEntry:
        """Append an audit entry. History is insert-only."""
        pass

    @abstractmethod
    async def list_history(
        self,
        case_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CaseHistoryEntry]:
        """Audit entries, newest first, optionally for one case."""
        pass

    @abstractmethod
    async def upsert_device(self, device: ActiveDevice) -> ActiveDevice:
        """Insert or replace the presence record keyed on user name."""
        pass

    @abstractmethod
    async def list_devices(self, since: Optional[datetime] = None) -> List[ActiveDevice]:
        """Presence records, most recently seen first."""
        pass


# ============================================================
# In-Memory Implementation (for Testing)
# ============================================================

class InMemoryCaseRepository(CaseRepository):
    """
    In-memory repository for testing and development.

    Data stored in dictionaries, not persistent across restarts.
    """

    def __init__(self, feed: Optional[ChangeFeed] = None):
        super().__init__(feed)
        self._cases: Dict[str, Case] = {}
        self._history: List[CaseHistoryEntry] = []
        self._devices: Dict[str, ActiveDevice] = {}

    async def save(self, case: Case) -> Case:
        """Save case to memory."""
        existing = self._cases.get(case.id)
        stored = case.model_copy(deep=True)
        self._cases[case.id] = stored
        self._publish(ChangeKind.UPDATE if existing else ChangeKind.INSERT, new=stored)
        return stored.model_copy(deep=True)

    async def get(self, case_id: str) -> Optional[Case]:
        """Get case from memory."""
        case = self._cases.get(case_id)
        return case.model_copy(deep=True) if case else None

    async def list(
        self,
        archived: Optional[bool] = False,
        completed: Optional[bool] = None,
    ) -> List[Case]:
        """List cases with filters."""
        filtered = list(self._cases.values())

        if archived is not None:
            filtered = [c for c in filtered if c.archived == archived]

        if completed is not None:
            filtered = [c for c in filtered if c.completed == completed]

        filtered.sort(key=lambda c: c.due)
        return [c.model_copy(deep=True) for c in filtered]

    async def delete(self, case_id: str) -> bool:
        """Delete case from memory."""
        existing = self._cases.pop(case_id, None)
        if existing is None:
            return False
        self._publish(ChangeKind.DELETE, old=existing)
        return True

    async def purge_sentinel_rows(self, sentinel: str) -> int:
        """Delete control rows from memory."""
        to_delete = [
            case_id
            for case_id, case in self._cases.items()
            if is_sentinel_number(case.case_number, sentinel)
        ]
        for case_id in to_delete:
            await self.delete(case_id)
        return len(to_delete)

    async def add_history(self, entry: CaseHistoryEntry) -> CaseHistoryEntry:
        self._history.append(entry)
        return entry

    async def list_history(
        self,
        case_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CaseHistoryEntry]:
        # Stable sort keeps insertion order for equal timestamps
        entries = sorted(
            enumerate(self._history),
            key=lambda pair: (pair[1].created_at, pair[0]),
            reverse=True,
        )
        result = [e for _, e in entries if case_id is None or e.case_id == case_id]
        return result[:limit] if limit else result

    async def upsert_device(self, device: ActiveDevice) -> ActiveDevice:
        self._devices[device.user_name] = device
        return device

    async def list_devices(self, since: Optional[datetime] = None) -> List[ActiveDevice]:
        devices = [
            d for d in self._devices.values() if since is None or d.last_seen >= since
        ]
        devices.sort(key=lambda d: d.last_seen, reverse=True)
        return devices

    def clear(self):
        """Clear all records (testing utility)."""
        self._cases.clear()
        self._history.clear()
        self._devices.clear()
