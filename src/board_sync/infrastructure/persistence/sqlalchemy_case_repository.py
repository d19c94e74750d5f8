"""SQLAlchemy case repository for production use."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from board_sync.exceptions import TransientIOError
from board_sync.infrastructure.database.models import ActiveDeviceDB, CaseDB, CaseHistoryDB
from board_sync.infrastructure.persistence.case_repository import CaseRepository
from board_sync.infrastructure.realtime import ChangeFeed
from board_sync.models.case import (
    ActiveDevice,
    Case,
    CaseHistoryEntry,
    ChangeKind,
)

logger = logging.getLogger(__name__)


def _case_from_row(row: CaseDB) -> Case:
    return Case(
        id=row.id,
        casenumber=row.casenumber,
        department=row.department,
        due=row.due,
        priority=row.priority,
        completed=row.completed,
        archived=row.archived,
        archived_at=row.archived_at,
        modifiers=list(row.modifiers or []),
        created_at=row.created_at,
    )


class SQLAlchemyCaseRepository(CaseRepository):
    """
    Case repository backed by an async SQLAlchemy engine.

    Opens one session per operation; each write commits before its change
    notification is published.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        feed: Optional[ChangeFeed] = None,
    ):
        """
        Initialize repository with a session factory.

        Args:
            session_maker: SQLAlchemy async session factory
            feed: Change feed to publish committed writes to
        """
        super().__init__(feed)
        self.session_maker = session_maker

    def _session(self) -> AsyncSession:
        return self.session_maker()

    async def save(self, case: Case) -> Case:
        """Upsert case row."""
        record = case.to_record()
        try:
            async with self._session() as session:
                row = await session.get(CaseDB, case.id)
                kind = ChangeKind.UPDATE if row is not None else ChangeKind.INSERT
                if row is None:
                    row = CaseDB(**record)
                    session.add(row)
                else:
                    for key, value in record.items():
                        if key != "id":
                            setattr(row, key, value)
                await session.commit()
                saved = _case_from_row(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save case {case.id}: {e}")
            raise TransientIOError(f"Failed to save case {case.id}") from e

        self._publish(kind, new=saved)
        return saved

    async def get(self, case_id: str) -> Optional[Case]:
        try:
            async with self._session() as session:
                row = await session.get(CaseDB, case_id)
                return _case_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to load case {case_id}") from e

    async def list(
        self,
        archived: Optional[bool] = False,
        completed: Optional[bool] = None,
    ) -> List[Case]:
        stmt = select(CaseDB)
        if archived is not None:
            stmt = stmt.where(CaseDB.archived == archived)
        if completed is not None:
            stmt = stmt.where(CaseDB.completed == completed)
        stmt = stmt.order_by(CaseDB.due)

        try:
            async with self._session() as session:
                result = await session.execute(stmt)
                return [_case_from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise TransientIOError("Failed to list cases") from e

    async def delete(self, case_id: str) -> bool:
        try:
            async with self._session() as session:
                row = await session.get(CaseDB, case_id)
                if row is None:
                    return False
                old = _case_from_row(row)
                await session.delete(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete case {case_id}: {e}")
            raise TransientIOError(f"Failed to delete case {case_id}") from e

        self._publish(ChangeKind.DELETE, old=old)
        return True

    async def purge_sentinel_rows(self, sentinel: str) -> int:
        normalized = sentinel.strip().lower()
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(CaseDB).where(
                        func.lower(func.trim(CaseDB.casenumber)) == normalized
                    )
                )
                rows = result.scalars().all()
                removed = [_case_from_row(row) for row in rows]
                if removed:
                    await session.execute(
                        delete(CaseDB).where(CaseDB.id.in_([c.id for c in removed]))
                    )
                    await session.commit()
        except SQLAlchemyError as e:
            raise TransientIOError("Failed to purge update rows") from e

        for case in removed:
            self._publish(ChangeKind.DELETE, old=case)
        return len(removed)

    async def add_history(self, entry: CaseHistoryEntry) -> CaseHistoryEntry:
        try:
            async with self._session() as session:
                session.add(CaseHistoryDB(**entry.model_dump()))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to log case action for {entry.case_id}: {e}")
            raise TransientIOError(f"Failed to log action for case {entry.case_id}") from e
        return entry

    async def list_history(
        self,
        case_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CaseHistoryEntry]:
        stmt = select(CaseHistoryDB).order_by(CaseHistoryDB.created_at.desc())
        if case_id is not None:
            stmt = stmt.where(CaseHistoryDB.case_id == case_id)
        if limit:
            stmt = stmt.limit(limit)

        try:
            async with self._session() as session:
                result = await session.execute(stmt)
                return [
                    CaseHistoryEntry.model_validate(row)
                    for row in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            raise TransientIOError("Failed to load case history") from e

    async def upsert_device(self, device: ActiveDevice) -> ActiveDevice:
        try:
            async with self._session() as session:
                await session.merge(ActiveDeviceDB(**device.model_dump()))
                await session.commit()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to report presence for {device.user_name}") from e
        return device

    async def list_devices(self, since: Optional[datetime] = None) -> List[ActiveDevice]:
        stmt = select(ActiveDeviceDB).order_by(ActiveDeviceDB.last_seen.desc())
        if since is not None:
            stmt = stmt.where(ActiveDeviceDB.last_seen >= since)

        try:
            async with self._session() as session:
                result = await session.execute(stmt)
                return [ActiveDevice.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise TransientIOError("Failed to load active devices") from e
