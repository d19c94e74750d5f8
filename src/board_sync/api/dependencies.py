"""Session holder shared by the routers and the application lifecycle."""

import logging
from typing import Optional

from fastapi import HTTPException, status

from board_sync.config import settings
from board_sync.core import BoardSession
from board_sync.infrastructure.database import db_client
from board_sync.infrastructure.persistence import (
    CaseRepository,
    InMemoryCaseRepository,
    SQLAlchemyCaseRepository,
)

logger = logging.getLogger(__name__)

# Global board session (one per process)
_session: Optional[BoardSession] = None


def build_repository() -> CaseRepository:
    """Repository implementation selected by ``settings.storage_type``.

    - inmemory (default): InMemoryCaseRepository for dev/testing
    - database: SQLAlchemyCaseRepository on settings.database_url
    """
    storage_type = settings.storage_type.lower()
    if storage_type == "database":
        return SQLAlchemyCaseRepository(db_client.async_session_maker)
    return InMemoryCaseRepository()


async def open_session() -> BoardSession:
    global _session
    if _session is None:
        _session = BoardSession.from_settings(build_repository(), settings)
        await _session.start()
    return _session


async def close_session() -> None:
    global _session
    if _session is not None:
        await _session.close()
        _session = None


async def get_board_session() -> BoardSession:
    """Dependency returning the running board session."""
    if _session is None or not _session.active:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Board session not started",
        )
    return _session


def current_session() -> Optional[BoardSession]:
    return _session
