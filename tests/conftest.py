"""Shared fixtures for board sync tests."""

from datetime import date, datetime, timedelta, timezone
from itertools import count

import pytest

from board_sync.core import BoardSession
from board_sync.infrastructure.persistence import InMemoryCaseRepository
from board_sync.models import Case, Department

_created = count()


@pytest.fixture
def make_case():
    """Factory for Case objects with sensible defaults."""

    def _make(case_number="1000", department=Department.GENERAL, due=date(2024, 1, 1), **kwargs):
        # Distinct creation times keep display ordering deterministic
        kwargs.setdefault(
            "created_at",
            datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=next(_created)),
        )
        return Case(case_number=case_number, department=department, due=due, **kwargs)

    return _make


@pytest.fixture
def repository():
    return InMemoryCaseRepository()


@pytest.fixture
async def session(repository):
    board = BoardSession(repository, actor_name="Dana", presence_interval=3600)
    await board.start()
    yield board
    await board.close()
