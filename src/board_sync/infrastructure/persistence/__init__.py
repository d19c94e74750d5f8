"""Case persistence layer - Repository Pattern implementation."""

from board_sync.infrastructure.persistence.case_repository import (
    CaseRepository,
    InMemoryCaseRepository,
    is_sentinel_number,
)
from board_sync.infrastructure.persistence.sqlalchemy_case_repository import (
    SQLAlchemyCaseRepository,
)

__all__ = [
    "CaseRepository",
    "InMemoryCaseRepository",
    "SQLAlchemyCaseRepository",
    "is_sentinel_number",
]
