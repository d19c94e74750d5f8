"""In-memory mirror of all non-archived cases."""

import logging
from typing import Dict, Iterable, Iterator, List, Optional

from board_sync.exceptions import NotFoundError
from board_sync.models.case import Case, Department

logger = logging.getLogger(__name__)


class LocalCacheStore:
    """Ordered mirror of server-held case records keyed by id.

    Replacing a row keeps its position; new rows are appended. Only the
    realtime reconciler and command handlers write here.
    """

    def __init__(self, cases: Optional[Iterable[Case]] = None):
        self._rows: Dict[str, Case] = {}
        self.version = 0
        if cases:
            self.replace_all(cases)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, case_id: object) -> bool:
        return case_id in self._rows

    def __iter__(self) -> Iterator[Case]:
        return iter(list(self._rows.values()))

    def get(self, case_id: str) -> Optional[Case]:
        return self._rows.get(case_id)

    def require(self, case_id: str) -> Case:
        case = self._rows.get(case_id)
        if case is None:
            raise NotFoundError(case_id)
        return case

    def all(self) -> List[Case]:
        return list(self._rows.values())

    def by_department(self, department: Optional[Department]) -> List[Case]:
        if department is None:
            return self.all()
        return [c for c in self._rows.values() if c.department is department]

    def upsert(self, case: Case) -> None:
        """Insert or replace by id. Archived rows are removed instead."""
        if case.archived:
            self.remove(case.id)
            return
        self._rows[case.id] = case
        self.version += 1

    def remove(self, case_id: str) -> bool:
        if self._rows.pop(case_id, None) is None:
            return False
        self.version += 1
        return True

    def replace_all(self, cases: Iterable[Case]) -> None:
        self._rows = {c.id: c for c in cases if not c.archived}
        self.version += 1
        logger.debug(f"Cache reloaded with {len(self._rows)} cases")
