"""Stage workflow resolution for board columns."""

from typing import Dict, Iterable, List, Optional, Sequence

from board_sync.core.tags import STAGE_PREFIX, get_namespaced
from board_sync.models.case import STAGE_ORDER, Case, Department, Stage

OTHER = "other"
DEVELOPMENT = "development"
FINISHING = "finishing"

DIGITAL_BUCKETS: List[str] = [s.value for s in STAGE_ORDER] + [OTHER]
METAL_BUCKETS: List[str] = [DEVELOPMENT, FINISHING, OTHER]


def digital_bucket(case: Case) -> str:
    """Bucket of a case on the Digital board."""
    if case.department is not Department.GENERAL or case.completed:
        return OTHER
    stage = get_namespaced(case.modifiers, STAGE_PREFIX)
    if stage is None:
        return Stage.DESIGN.value
    return stage if stage in Stage.values() else OTHER


def metal_bucket(case: Case) -> str:
    """Bucket of a case on the Metal board."""
    if case.department is not Department.METAL or case.completed:
        return OTHER
    return FINISHING if case.stage2 else DEVELOPMENT


def _group(cases: Iterable[Case], names: List[str], resolve) -> Dict[str, List[Case]]:
    groups: Dict[str, List[Case]] = {name: [] for name in names}
    for case in cases:
        groups[resolve(case)].append(case)
    return groups


def group_digital(cases: Iterable[Case]) -> Dict[str, List[Case]]:
    return _group(cases, DIGITAL_BUCKETS, digital_bucket)


def group_metal(cases: Iterable[Case]) -> Dict[str, List[Case]]:
    return _group(cases, METAL_BUCKETS, metal_bucket)


def group_column(cases: Sequence[Case]) -> Dict[str, Dict[str, List[Case]]]:
    """Group one column's cases for every department view.

    Each grouping covers every input case exactly once.
    """
    return {
        Department.GENERAL.display_name: group_digital(cases),
        Department.METAL.display_name: group_metal(cases),
    }


def priority_run(cases: Iterable[Case]) -> List[str]:
    """Ids of the leading contiguous run of open priority cases."""
    ids: List[str] = []
    for case in cases:
        if not case.priority or case.completed:
            break
        ids.append(case.id)
    return ids


def case_rank(case: Case) -> int:
    """Display rank, lower first: priority, rush, general, metal stage 2, bbs, flex."""
    if case.priority:
        return 0
    if case.rush:
        return 1
    if case.stage2 and case.department is Department.METAL:
        return 3
    case_type = case.case_type
    if case_type == "bbs":
        return 4
    if case_type == "flex":
        return 5
    return 2


def sort_for_display(cases: Iterable[Case]) -> List[Case]:
    return sorted(cases, key=lambda c: (case_rank(c), c.due, c.created_at))


def next_stage(current: Stage) -> Optional[Stage]:
    idx = STAGE_ORDER.index(current)
    return STAGE_ORDER[idx + 1] if idx < len(STAGE_ORDER) - 1 else None


def previous_stage(current: Stage) -> Optional[Stage]:
    idx = STAGE_ORDER.index(current)
    return STAGE_ORDER[idx - 1] if idx > 0 else None
