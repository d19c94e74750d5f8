"""Audit trail text derived from case state transitions."""

from typing import List, Optional

from board_sync.core.tags import BBS, FLEX, HOLD, RUSH, STAGE2, has_flag
from board_sync.models.case import Case, Stage

AUDITED_FLAGS = (RUSH, HOLD, BBS, FLEX)

CASE_CREATED = "Case created"
CASE_CREATED_FOR_REPAIR = "Case created and sent directly to Finishing for repair"
CASE_ARCHIVED = "Case archived"
CASE_RESTORED = "Case restored from archive"
SENT_FOR_REPAIR = "Sent for repair - moved directly to Finishing stage"


def compute_audit(previous: Case, updated: Case) -> List[str]:
    """Describe what changed between two snapshots of the same case.

    Entries come out in a fixed order: stage 2, plain flags, priority, case
    number, department, due date. Stage and exclusion markers are not
    inspected; their call sites log them with :func:`stage_change_message`
    and :func:`exclusion_message`.
    """
    entries: List[str] = []
    prev_tags, next_tags = previous.modifiers, updated.modifiers

    was, now = has_flag(prev_tags, STAGE2), has_flag(next_tags, STAGE2)
    if was != now:
        entries.append("Moved to Stage 2" if now else "Moved back to Stage 1")

    for flag in AUDITED_FLAGS:
        was, now = has_flag(prev_tags, flag), has_flag(next_tags, flag)
        if was != now:
            entries.append(f"{flag} added" if now else f"{flag} removed")

    if previous.priority != updated.priority:
        entries.append("Priority added" if updated.priority else "Priority removed")

    if previous.case_number != updated.case_number:
        entries.append(
            f"Case # changed from {previous.case_number} to {updated.case_number}"
        )

    if previous.department != updated.department:
        entries.append(
            f"Department changed from {previous.department.value} "
            f"to {updated.department.value}"
        )

    if previous.due != updated.due:
        entries.append(
            f"Due changed from {previous.due.isoformat()} to {updated.due.isoformat()}"
        )

    return entries


def completion_message(completed: bool) -> str:
    return "Marked done" if completed else "Undo done"


def stage_change_message(
    current: Optional[Stage], new: Stage, is_repair: bool = False
) -> str:
    if is_repair:
        return SENT_FOR_REPAIR
    if current is not None:
        return f"Moved from {current.display_name} to {new.display_name} stage"
    return f"Moved to {new.display_name} stage"


def exclusion_message(excluded: bool, stage: Optional[str] = None) -> str:
    verb = "Excluded from" if excluded else "Included in"
    if stage:
        return f"{verb} {stage} stage statistics"
    return f"{verb} all statistics"
