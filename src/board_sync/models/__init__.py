"""Models package."""

from .case import (
    ActiveDevice,
    Case,
    CaseHistoryEntry,
    ChangeKind,
    ChangeNotification,
    ConflictAdvisory,
    Department,
    PendingUpdateNotice,
    Stage,
    UpdatePriority,
)
from .commands import (
    BatchResult,
    Command,
    CommandResult,
)

__all__ = [
    "ActiveDevice",
    "Case",
    "CaseHistoryEntry",
    "ChangeKind",
    "ChangeNotification",
    "ConflictAdvisory",
    "Department",
    "PendingUpdateNotice",
    "Stage",
    "UpdatePriority",
    "BatchResult",
    "Command",
    "CommandResult",
]
