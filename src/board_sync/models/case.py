"""Case data models for the board sync service."""

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Department(str, Enum):
    """Departments as stored. The board shows ``General`` as ``Digital``."""

    GENERAL = "General"
    METAL = "Metal"
    CROWN_AND_BRIDGE = "C&B"

    @classmethod
    def parse(cls, value: Any) -> "Department":
        """Resolve a stored value or the ``Digital`` display alias."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().lower() == "digital":
            return cls.GENERAL
        return cls(value)

    @property
    def display_name(self) -> str:
        return "Digital" if self is Department.GENERAL else self.value


class Stage(str, Enum):
    """Production stages of a Digital case."""

    DESIGN = "design"
    PRODUCTION = "production"
    FINISHING = "finishing"
    QC = "qc"

    @classmethod
    def values(cls) -> List[str]:
        return [s.value for s in cls]

    @property
    def display_name(self) -> str:
        return STAGE_DISPLAY_NAMES[self]


STAGE_DISPLAY_NAMES: Dict[Stage, str] = {
    Stage.DESIGN: "Design",
    Stage.PRODUCTION: "Production",
    Stage.FINISHING: "Finishing",
    Stage.QC: "Quality Control",
}

STAGE_ORDER: List[Stage] = [Stage.DESIGN, Stage.PRODUCTION, Stage.FINISHING, Stage.QC]


def new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def due_to_instant(due: date) -> datetime:
    """Persisted form of a due date: midnight UTC."""
    return datetime.combine(due, time(0, 0), tzinfo=timezone.utc)


def _to_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    return value


def _to_aware(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Case(BaseModel):
    """A fabrication case as mirrored on the board."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str = Field(default_factory=new_id)
    case_number: str = Field(alias="casenumber")
    department: Department
    due: date
    priority: bool = False
    completed: bool = False
    archived: bool = False
    archived_at: Optional[datetime] = None
    modifiers: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("case_number", mode="before")
    @classmethod
    def _strip_number(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("department", mode="before")
    @classmethod
    def _parse_department(cls, value: Any) -> Department:
        return Department.parse(value)

    @field_validator("due", mode="before")
    @classmethod
    def _truncate_due(cls, value: Any) -> Any:
        return _to_date(value)

    @field_validator("archived_at", "created_at", mode="before")
    @classmethod
    def _aware(cls, value: Any) -> Any:
        return _to_aware(value)

    @field_validator("modifiers", mode="before")
    @classmethod
    def _modifiers(cls, value: Any) -> Any:
        if value is None:
            return []
        # Tag lists never carry duplicates
        return list(dict.fromkeys(value))

    @property
    def flags(self):
        from board_sync.core.tags import ModifierSet

        return ModifierSet.from_tags(self.modifiers)

    @property
    def rush(self) -> bool:
        return self.flags.rush

    @property
    def hold(self) -> bool:
        return self.flags.hold

    @property
    def stage2(self) -> bool:
        return self.flags.stage2

    @property
    def stage(self) -> Optional[Stage]:
        return self.flags.stage

    @property
    def case_type(self) -> str:
        return self.flags.case_type

    def to_record(self) -> Dict[str, Any]:
        """Persisted row shape."""
        return {
            "id": self.id,
            "casenumber": self.case_number,
            "department": self.department.value,
            "due": due_to_instant(self.due),
            "priority": self.priority,
            "completed": self.completed,
            "archived": self.archived,
            "archived_at": self.archived_at,
            "modifiers": list(self.modifiers),
            "created_at": self.created_at,
        }


class CaseHistoryEntry(BaseModel):
    """Append-only audit trail entry."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(default_factory=new_id)
    case_id: str
    action: str
    user_name: str = ""
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", mode="before")
    @classmethod
    def _aware(cls, value: Any) -> Any:
        return _to_aware(value)


class ActiveDevice(BaseModel):
    """Presence record, keyed by actor name."""

    model_config = ConfigDict(from_attributes=True)

    user_name: str
    app_version: str
    last_seen: datetime = Field(default_factory=utc_now)

    @field_validator("last_seen", mode="before")
    @classmethod
    def _aware(cls, value: Any) -> Any:
        return _to_aware(value)


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeNotification(BaseModel):
    """One per-row change as delivered by the change feed.

    ``new`` is present for insert/update, ``old`` for delete. Rows are the raw
    persisted records, not :class:`Case` instances.
    """

    kind: ChangeKind
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None


class UpdatePriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    FORCE = "force"


class PendingUpdateNotice(BaseModel):
    """Decoded pending-update control message."""

    priority: UpdatePriority = UpdatePriority.NORMAL
    notes: str = ""

    @property
    def reload_required(self) -> bool:
        return self.priority is UpdatePriority.FORCE

    @property
    def critical(self) -> bool:
        return self.priority is UpdatePriority.HIGH


class ConflictAdvisory(BaseModel):
    """Duplicate case number finding. Informational only."""

    case_number: str
    duplicates: List[Case] = Field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.duplicates)
