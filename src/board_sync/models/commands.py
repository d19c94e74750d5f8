"""Command envelope and payload models."""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from board_sync.models.case import Case, Department, Stage


class Command(BaseModel):
    """A named intent and its raw payload."""

    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class CommandResult(BaseModel):
    """Outcome of one dispatched command inside a batch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    command: Command
    success: bool
    value: Any = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    """Outcome of a batch dispatch.

    ``results`` holds one entry per executed command. When the batch aborts,
    the failing command is not in ``results``; its error is in ``error``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    results: List[CommandResult] = Field(default_factory=list)
    error: Optional[Exception] = None
    failed_command: Optional[Command] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and all(r.success for r in self.results)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CaseIdPayload(_Payload):
    id: str = Field(min_length=1)


class CaseIdsPayload(_Payload):
    ids: List[str] = Field(min_length=1)


class _DepartmentField(_Payload):
    @field_validator("department", mode="before", check_fields=False)
    @classmethod
    def _department(cls, value: Any) -> Any:
        if value is None:
            return value
        return Department.parse(value)


class CreateCasePayload(_DepartmentField):
    case_number: str = Field(alias="caseNumber", min_length=1)
    department: Department
    due: date
    priority: bool = False
    rush: bool = False
    hold: bool = False
    case_type: str = Field(default="general", alias="caseType", pattern="^(general|bbs|flex)$")
    needs_repair: bool = Field(default=False, alias="needsRepair")

    @field_validator("case_number")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("case number must not be blank")
        return value.strip()


class UpdateCasePayload(_DepartmentField):
    id: str = Field(min_length=1)
    case_number: Optional[str] = Field(default=None, alias="caseNumber")
    department: Optional[Department] = None
    due: Optional[date] = None
    priority: Optional[bool] = None
    rush: Optional[bool] = None
    hold: Optional[bool] = None
    case_type: Optional[str] = Field(default=None, alias="caseType", pattern="^(general|bbs|flex)$")
    modifiers: Optional[List[str]] = None


class ChangeStagePayload(_Payload):
    id: str = Field(min_length=1)
    stage: Stage
    is_repair: bool = Field(default=False, alias="isRepair")


class ToggleExclusionPayload(_Payload):
    id: str = Field(min_length=1)
    stage: Optional[str] = None
    reason: Optional[str] = None


class BatchExclusionPayload(_Payload):
    ids: List[str] = Field(min_length=1)
    exclude: bool
    stage: Optional[str] = None
    reason: Optional[str] = None


class SearchCasesPayload(_DepartmentField):
    case_number: Optional[str] = Field(default=None, alias="caseNumber")
    department: Optional[Department] = None
    status: Optional[str] = Field(default=None, pattern="^(active|completed|overdue|on_hold)$")
    as_of: Optional[date] = None


class DepartmentFilterPayload(_DepartmentField):
    department: Optional[Department] = None
    as_of: Optional[date] = None


class CasesByDatePayload(_DepartmentField):
    due: date = Field(alias="date")
    department: Optional[Department] = None


class CheckDuplicatesPayload(_Payload):
    case_number: str = Field(alias="caseNumber", min_length=1)
    exclude_id: Optional[str] = Field(default=None, alias="excludeId")


class HistoryPayload(_Payload):
    case_id: Optional[str] = Field(default=None, alias="caseId")
    limit: int = Field(default=50, ge=1)


class SetNamePayload(_Payload):
    name: str = Field(min_length=1)


class EmptyPayload(_Payload):
    pass


class ExclusionOutcome(BaseModel):
    case_id: str
    is_excluded: bool


class BatchExclusionOutcome(BaseModel):
    case_id: str
    success: bool
    error: Optional[str] = None


class BoardColumn(BaseModel):
    """Read model of one due-date column."""

    due: date
    cases: List[Case]
    buckets: Dict[str, Dict[str, List[Case]]]
    priority_ids: List[str]
