"""Case command and query handlers.

Mutation handlers follow one pattern: read the current case, compute the
next state through the tag codec, persist it, write it through to the local
cache, then append audit entries. The change notification for the write is
absorbed by the reconciler as a no-op replay.
"""

import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Iterable, List, Optional

from board_sync.core.audit import (
    CASE_ARCHIVED,
    CASE_CREATED,
    CASE_CREATED_FOR_REPAIR,
    CASE_RESTORED,
    completion_message,
    compute_audit,
    exclusion_message,
    stage_change_message,
)
from board_sync.core.cache import LocalCacheStore
from board_sync.core.dispatcher import CommandContext, CommandDispatcher
from board_sync.core.tags import (
    EXCLUDE_ALL,
    EXCLUSION_PREFIX,
    EXCLUSION_REASON_PREFIX,
    HOLD,
    RUSH,
    STAGE2,
    STAGE_PREFIX,
    ModifierSet,
    has_flag,
    set_namespaced,
    with_flag,
)
from board_sync.core.workflow import group_column, priority_run, sort_for_display
from board_sync.exceptions import NotFoundError, TransientIOError
from board_sync.infrastructure.persistence import CaseRepository, is_sentinel_number
from board_sync.models.case import (
    ActiveDevice,
    Case,
    CaseHistoryEntry,
    ConflictAdvisory,
    Department,
    Stage,
    utc_now,
)
from board_sync.models.commands import (
    BatchExclusionOutcome,
    BatchExclusionPayload,
    BoardColumn,
    CaseIdPayload,
    CaseIdsPayload,
    CasesByDatePayload,
    ChangeStagePayload,
    CheckDuplicatesPayload,
    CreateCasePayload,
    DepartmentFilterPayload,
    ExclusionOutcome,
    HistoryPayload,
    SearchCasesPayload,
    ToggleExclusionPayload,
    UpdateCasePayload,
)

logger = logging.getLogger(__name__)


def case_number_key(case_number: str) -> str:
    """Leading whitespace-delimited token, case-folded."""
    parts = case_number.strip().lower().split()
    return parts[0] if parts else ""


def find_duplicates(
    case_number: str, candidates: Iterable[Case], exclude_id: Optional[str] = None
) -> ConflictAdvisory:
    """Open cases whose number shares ``case_number``'s leading token."""
    key = case_number_key(case_number)
    duplicates = [
        c
        for c in candidates
        if c.id != exclude_id
        and not c.archived
        and not c.completed
        and case_number_key(c.case_number) == key
    ]
    return ConflictAdvisory(case_number=case_number, duplicates=duplicates)


def _filter_department(cases: List[Case], department: Optional[Department]) -> List[Case]:
    if department is None:
        return cases
    return [c for c in cases if c.department is department]


def _is_overdue(case: Case, today: date) -> bool:
    return not case.completed and case.due < today


class CaseCommandHandlers:
    """Handlers for ``case.*`` and ``query.*`` commands."""

    def __init__(
        self,
        repository: CaseRepository,
        cache: LocalCacheStore,
        active_window_seconds: float = 120.0,
        sentinel: str = "update",
    ):
        self.repository = repository
        self.cache = cache
        self.active_window_seconds = active_window_seconds
        self.sentinel = sentinel

    def register(self, dispatcher: CommandDispatcher) -> None:
        for name, handler, model in (
            ("case.create", self.create, CreateCasePayload),
            ("case.update", self.update, UpdateCasePayload),
            ("case.delete", self.delete, CaseIdPayload),
            ("case.toggle_priority", self.toggle_priority, CaseIdPayload),
            ("case.toggle_rush", self.toggle_rush, CaseIdPayload),
            ("case.toggle_hold", self.toggle_hold, CaseIdPayload),
            ("case.toggle_complete", self.toggle_complete, CaseIdPayload),
            ("case.toggle_stage2", self.toggle_stage2, CaseIdPayload),
            ("case.change_stage", self.change_stage, ChangeStagePayload),
            ("case.archive", self.archive, CaseIdsPayload),
            ("case.restore", self.restore, CaseIdPayload),
            ("case.toggle_stats_exclusion", self.toggle_stats_exclusion, ToggleExclusionPayload),
            ("case.batch_toggle_exclusions", self.batch_toggle_exclusions, BatchExclusionPayload),
            ("query.get_case", self.get_case, CaseIdPayload),
            ("query.search_cases", self.search_cases, SearchCasesPayload),
            ("query.get_overdue", self.get_overdue, DepartmentFilterPayload),
            ("query.get_on_hold", self.get_on_hold, DepartmentFilterPayload),
            ("query.get_cases_by_date", self.get_cases_by_date, CasesByDatePayload),
            ("query.get_board_column", self.get_board_column, CasesByDatePayload),
            ("query.check_duplicates", self.check_duplicates, CheckDuplicatesPayload),
            ("query.get_history", self.get_history, HistoryPayload),
            ("query.get_active_users", self.get_active_users, None),
        ):
            dispatcher.register(name, handler, model)

    # =========================================================================
    # Shared steps
    # =========================================================================

    @staticmethod
    def _current(case_id: str, ctx: CommandContext) -> Case:
        case = ctx.get_case(case_id)
        if case is None:
            raise NotFoundError(case_id)
        return case

    async def _load(self, case_id: str) -> Case:
        case = await self.repository.get(case_id)
        if case is None:
            raise NotFoundError(case_id)
        return case

    async def _persist(self, case: Case) -> Case:
        saved = await self.repository.save(case)
        # Control rows are left to the reconciler, which signals and purges them
        if is_sentinel_number(saved.case_number, self.sentinel):
            self.cache.remove(saved.id)
        else:
            self.cache.upsert(saved)
        return saved

    async def _log(self, case_id: str, actions: Iterable[str], ctx: CommandContext) -> None:
        actor = ctx.get_actor()
        for action in actions:
            await self.repository.add_history(
                CaseHistoryEntry(case_id=case_id, action=action, user_name=actor)
            )

    async def _apply(self, previous: Case, ctx: CommandContext, **changes) -> Case:
        """Persist ``previous`` with ``changes`` and log the generic audit diff."""
        saved = await self._persist(previous.model_copy(update=changes))
        await self._log(saved.id, compute_audit(previous, saved), ctx)
        return saved

    # =========================================================================
    # Case mutations
    # =========================================================================

    async def create(self, payload: CreateCasePayload, ctx: CommandContext) -> Case:
        is_digital = payload.department is Department.GENERAL
        repair = is_digital and payload.needs_repair
        stage = None
        if is_digital:
            stage = Stage.FINISHING if repair else Stage.DESIGN

        modifiers = ModifierSet(
            rush=payload.rush,
            hold=payload.hold,
            bbs=payload.case_type == "bbs",
            flex=payload.case_type == "flex",
            stage=stage,
        )
        case = Case(
            case_number=payload.case_number,
            department=payload.department,
            due=payload.due,
            priority=payload.priority,
            modifiers=list(modifiers.to_tags()),
        )

        advisory = find_duplicates(case.case_number, self.cache.all())
        if advisory.has_conflict:
            logger.warning(
                f"Case number {case.case_number} may duplicate "
                f"{[c.case_number for c in advisory.duplicates]}"
            )

        saved = await self._persist(case)
        await self._log(saved.id, [CASE_CREATED_FOR_REPAIR if repair else CASE_CREATED], ctx)
        logger.info(f"Created case {saved.id} ({saved.case_number})")
        return saved

    async def update(self, payload: UpdateCasePayload, ctx: CommandContext) -> Case:
        previous = await self._load(payload.id)

        if payload.modifiers is not None:
            modifiers = list(dict.fromkeys(payload.modifiers))
        else:
            flags = previous.flags
            case_type = payload.case_type or flags.case_type
            flags = replace(
                flags,
                rush=flags.rush if payload.rush is None else payload.rush,
                hold=flags.hold if payload.hold is None else payload.hold,
                bbs=case_type == "bbs",
                flex=case_type == "flex",
            )
            modifiers = list(flags.to_tags())

        changes = {"modifiers": modifiers}
        if payload.case_number is not None:
            changes["case_number"] = payload.case_number.strip()
        if payload.department is not None:
            changes["department"] = payload.department
        if payload.due is not None:
            changes["due"] = payload.due
        if payload.priority is not None:
            changes["priority"] = payload.priority

        saved = await self._apply(previous, ctx, **changes)
        logger.info(f"Updated case {saved.id}")
        return saved

    async def delete(self, payload: CaseIdPayload, ctx: CommandContext) -> None:
        if not await self.repository.delete(payload.id):
            raise NotFoundError(payload.id)
        self.cache.remove(payload.id)
        logger.info(f"Deleted case {payload.id}")

    async def toggle_priority(self, payload: CaseIdPayload, ctx: CommandContext) -> Case:
        case = self._current(payload.id, ctx)
        return await self._apply(case, ctx, priority=not case.priority)

    async def _toggle_flag(self, case_id: str, flag: str, ctx: CommandContext) -> Case:
        case = self._current(case_id, ctx)
        present = has_flag(case.modifiers, flag)
        return await self._apply(
            case, ctx, modifiers=list(with_flag(case.modifiers, flag, not present))
        )

    async def toggle_rush(self, payload: CaseIdPayload, ctx: CommandContext) -> Case:
        return await self._toggle_flag(payload.id, RUSH, ctx)

    async def toggle_hold(self, payload: CaseIdPayload, ctx: CommandContext) -> Case:
        return await self._toggle_flag(payload.id, HOLD, ctx)

    async def toggle_stage2(self, payload: CaseIdPayload, ctx: CommandContext) -> Case:
        return await self._toggle_flag(payload.id, STAGE2, ctx)

    async def toggle_complete(self, payload: CaseIdPayload, ctx: CommandContext) -> Case:
        case = self._current(payload.id, ctx)
        saved = await self._persist(case.model_copy(update={"completed": not case.completed}))
        await self._log(saved.id, [completion_message(saved.completed)], ctx)
        return saved

    async def change_stage(self, payload: ChangeStagePayload, ctx: CommandContext) -> Case:
        case = self._current(payload.id, ctx)
        current = case.stage
        tags = set_namespaced(case.modifiers, STAGE_PREFIX, payload.stage.value)
        saved = await self._persist(case.model_copy(update={"modifiers": list(tags)}))
        await self._log(
            saved.id,
            [stage_change_message(current, payload.stage, payload.is_repair)],
            ctx,
        )
        return saved

    async def archive(self, payload: CaseIdsPayload, ctx: CommandContext) -> List[str]:
        cases = [await self._load(case_id) for case_id in payload.ids]
        archived_at = utc_now()
        for case in cases:
            await self._persist(
                case.model_copy(update={"archived": True, "archived_at": archived_at})
            )
            await self._log(case.id, [CASE_ARCHIVED], ctx)
        logger.info(f"Archived {len(cases)} cases")
        return [c.id for c in cases]

    async def restore(self, payload: CaseIdPayload, ctx: CommandContext) -> Case:
        case = await self._load(payload.id)
        saved = await self._persist(
            case.model_copy(update={"archived": False, "archived_at": None})
        )
        await self._log(saved.id, [CASE_RESTORED], ctx)
        return saved

    @staticmethod
    def _with_exclusion(
        modifiers: Iterable[str], stage: Optional[str], reason: Optional[str]
    ) -> List[str]:
        tags = set_namespaced(modifiers, EXCLUSION_PREFIX, stage or EXCLUDE_ALL)
        return list(set_namespaced(tags, EXCLUSION_REASON_PREFIX, reason or None))

    @staticmethod
    def _without_exclusion(modifiers: Iterable[str]) -> List[str]:
        tags = set_namespaced(modifiers, EXCLUSION_PREFIX, None)
        return list(set_namespaced(tags, EXCLUSION_REASON_PREFIX, None))

    async def toggle_stats_exclusion(
        self, payload: ToggleExclusionPayload, ctx: CommandContext
    ) -> ExclusionOutcome:
        case = await self._load(payload.id)
        excluded = case.flags.is_excluded(payload.stage)

        if excluded:
            modifiers = self._without_exclusion(case.modifiers)
        else:
            modifiers = self._with_exclusion(case.modifiers, payload.stage, payload.reason)

        saved = await self._persist(case.model_copy(update={"modifiers": modifiers}))
        await self._log(saved.id, [exclusion_message(not excluded, payload.stage)], ctx)
        return ExclusionOutcome(case_id=saved.id, is_excluded=not excluded)

    async def batch_toggle_exclusions(
        self, payload: BatchExclusionPayload, ctx: CommandContext
    ) -> List[BatchExclusionOutcome]:
        outcomes: List[BatchExclusionOutcome] = []
        for case_id in payload.ids:
            try:
                case = await self._load(case_id)
                if payload.exclude:
                    modifiers = self._with_exclusion(case.modifiers, payload.stage, payload.reason)
                else:
                    modifiers = self._without_exclusion(case.modifiers)
                await self._persist(case.model_copy(update={"modifiers": modifiers}))
                await self._log(case_id, [exclusion_message(payload.exclude, payload.stage)], ctx)
            except (NotFoundError, TransientIOError) as e:
                logger.warning(f"Exclusion toggle failed for {case_id}: {e}")
                outcomes.append(BatchExclusionOutcome(case_id=case_id, success=False, error=str(e)))
                continue
            outcomes.append(BatchExclusionOutcome(case_id=case_id, success=True))
        return outcomes

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_case(self, payload: CaseIdPayload, ctx: CommandContext) -> Optional[Case]:
        return ctx.get_case(payload.id)

    async def search_cases(self, payload: SearchCasesPayload, ctx: CommandContext) -> List[Case]:
        results = _filter_department(self.cache.all(), payload.department)

        if payload.case_number:
            needle = payload.case_number.lower()
            results = [c for c in results if needle in c.case_number.lower()]

        today = payload.as_of or date.today()
        if payload.status == "active":
            results = [c for c in results if not c.completed]
        elif payload.status == "completed":
            results = [c for c in results if c.completed]
        elif payload.status == "overdue":
            results = [c for c in results if _is_overdue(c, today)]
        elif payload.status == "on_hold":
            results = [c for c in results if c.hold]
        return results

    async def get_overdue(self, payload: DepartmentFilterPayload, ctx: CommandContext) -> List[Case]:
        today = payload.as_of or date.today()
        cases = [c for c in self.cache.all() if _is_overdue(c, today)]
        return _filter_department(cases, payload.department)

    async def get_on_hold(self, payload: DepartmentFilterPayload, ctx: CommandContext) -> List[Case]:
        cases = [c for c in self.cache.all() if c.hold]
        return _filter_department(cases, payload.department)

    async def get_cases_by_date(self, payload: CasesByDatePayload, ctx: CommandContext) -> List[Case]:
        cases = [c for c in self.cache.all() if c.due == payload.due]
        return sort_for_display(_filter_department(cases, payload.department))

    async def get_board_column(self, payload: CasesByDatePayload, ctx: CommandContext) -> BoardColumn:
        cases = await self.get_cases_by_date(payload, ctx)
        return BoardColumn(
            due=payload.due,
            cases=cases,
            buckets=group_column(cases),
            priority_ids=priority_run(cases),
        )

    async def check_duplicates(
        self, payload: CheckDuplicatesPayload, ctx: CommandContext
    ) -> ConflictAdvisory:
        candidates = await self.repository.list(archived=False, completed=False)
        return find_duplicates(payload.case_number, candidates, payload.exclude_id)

    async def get_history(self, payload: HistoryPayload, ctx: CommandContext) -> List[CaseHistoryEntry]:
        return await self.repository.list_history(case_id=payload.case_id, limit=payload.limit)

    async def get_active_users(self, payload, ctx: CommandContext) -> List[ActiveDevice]:
        since = utc_now() - timedelta(seconds=self.active_window_seconds)
        return await self.repository.list_devices(since=since)
