"""Unit tests for case command and query handlers, driven through a live session."""

from datetime import date

import pytest

from board_sync.exceptions import NotFoundError, ValidationError
from board_sync.models import Command, Department, Stage


async def _run(session, name, **payload):
    return await session.dispatch(Command(name=name, payload=payload))


async def _history(session, case_id):
    entries = await _run(session, "query.get_history", caseId=case_id)
    return [e.action for e in entries]


async def _create(session, number="1234", department="Digital", **extra):
    return await _run(
        session,
        "case.create",
        caseNumber=number,
        department=department,
        due="2024-01-01",
        **extra,
    )


@pytest.mark.unit
class TestCreate:
    """Test case.create"""

    async def test_create_digital(self, session):
        """Happy path: a new Digital case starts in design"""
        case = await _create(session, rush=True)
        assert case.department is Department.GENERAL
        assert case.stage is Stage.DESIGN
        assert case.rush
        assert session.cache.get(case.id) == case
        assert await _history(session, case.id) == ["Case created"]

    async def test_create_for_repair(self, session):
        case = await _create(session, needsRepair=True)
        assert case.stage is Stage.FINISHING
        assert await _history(session, case.id) == [
            "Case created and sent directly to Finishing for repair"
        ]

    async def test_metal_has_no_stage(self, session):
        case = await _create(session, department="Metal", caseType="bbs")
        assert case.stage is None
        assert case.case_type == "bbs"

    async def test_blank_number_rejected(self, session):
        with pytest.raises(ValidationError):
            await _create(session, number="   ")

    async def test_history_records_actor(self, session):
        case = await _create(session)
        entries = await _run(session, "query.get_history", caseId=case.id)
        assert entries[0].user_name == "Dana"


@pytest.mark.unit
class TestToggles:
    """Test flag and status toggles"""

    async def test_toggle_rush_twice(self, session):
        case = await _create(session)
        await _run(session, "case.toggle_rush", id=case.id)
        final = await _run(session, "case.toggle_rush", id=case.id)

        assert final.modifiers == case.modifiers
        assert await _history(session, case.id) == [
            "rush removed",
            "rush added",
            "Case created",
        ]

    async def test_toggle_priority_and_hold(self, session):
        case = await _create(session)
        await _run(session, "case.toggle_priority", id=case.id)
        updated = await _run(session, "case.toggle_hold", id=case.id)
        assert updated.priority and updated.hold
        assert (await _history(session, case.id))[:2] == ["hold added", "Priority added"]

    async def test_toggle_complete(self, session):
        case = await _create(session)
        done = await _run(session, "case.toggle_complete", id=case.id)
        undone = await _run(session, "case.toggle_complete", id=case.id)
        assert done.completed and not undone.completed
        assert (await _history(session, case.id))[:2] == ["Undo done", "Marked done"]

    async def test_toggle_stage2(self, session):
        case = await _create(session, department="Metal")
        updated = await _run(session, "case.toggle_stage2", id=case.id)
        assert updated.stage2
        assert (await _history(session, case.id))[0] == "Moved to Stage 2"

    async def test_unknown_case(self, session):
        with pytest.raises(NotFoundError):
            await _run(session, "case.toggle_rush", id="missing")

    async def test_batch_sees_earlier_effects(self, session):
        case = await _create(session)
        batch = await session.dispatch_batch(
            [
                Command(name="case.toggle_rush", payload={"id": case.id}),
                Command(name="case.toggle_hold", payload={"id": case.id}),
            ]
        )
        assert batch.succeeded
        final = batch.results[-1].value
        assert final.rush and final.hold


@pytest.mark.unit
class TestUpdateAndDelete:
    """Test case.update and case.delete"""

    async def test_update_fields(self, session):
        case = await _create(session, hold=True)
        updated = await _run(
            session,
            "case.update",
            id=case.id,
            caseNumber="1234 redo",
            due="2024-01-03",
            rush=True,
        )
        assert updated.case_number == "1234 redo"
        assert updated.due == date(2024, 1, 3)
        assert updated.rush and updated.hold
        assert updated.stage is Stage.DESIGN
        # Newest first
        assert await _history(session, case.id) == [
            "Due changed from 2024-01-01 to 2024-01-03",
            "Case # changed from 1234 to 1234 redo",
            "rush added",
            "Case created",
        ]

    async def test_update_modifiers_override(self, session):
        case = await _create(session)
        updated = await _run(session, "case.update", id=case.id, modifiers=["flex", "flex"])
        assert updated.modifiers == ["flex"]

    async def test_update_missing_case(self, session):
        with pytest.raises(NotFoundError):
            await _run(session, "case.update", id="missing", priority=True)

    async def test_delete(self, session):
        case = await _create(session)
        await _run(session, "case.delete", id=case.id)
        assert case.id not in session.cache
        with pytest.raises(NotFoundError):
            await _run(session, "case.delete", id=case.id)


@pytest.mark.unit
class TestStageAndExclusion:
    """Test stage changes and statistics exclusion"""

    async def test_change_stage(self, session):
        case = await _create(session)
        moved = await _run(session, "case.change_stage", id=case.id, stage="qc")
        assert moved.stage is Stage.QC
        assert [t for t in moved.modifiers if t.startswith("stage-")] == ["stage-qc"]
        assert (await _history(session, case.id))[0] == (
            "Moved from Design to Quality Control stage"
        )

    async def test_send_for_repair(self, session):
        case = await _create(session)
        await _run(session, "case.change_stage", id=case.id, stage="finishing", isRepair=True)
        assert (await _history(session, case.id))[0] == (
            "Sent for repair - moved directly to Finishing stage"
        )

    async def test_invalid_stage(self, session):
        case = await _create(session)
        with pytest.raises(ValidationError):
            await _run(session, "case.change_stage", id=case.id, stage="polish")

    async def test_toggle_exclusion(self, session):
        case = await _create(session)
        first = await _run(
            session, "case.toggle_stats_exclusion", id=case.id, stage="qc", reason="remake"
        )
        assert first.is_excluded
        excluded = session.cache.get(case.id)
        assert "stats-exclude:qc" in excluded.modifiers
        assert "stats-exclude-reason:remake" in excluded.modifiers

        second = await _run(session, "case.toggle_stats_exclusion", id=case.id, stage="qc")
        assert not second.is_excluded
        restored = session.cache.get(case.id)
        assert not [t for t in restored.modifiers if t.startswith("stats-exclude")]
        assert (await _history(session, case.id))[:2] == [
            "Included in qc stage statistics",
            "Excluded from qc stage statistics",
        ]

    async def test_batch_exclusion_reports_per_case(self, session):
        case = await _create(session)
        outcomes = await _run(
            session, "case.batch_toggle_exclusions", ids=[case.id, "missing"], exclude=True
        )
        assert [o.success for o in outcomes] == [True, False]
        assert session.cache.get(case.id).flags.is_excluded()


@pytest.mark.unit
class TestControlRows:
    """Test pending-update rows written through the command path"""

    async def test_created_control_row_never_cached(self, session):
        batch = await session.dispatch_batch(
            [
                Command(
                    name="case.create",
                    payload={"caseNumber": "update", "department": "Digital", "due": "2024-01-01"},
                ),
                Command(name="query.get_cases_by_date", payload={"date": "2024-01-01"}),
            ]
        )
        assert batch.succeeded
        control = batch.results[0].value
        assert control.id not in session.cache
        assert [c.case_number for c in batch.results[1].value] == []

    async def test_renamed_to_control_row_leaves_cache(self, session):
        case = await _create(session)
        await _run(session, "case.update", id=case.id, caseNumber=" Update ")
        assert case.id not in session.cache


@pytest.mark.unit
class TestArchive:
    """Test archive and restore"""

    async def test_archive_and_restore(self, session):
        a = await _create(session, "1")
        b = await _create(session, "2")
        archived = await _run(session, "case.archive", ids=[a.id, b.id])
        assert archived == [a.id, b.id]
        assert len(session.cache) == 0

        restored = await _run(session, "case.restore", id=a.id)
        assert not restored.archived and restored.archived_at is None
        assert a.id in session.cache
        assert (await _history(session, a.id))[:2] == [
            "Case restored from archive",
            "Case archived",
        ]

    async def test_archive_missing_writes_nothing(self, session):
        a = await _create(session, "1")
        with pytest.raises(NotFoundError):
            await _run(session, "case.archive", ids=[a.id, "missing"])
        assert a.id in session.cache


@pytest.mark.unit
class TestQueries:
    """Test query.* handlers"""

    async def test_check_duplicates(self, session):
        a = await _create(session, "1234")
        b = await _create(session, "1234 redo")
        await _create(session, "12345")
        advisory = await _run(session, "query.check_duplicates", caseNumber="1234")
        assert advisory.has_conflict
        assert {c.id for c in advisory.duplicates} == {a.id, b.id}

        excluded = await _run(
            session, "query.check_duplicates", caseNumber="1234", excludeId=a.id
        )
        assert [c.id for c in excluded.duplicates] == [b.id]

    async def test_search_and_filters(self, session):
        a = await _create(session, "100", hold=True)
        b = await _create(session, "200", department="Metal")
        await _run(session, "case.toggle_complete", id=b.id)

        found = await _run(session, "query.search_cases", caseNumber="10")
        assert [c.id for c in found] == [a.id]
        completed = await _run(session, "query.search_cases", status="completed")
        assert [c.id for c in completed] == [b.id]
        on_hold = await _run(session, "query.get_on_hold", department="Digital")
        assert [c.id for c in on_hold] == [a.id]
        overdue = await _run(session, "query.get_overdue", as_of="2024-02-01")
        assert [c.id for c in overdue] == [a.id]

    async def test_board_column(self, session):
        plain = await _create(session, "1")
        prio = await _create(session, "2", priority=True)
        column = await _run(session, "query.get_board_column", date="2024-01-01")
        assert [c.id for c in column.cases] == [prio.id, plain.id]
        assert column.priority_ids == [prio.id]
        assert len(column.buckets["Digital"]["design"]) == 2
        assert len(column.buckets["Metal"]["other"]) == 2

    async def test_get_case(self, session):
        case = await _create(session)
        assert await _run(session, "query.get_case", id=case.id) == case
        assert await _run(session, "query.get_case", id="missing") is None

    async def test_active_users(self, session):
        await session.heartbeat.report_active("test")
        devices = await _run(session, "query.get_active_users")
        assert [d.user_name for d in devices] == ["Dana"]
