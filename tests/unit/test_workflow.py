"""Unit tests for stage workflow resolution."""

import pytest

from board_sync.core.workflow import (
    case_rank,
    group_column,
    group_digital,
    group_metal,
    next_stage,
    previous_stage,
    priority_run,
    sort_for_display,
)
from board_sync.models import Department, Stage


@pytest.mark.unit
class TestBuckets:
    """Test department bucket grouping"""

    def test_digital_stages(self, make_case):
        default = make_case("1")
        qc = make_case("2", modifiers=["stage-qc"])
        odd = make_case("3", modifiers=["stage-polish"])
        done = make_case("4", modifiers=["stage-qc"], completed=True)
        metal = make_case("5", department=Department.METAL)

        groups = group_digital([default, qc, odd, done, metal])
        assert groups["design"] == [default]
        assert groups["qc"] == [qc]
        assert groups["production"] == []
        assert groups["other"] == [odd, done, metal]

    def test_metal_stages(self, make_case):
        dev = make_case("1", department=Department.METAL)
        fin = make_case("2", department=Department.METAL, modifiers=["stage2"])
        done = make_case("3", department=Department.METAL, completed=True)
        digital = make_case("4")

        groups = group_metal([dev, fin, done, digital])
        assert groups == {"development": [dev], "finishing": [fin], "other": [done, digital]}

    def test_every_case_in_exactly_one_bucket(self, make_case):
        cases = [
            make_case("1"),
            make_case("2", modifiers=["stage-production"]),
            make_case("3", department=Department.METAL, modifiers=["stage2"]),
            make_case("4", department=Department.CROWN_AND_BRIDGE),
            make_case("5", completed=True),
            make_case("6", modifiers=["stage-unknown"]),
        ]
        for grouping in group_column(cases).values():
            members = [c.id for bucket in grouping.values() for c in bucket]
            assert sorted(members) == sorted(c.id for c in cases)


@pytest.mark.unit
class TestPriorityRun:
    """Test the leading priority band"""

    def test_stops_at_first_non_priority(self, make_case):
        a = make_case("A", priority=True)
        b = make_case("B")
        c = make_case("C", priority=True)
        assert priority_run([a, b, c]) == [a.id]

    def test_completed_priority_breaks_run(self, make_case):
        a = make_case("A", priority=True, completed=True)
        b = make_case("B", priority=True)
        assert priority_run([a, b]) == []

    def test_empty(self):
        assert priority_run([]) == []


@pytest.mark.unit
class TestOrdering:
    """Test display ranking and stage navigation"""

    def test_rank_order(self, make_case):
        assert case_rank(make_case(priority=True, modifiers=["rush"])) == 0
        assert case_rank(make_case(modifiers=["rush"])) == 1
        assert case_rank(make_case()) == 2
        assert case_rank(make_case(department=Department.METAL, modifiers=["stage2"])) == 3
        assert case_rank(make_case(modifiers=["bbs"])) == 4
        assert case_rank(make_case(modifiers=["flex"])) == 5

    def test_sort_for_display(self, make_case):
        flex = make_case("flex", modifiers=["flex"])
        plain = make_case("plain")
        prio = make_case("prio", priority=True)
        assert sort_for_display([flex, plain, prio]) == [prio, plain, flex]

    def test_stage_navigation(self):
        assert next_stage(Stage.DESIGN) is Stage.PRODUCTION
        assert next_stage(Stage.QC) is None
        assert previous_stage(Stage.DESIGN) is None
        assert previous_stage(Stage.QC) is Stage.FINISHING

    def test_bare_stage_word_defaults_to_design(self, make_case):
        case = make_case("1", modifiers=["stage"])
        assert group_digital([case])["design"] == [case]
