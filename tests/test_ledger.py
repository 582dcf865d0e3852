"""Tests for the allocation ledger, bank reconciliation and the editor."""

import pytest

from models import Allocation, HourBank, Scenario, SchoolClass, Teacher
from planning.errors import AllocationRejected, ValidationFailed
from planning.ledger import (
    AllocationEditor,
    HourTypeEntry,
    add_allocation,
    cell_key,
    recompute_aggregates,
    remove_allocation,
    replace_teacher_allocations,
)

TEACHING = "ht-teaching"
COORD = "ht-coord"


def _scenario(bank_total: float = 10, max_hours: float = 5) -> Scenario:
    """HourType "שעות הוראה" with one bank and teacher "מורה א"."""
    return Scenario(
        id="s1",
        name="בדיקה",
        hour_banks=[
            HourBank(id="b1", hour_type_id=TEACHING, total_hours=bank_total,
                     remaining_hours=bank_total),
            HourBank(id="b2", hour_type_id=COORD, total_hours=20, remaining_hours=20),
        ],
        teachers=[
            Teacher(id="t1", name="מורה א", id_number="111111111", max_hours=max_hours),
            Teacher(id="t2", name="מורה ב", id_number="222222222", max_hours=30),
        ],
        classes=[
            SchoolClass(id="c1", name="א1", grade="א"),
            SchoolClass(id="c2", name="א2", grade="א"),
        ],
    )


def _assert_in_sync(scenario: Scenario) -> None:
    by_type = scenario.ledger_hours_by_type()
    for bank in scenario.hour_banks:
        assert bank.allocated_hours == pytest.approx(by_type.get(bank.hour_type_id, 0))
        assert bank.remaining_hours == pytest.approx(bank.total_hours - bank.allocated_hours)
    by_teacher = scenario.ledger_hours_by_teacher()
    for teacher in scenario.teachers:
        assert teacher.allocated_hours == pytest.approx(by_teacher.get(teacher.id, 0))


# ─── replace_teacher_allocations ─────────────────────────────────────────────

class TestReplaceTeacherAllocations:
    def test_creates_general_and_class_allocations(self):
        """One general allocation plus one per class with hours."""
        s = _scenario(max_hours=30)
        entries = {TEACHING: HourTypeEntry(general_hours=2, class_hours={"c1": 3, "c2": 0})}
        out = replace_teacher_allocations(s, "t1", entries)
        allocations = out.teacher_allocations("t1")
        assert len(allocations) == 2
        assert sorted(a.hours for a in allocations) == [2, 3]
        assert [a.class_ids for a in allocations if not a.is_general] == [["c1"]]
        _assert_in_sync(out)

    def test_input_not_mutated(self):
        s = _scenario()
        replace_teacher_allocations(s, "t1", {TEACHING: HourTypeEntry(general_hours=3)})
        assert s.allocations == []
        assert s.hour_banks[0].allocated_hours == 0

    def test_replacement_returns_prior_hours(self):
        """Saving again replaces rather than adds."""
        s = _scenario()
        s = replace_teacher_allocations(s, "t1", {TEACHING: HourTypeEntry(general_hours=3)})
        s = replace_teacher_allocations(s, "t1", {TEACHING: HourTypeEntry(general_hours=1)})
        assert s.get_bank(TEACHING).allocated_hours == 1
        assert s.get_bank(TEACHING).remaining_hours == 9
        _assert_in_sync(s)

    def test_other_teachers_untouched(self):
        s = _scenario(max_hours=30)
        s = replace_teacher_allocations(s, "t2", {COORD: HourTypeEntry(general_hours=4)})
        s = replace_teacher_allocations(s, "t1", {TEACHING: HourTypeEntry(general_hours=2)})
        s = replace_teacher_allocations(s, "t1", {})
        assert s.teacher_allocations("t1") == []
        assert len(s.teacher_allocations("t2")) == 1
        assert s.get_teacher("t2").allocated_hours == 4
        _assert_in_sync(s)

    def test_unknown_teacher(self):
        with pytest.raises(ValidationFailed):
            replace_teacher_allocations(_scenario(), "ghost", {})

    def test_missing_bank_rejected(self):
        with pytest.raises(AllocationRejected) as exc:
            replace_teacher_allocations(_scenario(), "t1", {"ht-none": HourTypeEntry(general_hours=1)})
        assert "ht-none" in exc.value.errors

    def test_zero_rows_skipped(self):
        out = replace_teacher_allocations(_scenario(), "t1", {TEACHING: HourTypeEntry()})
        assert out.allocations == []


class TestRecompute:
    def test_recompute_fixes_stale_counters(self):
        """Aggregates are rebuilt from the ledger alone."""
        s = _scenario(max_hours=30).model_copy(update={
            "allocations": [
                Allocation(id="a1", teacher_id="t1", hour_type_id=TEACHING, hours=4),
                Allocation(id="a2", teacher_id="t2", hour_type_id=TEACHING, hours=1, class_ids=["c1"]),
            ],
        })
        fixed = recompute_aggregates(s)
        assert fixed.get_bank(TEACHING).allocated_hours == 5
        assert fixed.get_bank(TEACHING).remaining_hours == 5
        assert fixed.get_bank(COORD).allocated_hours == 0
        _assert_in_sync(fixed)
        assert fixed.check_consistency().is_consistent


# ─── Single-record operations ────────────────────────────────────────────────

class TestSingleRecord:
    def test_add_allocation_charges_bank(self):
        s, allocation = add_allocation(_scenario(), "t1", TEACHING, 3, class_ids=["c1"])
        assert allocation.class_ids == ["c1"]
        assert s.get_bank(TEACHING).allocated_hours == 3
        assert s.get_teacher("t1").allocated_hours == 3
        _assert_in_sync(s)

    def test_add_over_bank_rejected(self):
        """Exceeding the bank total is rejected, not clamped."""
        s = _scenario(bank_total=2, max_hours=30)
        with pytest.raises(AllocationRejected):
            add_allocation(s, "t1", TEACHING, 3)

    def test_add_over_max_rejected(self):
        s, _ = add_allocation(_scenario(), "t1", TEACHING, 3)
        with pytest.raises(AllocationRejected) as exc:
            add_allocation(s, "t1", TEACHING, 3)
        assert TEACHING in exc.value.errors

    def test_add_unknown_class(self):
        with pytest.raises(ValidationFailed):
            add_allocation(_scenario(), "t1", TEACHING, 1, class_ids=["c9"])

    def test_add_negative_rejected(self):
        with pytest.raises(AllocationRejected):
            add_allocation(_scenario(), "t1", TEACHING, -1)

    def test_remove_allocation_returns_hours(self):
        s, allocation = add_allocation(_scenario(), "t1", TEACHING, 3)
        s = remove_allocation(s, allocation.id)
        assert s.allocations == []
        assert s.get_bank(TEACHING).remaining_hours == 10
        assert s.get_teacher("t1").allocated_hours == 0

    def test_remove_unknown(self):
        with pytest.raises(ValidationFailed):
            remove_allocation(_scenario(), "nope")


# ─── Editing session ─────────────────────────────────────────────────────────

class TestAllocationEditor:
    def test_concrete_max_hours_case(self):
        """Bank 10, max 5: 3 hours fit, 3 more are rejected (6 > 5)."""
        editor = AllocationEditor(_scenario(), "t1")
        assert editor.set_general_hours(TEACHING, 3) is None
        s = editor.save()
        bank = s.get_bank(TEACHING)
        assert bank.allocated_hours == 3
        assert bank.remaining_hours == 7
        assert s.get_teacher("t1").allocated_hours == 3

        editor = AllocationEditor(s, "t1")
        error = editor.set_general_hours(TEACHING, 6)
        assert error is not None
        assert editor.has_errors
        with pytest.raises(AllocationRejected):
            editor.save()

    def test_bank_limit(self):
        """The hour type total may not exceed the bank's remaining hours."""
        s = _scenario(bank_total=4, max_hours=30)
        s = replace_teacher_allocations(s, "t2", {TEACHING: HourTypeEntry(general_hours=3)})
        editor = AllocationEditor(s, "t1")
        assert editor.available_hours(TEACHING) == 1
        assert editor.set_class_hours(TEACHING, "c1", 2) is not None
        assert cell_key(TEACHING, "c1") in editor.errors

    def test_own_hours_count_as_available(self):
        """A teacher can re-enter hours already held."""
        s = _scenario(bank_total=4, max_hours=30)
        s = replace_teacher_allocations(s, "t1", {TEACHING: HourTypeEntry(general_hours=4)})
        editor = AllocationEditor(s, "t1")
        assert editor.available_hours(TEACHING) == 4
        assert editor.set_general_hours(TEACHING, 4) is None

    def test_cell_limit(self):
        editor = AllocationEditor(_scenario(bank_total=100, max_hours=60), "t1", max_cell_hours=40)
        assert editor.set_general_hours(TEACHING, 41) is not None

    def test_negative_cell(self):
        editor = AllocationEditor(_scenario(), "t1")
        assert editor.set_general_hours(TEACHING, -1) is not None

    def test_error_cleared_by_valid_value(self):
        editor = AllocationEditor(_scenario(), "t1")
        editor.set_general_hours(TEACHING, 9)
        assert editor.has_errors
        editor.set_general_hours(TEACHING, 2)
        assert not editor.has_errors

    def test_invalid_value_still_entered(self):
        editor = AllocationEditor(_scenario(), "t1")
        editor.set_general_hours(TEACHING, 9)
        assert editor.type_total(TEACHING) == 9

    def test_class_and_general_combined(self):
        editor = AllocationEditor(_scenario(max_hours=30), "t1")
        editor.set_general_hours(TEACHING, 2)
        editor.set_class_hours(TEACHING, "c1", 3)
        editor.set_class_hours(TEACHING, "c2", 1)
        assert editor.type_total(TEACHING) == 6
        s = editor.save()
        assert len(s.teacher_allocations("t1")) == 3
        _assert_in_sync(s)

    def test_session_rows_stay_visible(self):
        """Rows added in the session stay visible with zero hours."""
        editor = AllocationEditor(_scenario(), "t1")
        editor.add_hour_type(COORD)
        editor.add_class(COORD, "c1")
        assert COORD in editor.visible_hour_types()
        editor.set_class_hours(COORD, "c1", 0)
        assert "c1" in editor.entries[COORD].class_hours

    def test_zero_class_row_dropped(self):
        editor = AllocationEditor(_scenario(), "t1")
        editor.set_class_hours(TEACHING, "c1", 2)
        editor.set_class_hours(TEACHING, "c1", 0)
        assert "c1" not in editor.entries[TEACHING].class_hours

    def test_add_hour_type_without_bank(self):
        with pytest.raises(ValidationFailed):
            AllocationEditor(_scenario(), "t1").add_hour_type("ht-none")

    def test_legacy_multi_class_split(self):
        """A multi-class allocation loads split evenly across its classes."""
        s = _scenario(max_hours=30).model_copy(update={"allocations": [
            Allocation(id="a1", teacher_id="t1", hour_type_id=TEACHING, hours=4, class_ids=["c1", "c2"]),
        ]})
        s = recompute_aggregates(s)
        editor = AllocationEditor(s, "t1")
        assert editor.entries[TEACHING].class_hours == {"c1": 2, "c2": 2}
        saved = editor.save()
        assert sorted(a.class_ids[0] for a in saved.allocations) == ["c1", "c2"]
        assert saved.get_bank(TEACHING).allocated_hours == 4

    def test_remove_hour_type_returns_hours(self):
        s = replace_teacher_allocations(_scenario(), "t1", {TEACHING: HourTypeEntry(general_hours=3)})
        editor = AllocationEditor(s, "t1")
        editor.remove_hour_type(TEACHING)
        out = editor.save()
        assert out.get_bank(TEACHING).allocated_hours == 0
        assert out.get_teacher("t1").allocated_hours == 0

    def test_clear(self):
        s = replace_teacher_allocations(_scenario(max_hours=30), "t1", {
            TEACHING: HourTypeEntry(general_hours=3),
            COORD: HourTypeEntry(general_hours=2),
        })
        editor = AllocationEditor(s, "t1")
        editor.clear()
        assert editor.save().allocations == []

    def test_unknown_teacher(self):
        with pytest.raises(ValidationFailed):
            AllocationEditor(_scenario(), "ghost")
