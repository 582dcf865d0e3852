"""Allocation ledger and hour bank reconciliation.

The ledger (Scenario.allocations) is authoritative. Bank allocated/remaining
hours and Teacher.allocated_hours are derived caches, rewritten together with
every change to the ledger. All functions return a new Scenario; the input is
never mutated.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from models.allocation import Allocation
from models.base import fmt_hours, new_id, utcnow
from models.scenario import Scenario
from planning.errors import AllocationRejected, ValidationFailed

logger = logging.getLogger(__name__)

DEFAULT_MAX_CELL_HOURS = 40
_EPS = 1e-9

MSG_NEGATIVE = "מספר השעות לא יכול להיות שלילי"
MSG_NO_BANK = "אין בנק שעות לסוג שעה זה בתרחיש"
MSG_UNKNOWN_TEACHER = "המורה לא נמצא בתרחיש"
MSG_UNKNOWN_CLASS = "הכיתה לא נמצאה בתרחיש"


def cell_key(hour_type_id: str, class_id: Optional[str] = None) -> str:
    """Error key of an editor cell: "hourTypeId" or "hourTypeId-classId"."""
    return f"{hour_type_id}-{class_id}" if class_id else hour_type_id


# ─── Aggregates ───────────────────────────────────────────────────────────────

def recompute_aggregates(scenario: Scenario) -> Scenario:
    """Rebuilds every bank and teacher counter from the ledger."""
    by_type = scenario.ledger_hours_by_type()
    by_teacher = scenario.ledger_hours_by_teacher()
    banks = [b.with_allocated(by_type.get(b.hour_type_id, 0)) for b in scenario.hour_banks]
    teachers = [
        t.model_copy(update={"allocated_hours": by_teacher.get(t.id, 0)})
        for t in scenario.teachers
    ]
    return scenario.model_copy(update={"hour_banks": banks, "teachers": teachers})


def _with_teacher_total(scenario: Scenario, teacher_id: str, allocations: list[Allocation]):
    total = sum(a.hours for a in allocations if a.teacher_id == teacher_id)
    return [
        t.model_copy(update={"allocated_hours": total}) if t.id == teacher_id else t
        for t in scenario.teachers
    ]


# ─── Replace a teacher's allocation set ──────────────────────────────────────

@dataclass
class HourTypeEntry:
    """One hour type row of an editing session."""

    general_hours: float = 0
    class_hours: dict[str, float] = field(default_factory=dict)

    @property
    def total(self) -> float:
        return self.general_hours + sum(self.class_hours.values())


def replace_teacher_allocations(
    scenario: Scenario,
    teacher_id: str,
    entries: Mapping[str, HourTypeEntry],
) -> Scenario:
    """Replaces all of a teacher's allocations with the given entries.

    1. The teacher's existing allocations are removed and their hours
       returned to the banks.
    2./3. Per hour type with a positive total: one general allocation (if the
       general part is > 0) plus one allocation per class with hours > 0; the
       bank is charged with the total.
    4. Teacher.allocated_hours is recomputed from the resulting ledger.
    """
    if scenario.get_teacher(teacher_id) is None:
        raise ValidationFailed({"teacherId": MSG_UNKNOWN_TEACHER})

    missing = {
        ht: MSG_NO_BANK for ht, entry in entries.items()
        if entry.total > 0 and scenario.get_bank(ht) is None
    }
    if missing:
        raise AllocationRejected(missing)

    banks = {b.hour_type_id: b for b in scenario.hour_banks}

    # 1. return previous hours
    kept: list[Allocation] = []
    for a in scenario.allocations:
        if a.teacher_id != teacher_id:
            kept.append(a)
        elif a.hour_type_id in banks:
            banks[a.hour_type_id] = banks[a.hour_type_id].shifted(-a.hours)

    # 2. + 3. build the new set
    now = utcnow()
    created: list[Allocation] = []
    for hour_type_id, entry in entries.items():
        if entry.total <= 0:
            continue
        before = len(created)
        if entry.general_hours > 0:
            created.append(Allocation(
                id=new_id(), teacher_id=teacher_id, hour_type_id=hour_type_id,
                hours=entry.general_hours, class_ids=[], created_at=now,
            ))
        for class_id, hours in entry.class_hours.items():
            if hours > 0:
                created.append(Allocation(
                    id=new_id(), teacher_id=teacher_id, hour_type_id=hour_type_id,
                    hours=hours, class_ids=[class_id], created_at=now,
                ))
        charged = sum(a.hours for a in created[before:])
        banks[hour_type_id] = banks[hour_type_id].shifted(charged)

    allocations = kept + created
    logger.info(
        f"Teacher {teacher_id}: {len(created)} allocations, "
        f"{fmt_hours(sum(a.hours for a in created))} hours"
    )
    return scenario.model_copy(update={
        "allocations": allocations,
        "hour_banks": [banks[b.hour_type_id] for b in scenario.hour_banks],
        "teachers": _with_teacher_total(scenario, teacher_id, allocations),
        "updated_at": now,
    })


# ─── Single-record operations ────────────────────────────────────────────────

def add_allocation(
    scenario: Scenario,
    teacher_id: str,
    hour_type_id: str,
    hours: float,
    class_ids: Optional[list[str]] = None,
    notes: str = "",
) -> tuple[Scenario, Allocation]:
    """Appends one allocation and charges its bank.

    Rejected when the bank or the teacher's max hours would be exceeded.
    """
    teacher = scenario.get_teacher(teacher_id)
    if teacher is None:
        raise ValidationFailed({"teacherId": MSG_UNKNOWN_TEACHER})
    class_ids = [c for c in (class_ids or []) if c]
    for cid in class_ids:
        if scenario.get_class(cid) is None:
            raise ValidationFailed({"classIds": f"{MSG_UNKNOWN_CLASS}: {cid}"})

    key = cell_key(hour_type_id, class_ids[0] if len(class_ids) == 1 else None)
    bank = scenario.get_bank(hour_type_id)
    if hours < 0:
        raise AllocationRejected({key: MSG_NEGATIVE})
    if bank is None:
        raise AllocationRejected({key: MSG_NO_BANK})
    if hours > bank.remaining_hours + _EPS:
        current = scenario.ledger_hours_by_type().get(hour_type_id, 0)
        raise AllocationRejected({key: _msg_unavailable(bank.remaining_hours, current)})
    teacher_total = scenario.ledger_hours_by_teacher().get(teacher_id, 0) + hours
    if teacher_total > teacher.max_hours + _EPS:
        raise AllocationRejected({key: _msg_over_max(teacher_total, teacher.max_hours)})

    allocation = Allocation(
        id=new_id(), teacher_id=teacher_id, hour_type_id=hour_type_id,
        hours=hours, class_ids=class_ids, created_at=utcnow(), notes=notes or "",
    )
    allocations = scenario.allocations + [allocation]
    updated = scenario.model_copy(update={
        "allocations": allocations,
        "hour_banks": [
            b.shifted(hours) if b.hour_type_id == hour_type_id else b
            for b in scenario.hour_banks
        ],
        "teachers": _with_teacher_total(scenario, teacher_id, allocations),
        "updated_at": utcnow(),
    })
    logger.info(f"Allocation added: {allocation.id} ({fmt_hours(hours)}h)")
    return updated, allocation


def remove_allocation(scenario: Scenario, allocation_id: str) -> Scenario:
    """Removes one allocation and returns its hours to the bank."""
    target = next((a for a in scenario.allocations if a.id == allocation_id), None)
    if target is None:
        raise ValidationFailed({"allocationId": f"הקצאה לא נמצאה: {allocation_id}"})

    allocations = [a for a in scenario.allocations if a.id != allocation_id]
    updated = scenario.model_copy(update={
        "allocations": allocations,
        "hour_banks": [
            b.shifted(-target.hours) if b.hour_type_id == target.hour_type_id else b
            for b in scenario.hour_banks
        ],
        "teachers": _with_teacher_total(scenario, target.teacher_id, allocations),
        "updated_at": utcnow(),
    })
    logger.info(f"Allocation removed: {allocation_id}")
    return updated


# ─── Editing session ─────────────────────────────────────────────────────────

def _msg_cell_limit(limit: float) -> str:
    return f"לא ניתן להקצות יותר מ-{fmt_hours(limit)} שעות לכיתה אחת"


def _msg_unavailable(available: float, current: float) -> str:
    return f"זמינות רק {fmt_hours(available)} שעות מסוג זה (כבר מוקצות {fmt_hours(current)})"


def _msg_over_max(total: float, max_hours: float) -> str:
    return f'סה"כ שעות למורה ({fmt_hours(total)}) עולה על המקסימום ({fmt_hours(max_hours)})'


class AllocationEditor:
    """Editing session for one teacher's allocations in one scenario.

    Every cell edit is validated immediately; the value is entered even when
    it is invalid, but save() is blocked while any error is set.
    """

    def __init__(
        self,
        scenario: Scenario,
        teacher_id: str,
        max_cell_hours: float = DEFAULT_MAX_CELL_HOURS,
    ) -> None:
        teacher = scenario.get_teacher(teacher_id)
        if teacher is None:
            raise ValidationFailed({"teacherId": MSG_UNKNOWN_TEACHER})
        self.scenario = scenario
        self.teacher = teacher
        self.max_cell_hours = max_cell_hours
        self.entries: dict[str, HourTypeEntry] = {}
        self.errors: dict[str, str] = {}
        self.session_hour_types: set[str] = set()
        self.session_classes: dict[str, set[str]] = {}
        self._prior_by_type: dict[str, float] = {}
        self._load()

    def _load(self) -> None:
        for a in self.scenario.teacher_allocations(self.teacher.id):
            entry = self.entries.setdefault(a.hour_type_id, HourTypeEntry())
            self._prior_by_type[a.hour_type_id] = (
                self._prior_by_type.get(a.hour_type_id, 0) + a.hours
            )
            if a.is_general:
                entry.general_hours += a.hours
            else:
                # multi-class allocations are split evenly across their classes
                share = a.hours / len(a.class_ids)
                for cid in a.class_ids:
                    entry.class_hours[cid] = entry.class_hours.get(cid, 0) + share

    # ── Rows ──

    def add_hour_type(self, hour_type_id: str) -> None:
        """Adds an (empty) row that stays visible even with zero hours."""
        if self.scenario.get_bank(hour_type_id) is None:
            raise ValidationFailed({hour_type_id: MSG_NO_BANK})
        self.entries.setdefault(hour_type_id, HourTypeEntry())
        self.session_hour_types.add(hour_type_id)

    def add_class(self, hour_type_id: str, class_id: str) -> None:
        if self.scenario.get_class(class_id) is None:
            raise ValidationFailed({cell_key(hour_type_id, class_id): MSG_UNKNOWN_CLASS})
        if hour_type_id not in self.entries:
            self.add_hour_type(hour_type_id)
        self.entries[hour_type_id].class_hours.setdefault(class_id, 0)
        self.session_classes.setdefault(hour_type_id, set()).add(class_id)

    def remove_hour_type(self, hour_type_id: str) -> None:
        """Drops a row; on save its hours go back to the bank."""
        self.entries.pop(hour_type_id, None)
        self.session_hour_types.discard(hour_type_id)
        self.session_classes.pop(hour_type_id, None)
        prefix = f"{hour_type_id}-"
        self.errors = {
            k: v for k, v in self.errors.items()
            if k != hour_type_id and not k.startswith(prefix)
        }

    def remove_class(self, hour_type_id: str, class_id: str) -> None:
        entry = self.entries.get(hour_type_id)
        if entry is not None:
            entry.class_hours.pop(class_id, None)
        self.session_classes.get(hour_type_id, set()).discard(class_id)
        self.errors.pop(cell_key(hour_type_id, class_id), None)

    def visible_hour_types(self) -> list[str]:
        """Rows with hours, plus rows added in this session."""
        return [
            ht for ht, e in self.entries.items()
            if e.total > 0 or ht in self.session_hour_types
        ]

    # ── Totals ──

    def type_total(self, hour_type_id: str) -> float:
        entry = self.entries.get(hour_type_id)
        return entry.total if entry else 0

    def teacher_total(self) -> float:
        return sum(e.total for e in self.entries.values())

    def available_hours(self, hour_type_id: str) -> float:
        """Bank remaining hours with this teacher's current allocations returned."""
        bank = self.scenario.get_bank(hour_type_id)
        if bank is None:
            return 0
        return bank.remaining_hours + self._prior_by_type.get(hour_type_id, 0)

    # ── Cells ──

    def validate_cell(
        self, hour_type_id: str, hours: float, class_id: Optional[str] = None
    ) -> Optional[str]:
        """Error message for entering hours into a cell, or None."""
        if hours < 0:
            return MSG_NEGATIVE
        if hours > self.max_cell_hours:
            return _msg_cell_limit(self.max_cell_hours)

        entry = self.entries.get(hour_type_id, HourTypeEntry())
        if class_id:
            class_sum = sum(h for c, h in entry.class_hours.items() if c != class_id)
            new_type_total = entry.general_hours + class_sum + hours
        else:
            new_type_total = hours + sum(entry.class_hours.values())

        current = entry.total
        available = self.available_hours(hour_type_id)
        if new_type_total > available + _EPS:
            return _msg_unavailable(available, current)

        new_teacher_total = self.teacher_total() - current + new_type_total
        if new_teacher_total > self.teacher.max_hours + _EPS:
            return _msg_over_max(new_teacher_total, self.teacher.max_hours)
        return None

    def _record(self, key: str, error: Optional[str]) -> Optional[str]:
        if error:
            self.errors[key] = error
        else:
            self.errors.pop(key, None)
        return error

    def set_general_hours(self, hour_type_id: str, hours: float) -> Optional[str]:
        """Enters the general (non-class) hours of an hour type."""
        error = self.validate_cell(hour_type_id, hours)
        entry = self.entries.setdefault(hour_type_id, HourTypeEntry())
        entry.general_hours = hours
        return self._record(cell_key(hour_type_id), error)

    def set_class_hours(self, hour_type_id: str, class_id: str, hours: float) -> Optional[str]:
        """Enters the hours of one class; zero drops the row unless session-added."""
        if self.scenario.get_class(class_id) is None:
            raise ValidationFailed({cell_key(hour_type_id, class_id): MSG_UNKNOWN_CLASS})
        error = self.validate_cell(hour_type_id, hours, class_id)
        entry = self.entries.setdefault(hour_type_id, HourTypeEntry())
        if hours > 0 or class_id in self.session_classes.get(hour_type_id, set()):
            entry.class_hours[class_id] = hours
        else:
            entry.class_hours.pop(class_id, None)
        return self._record(cell_key(hour_type_id, class_id), error)

    def clear(self) -> None:
        """Removes every row; saving then deletes all of the teacher's allocations."""
        for ht in list(self.entries):
            self.remove_hour_type(ht)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def save(self) -> Scenario:
        """Applies the session to the ledger and returns the new scenario."""
        if self.has_errors:
            raise AllocationRejected(self.errors)
        return replace_teacher_allocations(self.scenario, self.teacher.id, self.entries)
