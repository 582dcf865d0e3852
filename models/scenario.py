"""Scenario: one complete allocation plan + consistency check (Pydantic v2)."""

from collections import Counter, defaultdict
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.allocation import Allocation
from models.base import CamelModel, fmt_hours
from models.hour_bank import HourBank
from models.hour_type import HourType
from models.school_class import SchoolClass
from models.teacher import Teacher

_EPS = 1e-9


class ConsistencyReport(BaseModel):
    """Result of the derived-value consistency check."""

    is_consistent: bool
    errors: list[str]      # derived totals out of sync with the ledger
    warnings: list[str]    # orphaned references, over-allocated teachers

    def print_rich(self) -> None:
        """Prints the report via Rich."""
        from rich.console import Console
        from rich.panel import Panel

        console = Console()
        if self.is_consistent:
            status = "[bold green]✓ תקין[/bold green]"
        else:
            status = "[bold red]✗ נמצאו סתירות[/bold red]"

        lines = [status]
        if self.errors:
            lines.append("\n[red bold]שגיאות:[/red bold]")
            for e in self.errors:
                lines.append(f"  [red]• {e}[/red]")
        if self.warnings:
            lines.append("\n[yellow bold]אזהרות:[/yellow bold]")
            for w in self.warnings:
                lines.append(f"  [yellow]• {w}[/yellow]")
        if not self.errors and not self.warnings:
            lines.append("[dim]לא נמצאו בעיות.[/dim]")

        console.print(Panel("\n".join(lines), title="בדיקת עקביות", border_style="cyan"))


class Scenario(CamelModel):
    """One plan: its own hour banks, teachers, classes and allocations.

    Child collections are embedded; the whole document is the unit of
    persistence.
    """

    id: str
    name: str
    description: str = ""
    is_active: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    hour_banks: list[HourBank] = Field(default_factory=list)
    teachers: list[Teacher] = Field(default_factory=list)
    classes: list[SchoolClass] = Field(default_factory=list)
    allocations: list[Allocation] = Field(default_factory=list)

    @field_validator("hour_banks", "teachers", "classes", "allocations", mode="before")
    @classmethod
    def _missing_to_empty(cls, v):
        # The store drops empty arrays; a dict keyed by push-id is also accepted.
        if v is None:
            return []
        if isinstance(v, dict):
            return list(v.values())
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or ""

    # ─── Lookups ───

    def get_bank(self, hour_type_id: str) -> Optional[HourBank]:
        return next((b for b in self.hour_banks if b.hour_type_id == hour_type_id), None)

    def get_teacher(self, teacher_id: str) -> Optional[Teacher]:
        return next((t for t in self.teachers if t.id == teacher_id), None)

    def get_class(self, class_id: str) -> Optional[SchoolClass]:
        return next((c for c in self.classes if c.id == class_id), None)

    def teacher_allocations(self, teacher_id: str) -> list[Allocation]:
        return [a for a in self.allocations if a.teacher_id == teacher_id]

    def ledger_hours_by_type(self) -> dict[str, float]:
        """Sum of allocation hours per hour type."""
        totals: dict[str, float] = defaultdict(float)
        for a in self.allocations:
            totals[a.hour_type_id] += a.hours
        return dict(totals)

    def ledger_hours_by_teacher(self) -> dict[str, float]:
        totals: dict[str, float] = defaultdict(float)
        for a in self.allocations:
            totals[a.teacher_id] += a.hours
        return dict(totals)

    # ─── Overview ───

    def summary(self) -> str:
        """Short overview of the scenario."""
        total_bank = sum(b.total_hours for b in self.hour_banks)
        allocated = sum(a.hours for a in self.allocations)
        max_hours = sum(t.max_hours for t in self.teachers)
        lines = [
            f"תרחיש: {self.name}" + (" (פעיל)" if self.is_active else ""),
            f"מורים: {len(self.teachers)}",
            f"כיתות: {len(self.classes)} "
            f"({sum(1 for c in self.classes if c.is_special_education)} חינוך מיוחד)",
            f"הקצאות: {len(self.allocations)}",
            f"בנק שעות: {fmt_hours(allocated)}/{fmt_hours(total_bank)} שעות מוקצות",
            f"קיבולת מורים: {fmt_hours(max_hours)} שעות" if self.teachers else "",
        ]
        return "\n".join(line for line in lines if line)

    # ─── Consistency check ───

    def check_consistency(
        self, hour_types: Optional[list[HourType]] = None
    ) -> ConsistencyReport:
        """Checks the derived totals against the allocation ledger.

        Checks:
        1. Bank allocated == sum of allocations of that hour type
        2. Bank remaining == total - allocated
        3. Teacher allocated == sum of the teacher's allocations
        4. Teacher total within max hours
        5. Orphaned hour type / teacher / class references
        """
        errors: list[str] = []
        warnings: list[str] = []

        by_type = self.ledger_hours_by_type()
        by_teacher = self.ledger_hours_by_teacher()
        known_types = {ht.id: ht.name for ht in hour_types} if hour_types is not None else None

        def type_label(hour_type_id: str) -> str:
            if known_types and hour_type_id in known_types:
                return known_types[hour_type_id]
            return hour_type_id

        # ── 1 + 2. Banks ─────────────────────────────────────────────────
        dup = [ht for ht, n in Counter(b.hour_type_id for b in self.hour_banks).items() if n > 1]
        for ht in dup:
            errors.append(f"קיים יותר מבנק שעות אחד לסוג '{type_label(ht)}'.")

        for bank in self.hour_banks:
            ledger = by_type.get(bank.hour_type_id, 0)
            label = type_label(bank.hour_type_id)
            if abs(bank.allocated_hours - ledger) > _EPS:
                errors.append(
                    f"בנק '{label}': מוקצות {fmt_hours(bank.allocated_hours)} שעות "
                    f"אך סכום ההקצאות הוא {fmt_hours(ledger)}."
                )
            if not bank.is_consistent:
                errors.append(
                    f"בנק '{label}': נותרו {fmt_hours(bank.remaining_hours)} שעות, צפוי "
                    f"{fmt_hours(bank.total_hours - bank.allocated_hours)}."
                )
            if ledger > bank.total_hours + _EPS:
                warnings.append(
                    f"בנק '{label}': הוקצו {fmt_hours(ledger)} שעות מתוך {fmt_hours(bank.total_hours)} בלבד."
                )

        bank_types = {b.hour_type_id for b in self.hour_banks}
        for hour_type_id, hours in sorted(by_type.items()):
            if hour_type_id not in bank_types:
                errors.append(
                    f"הקצאות של {fmt_hours(hours)} שעות מסוג '{type_label(hour_type_id)}' ללא בנק שעות."
                )

        # ── 3 + 4. Teachers ──────────────────────────────────────────────
        for teacher in self.teachers:
            ledger = by_teacher.get(teacher.id, 0)
            if abs(teacher.allocated_hours - ledger) > _EPS:
                errors.append(
                    f"מורה {teacher.name}: רשומות {fmt_hours(teacher.allocated_hours)} שעות "
                    f"אך סכום ההקצאות הוא {fmt_hours(ledger)}."
                )
            if ledger > teacher.max_hours + _EPS:
                warnings.append(
                    f"מורה {teacher.name}: {fmt_hours(ledger)} שעות מעל המקסימום ({fmt_hours(teacher.max_hours)})."
                )

        # ── 5. Orphans ───────────────────────────────────────────────────
        teacher_ids = {t.id for t in self.teachers}
        class_ids = {c.id for c in self.classes}
        for a in self.allocations:
            if a.teacher_id not in teacher_ids:
                warnings.append(f"הקצאה {a.id}: מורה לא ידוע ({a.teacher_id}).")
            for cid in a.class_ids:
                if cid not in class_ids:
                    warnings.append(f"הקצאה {a.id}: כיתה לא ידועה ({cid}).")
            if known_types is not None and a.hour_type_id not in known_types:
                warnings.append(f"הקצאה {a.id}: סוג שעה לא ידוע ({a.hour_type_id}).")

        return ConsistencyReport(
            is_consistent=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )
