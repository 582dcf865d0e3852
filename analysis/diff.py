"""Comparison of two scenarios.

Teachers are matched by id number and classes by name, so a duplicate or an
imported copy (fresh ids) compares as unchanged.
"""

import json
from dataclasses import dataclass, field

from models.base import fmt_hours, round_percent
from models.hour_type import HourType, hour_type_name
from models.scenario import Scenario


@dataclass
class HoursChange:
    """Changed hours of one hour type between the two scenarios."""

    hour_type_id: str
    hour_type_name: str
    old_hours: float
    new_hours: float

    @property
    def delta(self) -> float:
        return self.new_hours - self.old_hours


@dataclass
class ScenarioOverview:
    """Headline numbers of one scenario."""

    id: str
    name: str
    total_teachers: int
    total_classes: int
    bank_utilization: int     # allocated / bank total, %
    efficiency: int           # allocated / teachers' max hours, %


@dataclass
class ScenarioDiff:
    """Differences from scenario a (base) to scenario b."""

    overviews: list[ScenarioOverview] = field(default_factory=list)
    teachers_added: list[str] = field(default_factory=list)
    teachers_removed: list[str] = field(default_factory=list)
    classes_added: list[str] = field(default_factory=list)
    classes_removed: list[str] = field(default_factory=list)
    bank_changes: list[HoursChange] = field(default_factory=list)
    allocated_changes: list[HoursChange] = field(default_factory=list)

    def is_empty(self) -> bool:
        """True when nothing but ids and names differs."""
        return (
            not self.teachers_added
            and not self.teachers_removed
            and not self.classes_added
            and not self.classes_removed
            and not self.bank_changes
            and not self.allocated_changes
        )

    def to_dict(self) -> dict:
        def changes(items: list[HoursChange]) -> list[dict]:
            return [
                {
                    "hourTypeId": c.hour_type_id,
                    "hourTypeName": c.hour_type_name,
                    "oldHours": c.old_hours,
                    "newHours": c.new_hours,
                }
                for c in items
            ]

        return {
            "scenarios": [
                {
                    "id": o.id,
                    "name": o.name,
                    "totalTeachers": o.total_teachers,
                    "totalClasses": o.total_classes,
                    "totalHourBankUtilization": o.bank_utilization,
                    "efficiency": o.efficiency,
                }
                for o in self.overviews
            ],
            "teachersAdded": self.teachers_added,
            "teachersRemoved": self.teachers_removed,
            "classesAdded": self.classes_added,
            "classesRemoved": self.classes_removed,
            "bankChanges": changes(self.bank_changes),
            "allocatedChanges": changes(self.allocated_changes),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def print_rich(self) -> None:
        from rich.console import Console
        from rich.table import Table
        from rich import box

        console = Console()
        table = Table(title="השוואת תרחישים", box=box.ROUNDED)
        table.add_column("תרחיש", style="bold")
        table.add_column("מורים", justify="center")
        table.add_column("כיתות", justify="center")
        table.add_column("ניצול בנק", justify="center")
        table.add_column("יעילות", justify="center")
        for o in self.overviews:
            table.add_row(o.name, str(o.total_teachers), str(o.total_classes),
                          f"{o.bank_utilization}%", f"{o.efficiency}%")
        console.print(table)

        if self.is_empty():
            console.print("[green]אין הבדלים בתוכן התרחישים.[/green]")
            return
        for label, names, color in (
            ("מורים שנוספו", self.teachers_added, "green"),
            ("מורים שהוסרו", self.teachers_removed, "red"),
            ("כיתות שנוספו", self.classes_added, "green"),
            ("כיתות שהוסרו", self.classes_removed, "red"),
        ):
            if names:
                console.print(f"[{color}]{label}:[/{color}] {', '.join(names)}")
        for label, items in (("בנקי שעות", self.bank_changes), ("שעות מוקצות", self.allocated_changes)):
            for c in items:
                sign = "+" if c.delta > 0 else ""
                console.print(
                    f"  {label} · {c.hour_type_name}: {fmt_hours(c.old_hours)} → "
                    f"{fmt_hours(c.new_hours)} ({sign}{fmt_hours(c.delta)})"
                )


def _percent(part: float, whole: float) -> int:
    return round_percent(part / whole * 100) if whole > 0 else 0


def scenario_overview(scenario: Scenario) -> ScenarioOverview:
    allocated = sum(a.hours for a in scenario.allocations)
    return ScenarioOverview(
        id=scenario.id,
        name=scenario.name,
        total_teachers=len(scenario.teachers),
        total_classes=len(scenario.classes),
        bank_utilization=_percent(allocated, sum(b.total_hours for b in scenario.hour_banks)),
        efficiency=_percent(allocated, sum(t.max_hours for t in scenario.teachers)),
    )


def compare_scenarios(a: Scenario, b: Scenario, hour_types: list[HourType]) -> ScenarioDiff:
    """Compares two scenarios of the same user.

    Compares:
    - teachers (by id number) and classes (by name), added / removed
    - bank totals per hour type
    - allocated hours per hour type (from the ledger)
    """
    diff = ScenarioDiff(overviews=[scenario_overview(a), scenario_overview(b)])

    # ── Teachers ─────────────────────────────────────────────────────────────
    teachers_a = {t.id_number: t.name for t in a.teachers}
    teachers_b = {t.id_number: t.name for t in b.teachers}
    diff.teachers_added = sorted(teachers_b[k] for k in set(teachers_b) - set(teachers_a))
    diff.teachers_removed = sorted(teachers_a[k] for k in set(teachers_a) - set(teachers_b))

    # ── Classes ──────────────────────────────────────────────────────────────
    classes_a = {c.name for c in a.classes}
    classes_b = {c.name for c in b.classes}
    diff.classes_added = sorted(classes_b - classes_a)
    diff.classes_removed = sorted(classes_a - classes_b)

    # ── Banks and ledger ─────────────────────────────────────────────────────
    totals_a = {bank.hour_type_id: bank.total_hours for bank in a.hour_banks}
    totals_b = {bank.hour_type_id: bank.total_hours for bank in b.hour_banks}
    ledger_a = a.ledger_hours_by_type()
    ledger_b = b.ledger_hours_by_type()

    for hour_type_id in sorted(set(totals_a) | set(totals_b) | set(ledger_a) | set(ledger_b)):
        name = hour_type_name(hour_types, hour_type_id)
        old_total, new_total = totals_a.get(hour_type_id, 0), totals_b.get(hour_type_id, 0)
        if old_total != new_total:
            diff.bank_changes.append(HoursChange(hour_type_id, name, old_total, new_total))
        old_alloc, new_alloc = ledger_a.get(hour_type_id, 0), ledger_b.get(hour_type_id, 0)
        if abs(old_alloc - new_alloc) > 1e-9:
            diff.allocated_changes.append(HoursChange(hour_type_id, name, old_alloc, new_alloc))

    return diff
