"""Reports derived from a scenario and the hour type registry.

All functions are pure. Hour types referenced by the ledger but missing from
the registry are left out of the matrix and detailed reports.
"""

from collections import defaultdict
from typing import Optional

from pydantic import BaseModel

from models.allocation import Allocation
from models.base import fmt_hours, round_percent
from models.hour_type import HourType
from models.scenario import Scenario
from models.school_class import SchoolClass
from models.teacher import Teacher

GENERAL_CLASS_ID = "general"
GENERAL_CLASS_NAME = "הקצאה כללית"
UNKNOWN_NAME = "לא זוהה"

UNDER_UTILIZED = "under"
OVER_ALLOCATED = "over"
OPTIMAL = "optimal"

UTILIZATION_LABELS = {
    UNDER_UTILIZED: "ניצול חסר",
    OVER_ALLOCATED: "הקצאת יתר",
    OPTIMAL: "אופטימלי",
}


# ─── Report models ────────────────────────────────────────────────────────────

class ReportData(BaseModel):
    """Hour type × teacher matrix; matrix[hour_type_index][teacher_index] = hours."""

    hour_types: list[HourType]
    teachers: list[Teacher]
    matrix: list[list[float]]
    hour_type_totals: list[float]
    teacher_totals: list[float]
    grand_total: float

    def print_rich(self, title: str = "דוח הקצאת שעות") -> None:
        from rich.console import Console
        from rich.table import Table
        from rich import box

        console = Console()
        table = Table(title=title, box=box.ROUNDED, show_header=True,
                      header_style="bold white on blue")
        table.add_column("סוג שעה", style="bold")
        for t in self.teachers:
            table.add_column(t.name, justify="center")
        table.add_column('סה"כ', justify="center", style="bold")

        for i, ht in enumerate(self.hour_types):
            cells = [fmt_hours(h) if h else "-" for h in self.matrix[i]]
            table.add_row(f"[{ht.color}]●[/] {ht.name}", *cells, fmt_hours(self.hour_type_totals[i]))

        table.add_section()
        table.add_row('סה"כ', *(fmt_hours(t) for t in self.teacher_totals),
                      fmt_hours(self.grand_total), style="bold")
        utilization = calculate_teacher_utilization(self.teachers, self.teacher_totals)
        table.add_row("אחוז ניצול", *(f"{u}%" for u in utilization), "")
        console.print(table)


class ClassAllocationDetail(BaseModel):
    class_id: str
    class_name: str
    teacher_id: str
    teacher_name: str
    hours: float


class HourTypeClassBreakdown(BaseModel):
    hour_type: HourType
    class_allocations: list[ClassAllocationDetail]
    total_hours: float
    teacher_totals: dict[str, float]


class DetailedReportData(BaseModel):
    """Per hour type: one row per class (or a general row) with teacher subtotals."""

    hour_type_breakdowns: list[HourTypeClassBreakdown]
    teachers: list[Teacher]
    classes: list[SchoolClass]
    grand_total: float
    teacher_grand_totals: dict[str, float]

    def print_rich(self) -> None:
        from rich.console import Console
        from rich.table import Table
        from rich import box

        console = Console()
        for breakdown in self.hour_type_breakdowns:
            table = Table(title=breakdown.hour_type.name, box=box.SIMPLE_HEAVY)
            table.add_column("כיתה")
            table.add_column("מורה")
            table.add_column("שעות", justify="right")
            for row in breakdown.class_allocations:
                table.add_row(row.class_name, row.teacher_name, fmt_hours(row.hours))
            table.add_section()
            table.add_row('סה"כ', "", fmt_hours(breakdown.total_hours), style="bold")
            console.print(table)
        console.print(f'[bold]סה"כ כללי: {fmt_hours(self.grand_total)} שעות[/bold]')


class HourAmount(BaseModel):
    hour_type_id: str
    hour_type_name: str
    hours: float


class TeacherHourBreakdown(BaseModel):
    teacher_id: str
    teacher_name: str
    hour_breakdown: list[HourAmount]
    total_hours: float
    utilization_percentage: int


class ScenarioSummary(BaseModel):
    total_teachers: int
    total_allocated_hours: float
    total_max_hours: float
    average_utilization: int
    teachers_over_allocated: int
    teachers_under_utilized: int


class HourBankReport(BaseModel):
    hour_type_id: str
    hour_type_name: str
    total_hours: float
    allocated_hours: float
    remaining_hours: float
    utilization_percentage: int


class ClassAllocations(BaseModel):
    school_class: SchoolClass
    allocations: list[Allocation]

    @property
    def total_hours(self) -> float:
        return sum(a.hours / len(a.class_ids) for a in self.allocations)


class ClassAllocationView(BaseModel):
    """Allocations grouped by class, plus those without a class."""

    by_class: list[ClassAllocations]
    general: list[Allocation]


# ─── Matrix ───────────────────────────────────────────────────────────────────

def _relevant_hour_types(scenario: Scenario, hour_types: list[HourType]) -> list[HourType]:
    used = {a.hour_type_id for a in scenario.allocations}
    return [ht for ht in hour_types if ht.id in used]


def generate_report_data(scenario: Scenario, hour_types: list[HourType]) -> ReportData:
    """Matrix of hour types (rows, only those with allocations) × teachers."""
    relevant = _relevant_hour_types(scenario, hour_types)
    teachers = list(scenario.teachers)
    row_of = {ht.id: i for i, ht in enumerate(relevant)}
    col_of = {t.id: j for j, t in enumerate(teachers)}

    matrix = [[0.0] * len(teachers) for _ in relevant]
    for a in scenario.allocations:
        i = row_of.get(a.hour_type_id)
        j = col_of.get(a.teacher_id)
        if i is not None and j is not None:
            matrix[i][j] += a.hours

    hour_type_totals = [sum(row) for row in matrix]
    teacher_totals = [sum(row[j] for row in matrix) for j in range(len(teachers))]
    return ReportData(
        hour_types=relevant,
        teachers=teachers,
        matrix=matrix,
        hour_type_totals=hour_type_totals,
        teacher_totals=teacher_totals,
        grand_total=sum(hour_type_totals),
    )


# ─── Detailed class breakdown ─────────────────────────────────────────────────

def generate_detailed_report_data(
    scenario: Scenario, hour_types: list[HourType]
) -> DetailedReportData:
    """Expands every allocation into one row per class, or one general row.

    Hours of an allocation covering several classes are split evenly, so each
    class row shows its share and the report totals equal the ledger. Earlier
    versions of this report credited the full hours to every class row.
    """
    teacher_names = {t.id: t.name for t in scenario.teachers}
    class_names = {c.id: c.name for c in scenario.classes}

    breakdowns: list[HourTypeClassBreakdown] = []
    for ht in _relevant_hour_types(scenario, hour_types):
        rows: list[ClassAllocationDetail] = []
        for a in scenario.allocations:
            if a.hour_type_id != ht.id:
                continue
            teacher_name = teacher_names.get(a.teacher_id, UNKNOWN_NAME)
            if a.is_general:
                rows.append(ClassAllocationDetail(
                    class_id=GENERAL_CLASS_ID, class_name=GENERAL_CLASS_NAME,
                    teacher_id=a.teacher_id, teacher_name=teacher_name, hours=a.hours,
                ))
                continue
            share = a.hours / len(a.class_ids)
            for cid in a.class_ids:
                rows.append(ClassAllocationDetail(
                    class_id=cid, class_name=class_names.get(cid, f"כיתה {cid}"),
                    teacher_id=a.teacher_id, teacher_name=teacher_name, hours=share,
                ))

        teacher_totals: dict[str, float] = defaultdict(float)
        for row in rows:
            teacher_totals[row.teacher_id] += row.hours
        breakdowns.append(HourTypeClassBreakdown(
            hour_type=ht,
            class_allocations=rows,
            total_hours=sum(r.hours for r in rows),
            teacher_totals=dict(teacher_totals),
        ))

    grand_totals: dict[str, float] = defaultdict(float)
    for b in breakdowns:
        for teacher_id, hours in b.teacher_totals.items():
            grand_totals[teacher_id] += hours

    return DetailedReportData(
        hour_type_breakdowns=breakdowns,
        teachers=list(scenario.teachers),
        classes=list(scenario.classes),
        grand_total=sum(b.total_hours for b in breakdowns),
        teacher_grand_totals=dict(grand_totals),
    )


# ─── Utilization ──────────────────────────────────────────────────────────────

def calculate_teacher_utilization(teachers: list[Teacher], teacher_totals: list[float]) -> list[int]:
    """Percent of max hours per teacher (0 when max hours is 0)."""
    return [
        round_percent(total / t.max_hours * 100) if t.max_hours > 0 else 0
        for t, total in zip(teachers, teacher_totals)
    ]


def classify_utilization(percent: float, under: float = 80, over: float = 100) -> str:
    """"under" below the lower threshold, "over" above the upper, else "optimal"."""
    if percent < under:
        return UNDER_UTILIZED
    if percent > over:
        return OVER_ALLOCATED
    return OPTIMAL


def get_teacher_hour_breakdowns(
    scenario: Scenario, hour_types: list[HourType]
) -> list[TeacherHourBreakdown]:
    names = {ht.id: ht.name for ht in hour_types}
    result = []
    for teacher in scenario.teachers:
        per_type: dict[str, float] = {}
        for a in scenario.teacher_allocations(teacher.id):
            per_type[a.hour_type_id] = per_type.get(a.hour_type_id, 0) + a.hours
        total = sum(per_type.values())
        result.append(TeacherHourBreakdown(
            teacher_id=teacher.id,
            teacher_name=teacher.name,
            hour_breakdown=[
                HourAmount(hour_type_id=ht_id,
                           hour_type_name=names.get(ht_id, UNKNOWN_NAME),
                           hours=hours)
                for ht_id, hours in per_type.items()
            ],
            total_hours=total,
            utilization_percentage=calculate_teacher_utilization([teacher], [total])[0],
        ))
    return result


def get_scenario_summary(
    report: ReportData, under: float = 80, over: float = 100
) -> ScenarioSummary:
    utilization = calculate_teacher_utilization(report.teachers, report.teacher_totals)
    total_max = sum(t.max_hours for t in report.teachers)
    return ScenarioSummary(
        total_teachers=len(report.teachers),
        total_allocated_hours=report.grand_total,
        total_max_hours=total_max,
        average_utilization=round_percent(report.grand_total / total_max * 100) if total_max > 0 else 0,
        teachers_over_allocated=sum(1 for u in utilization if u > over),
        teachers_under_utilized=sum(1 for u in utilization if u < under),
    )


# ─── Banks and classes ────────────────────────────────────────────────────────

def get_hour_bank_report(scenario: Scenario, hour_types: list[HourType]) -> list[HourBankReport]:
    """Per-bank utilization; banks of deleted hour types are skipped."""
    names = {ht.id: ht.name for ht in hour_types}
    return [
        HourBankReport(
            hour_type_id=b.hour_type_id,
            hour_type_name=names[b.hour_type_id],
            total_hours=b.total_hours,
            allocated_hours=b.allocated_hours,
            remaining_hours=b.remaining_hours,
            utilization_percentage=b.utilization_percentage,
        )
        for b in scenario.hour_banks
        if b.hour_type_id in names
    ]


def class_allocation_view(scenario: Scenario, class_id: Optional[str] = None) -> ClassAllocationView:
    """Classes that have allocations (or only class_id), and the general allocations."""
    groups = []
    for c in scenario.classes:
        if class_id and c.id != class_id:
            continue
        allocations = [a for a in scenario.allocations if a.covers_class(c.id)]
        if allocations:
            groups.append(ClassAllocations(school_class=c, allocations=allocations))
    return ClassAllocationView(
        by_class=groups,
        general=[a for a in scenario.allocations if a.is_general],
    )
