"""Excel export of allocation reports (openpyxl).

Three workbooks: the hour type × teacher matrix, a statistics summary, and
the detailed class breakdown (one sheet per hour type + "סיכום כללי").
All sheets are right-to-left.
"""

import logging
from pathlib import Path

from analysis.reports import (
    calculate_teacher_utilization,
    classify_utilization,
    generate_detailed_report_data,
    generate_report_data,
    round_percent,
    UNKNOWN_NAME,
)
from models.hour_type import HourType
from models.scenario import Scenario

from export.helpers import (
    COLORS, clean_file_part, clean_sheet_name, fill_color, light_tint,
    MAX_SHEET_NAME, percent_str, today_str,
)

logger = logging.getLogger(__name__)

MATRIX_SHEET = "דוח הקצאת שעות"
SUMMARY_SHEET = "סיכום"
DETAILED_SUMMARY_SHEET = "סיכום כללי"


class ReportExcelExporter:
    """Writes the reports of one scenario to .xlsx files."""

    COL_LABEL_W = 20
    COL_TEACHER_W = 15
    COL_TOTAL_W = 12
    COL_PERCENT_W = 10

    def __init__(
        self,
        scenario: Scenario,
        hour_types: list[HourType],
        under_percent: float = 80,
        over_percent: float = 100,
    ):
        self.scenario = scenario
        self.hour_types = hour_types
        self.under_percent = under_percent
        self.over_percent = over_percent

    # ─── File names ───────────────────────────────────────────────────────────

    def matrix_filename(self) -> str:
        return f"דוח_{clean_file_part(self.scenario.name)}_{today_str()}.xlsx"

    def summary_filename(self) -> str:
        return f"סיכום_{clean_file_part(self.scenario.name)}_{today_str()}.xlsx"

    def detailed_filename(self) -> str:
        return f"דוח_פירוט_כיתות_{clean_file_part(self.scenario.name)}_{today_str()}.xlsx"

    # ─── Style helpers ────────────────────────────────────────────────────────

    def _fill(self, hex_color: str):
        from openpyxl.styles import PatternFill
        color = fill_color(hex_color)
        return PatternFill(start_color=color, end_color=color, fill_type="solid")

    def _center_align(self):
        from openpyxl.styles import Alignment
        return Alignment(horizontal="center", vertical="center")

    def _thin_border(self):
        from openpyxl.styles import Border, Side
        s = Side(border_style="thin", color=COLORS["border"])
        return Border(left=s, right=s, top=s, bottom=s)

    def _new_sheet(self, wb, title: str):
        ws = wb.create_sheet(title=clean_sheet_name(title))
        ws.sheet_view.rightToLeft = True
        return ws

    def _style_row(self, ws, row: int, n_cols: int, fill: str, bold=False, white=False) -> None:
        from openpyxl.styles import Font
        border = self._thin_border()
        for col in range(1, n_cols + 1):
            cell = ws.cell(row=row, column=col)
            cell.fill = self._fill(fill)
            cell.border = border
            cell.alignment = self._center_align()
            if bold or white:
                cell.font = Font(bold=bold, color="FFFFFF" if white else None)

    def _save(self, wb, output_path: Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)
        logger.info(f"Excel written: {output_path}")
        return output_path

    def _workbook(self):
        from openpyxl import Workbook
        wb = Workbook()
        wb.remove(wb.active)
        return wb

    # ─── Matrix ───────────────────────────────────────────────────────────────

    def export_matrix(self, output_path: Path, include_utilization: bool = True) -> Path:
        """Hour types × teachers with totals, bank utilization column and
        (optionally) a teacher utilization row."""
        from openpyxl.utils import get_column_letter

        report = generate_report_data(self.scenario, self.hour_types)
        wb = self._workbook()
        ws = self._new_sheet(wb, MATRIX_SHEET)
        n_cols = len(report.teachers) + 3
        border = self._thin_border()

        headers = ["סוג שעה", *(t.name for t in report.teachers), 'סה"כ', "אחוז"]
        for col, text in enumerate(headers, 1):
            ws.cell(row=1, column=col, value=text)
        self._style_row(ws, 1, n_cols, COLORS["header"], bold=True, white=True)

        bank_totals = []
        row = 2
        for i, ht in enumerate(report.hour_types):
            bank = self.scenario.get_bank(ht.id)
            bank_total = bank.total_hours if bank else 0
            bank_totals.append(bank_total)
            used = report.hour_type_totals[i]
            values = [
                ht.name, *report.matrix[i], used,
                percent_str(round_percent(used / bank_total * 100) if bank_total > 0 else 0),
            ]
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row, column=col, value=value)
                cell.border = border
                cell.alignment = self._center_align()
            if ht.has_valid_color:
                ws.cell(row=row, column=1).fill = self._fill(light_tint(ht.color))
            row += 1

        total_bank = sum(bank_totals)
        overall = round_percent(report.grand_total / total_bank * 100) if total_bank > 0 else 0
        totals = ['סה"כ', *report.teacher_totals, report.grand_total, percent_str(overall)]
        for col, value in enumerate(totals, 1):
            ws.cell(row=row, column=col, value=value)
        self._style_row(ws, row, n_cols, COLORS["totals"], bold=True)
        row += 1

        if include_utilization:
            utilization = calculate_teacher_utilization(report.teachers, report.teacher_totals)
            total_max = sum(t.max_hours for t in report.teachers)
            average = round_percent(report.grand_total / total_max * 100) if total_max > 0 else 0
            values = ["אחוז ניצול", *(percent_str(u) for u in utilization), percent_str(average), "-"]
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=value)
            self._style_row(ws, row, n_cols, COLORS["utilization"])
            for j, u in enumerate(utilization):
                status = classify_utilization(u, self.under_percent, self.over_percent)
                ws.cell(row=row, column=j + 2).fill = self._fill(COLORS[status])

        ws.column_dimensions["A"].width = self.COL_LABEL_W
        for j in range(len(report.teachers)):
            ws.column_dimensions[get_column_letter(j + 2)].width = self.COL_TEACHER_W
        ws.column_dimensions[get_column_letter(n_cols - 1)].width = self.COL_TOTAL_W
        ws.column_dimensions[get_column_letter(n_cols)].width = self.COL_PERCENT_W
        ws.freeze_panes = "B2"

        return self._save(wb, output_path)

    # ─── Summary ──────────────────────────────────────────────────────────────

    def export_summary(self, output_path: Path) -> Path:
        """Scenario statistics followed by one row per teacher."""
        from openpyxl.styles import Font

        report = generate_report_data(self.scenario, self.hour_types)
        wb = self._workbook()
        ws = self._new_sheet(wb, SUMMARY_SHEET)
        n_teachers = len(report.teachers)

        rows = [
            ["סיכום התרחיש", self.scenario.name],
            [],
            ["מספר מורים", n_teachers],
            ['סה"כ שעות מוקצות', report.grand_total],
            ["ממוצע שעות למורה", round_percent(report.grand_total / n_teachers) if n_teachers else 0],
            [],
            ["פירוט מורים:"],
        ]
        for r in rows:
            ws.append(r)
        ws.cell(row=1, column=1).font = Font(bold=True, size=13)

        header_row = ws.max_row + 1
        ws.append(["שם המורה", "שעות מוקצות", "מקסימום שעות", "אחוז ניצול"])
        self._style_row(ws, header_row, 4, COLORS["header"], bold=True, white=True)

        utilization = calculate_teacher_utilization(report.teachers, report.teacher_totals)
        border = self._thin_border()
        for teacher, total, u in zip(report.teachers, report.teacher_totals, utilization):
            ws.append([teacher.name, total, teacher.max_hours, percent_str(u)])
            for col in range(1, 5):
                ws.cell(row=ws.max_row, column=col).border = border
            status = classify_utilization(u, self.under_percent, self.over_percent)
            ws.cell(row=ws.max_row, column=4).fill = self._fill(COLORS[status])

        for letter, width in zip("ABCD", (25, 15, 15, 12)):
            ws.column_dimensions[letter].width = width

        return self._save(wb, output_path)

    # ─── Detailed class breakdown ─────────────────────────────────────────────

    def export_detailed(self, output_path: Path) -> Path:
        """One sheet per hour type with class rows and teacher subtotals,
        plus a "סיכום כללי" sheet."""
        from openpyxl.styles import Font

        detailed = generate_detailed_report_data(self.scenario, self.hour_types)
        names = {t.id: t.name for t in detailed.teachers}
        wb = self._workbook()
        border = self._thin_border()
        used_titles: set[str] = set()

        for breakdown in detailed.hour_type_breakdowns:
            ht = breakdown.hour_type
            ws = self._new_sheet(wb, self._unique_title(ht.name, used_titles))

            ws.append([f"פירוט {ht.name}", "", f'סה"כ שעות: {breakdown.total_hours:g}'])
            self._style_row(ws, 1, 1, COLORS["header"], bold=True, white=True)
            ws.append([])
            ws.append(["כיתה", "מורה", "שעות"])
            self._style_row(ws, 3, 3, COLORS["totals"], bold=True)

            for detail in breakdown.class_allocations:
                ws.append([detail.class_name, detail.teacher_name, detail.hours])
                for col in range(1, 4):
                    ws.cell(row=ws.max_row, column=col).border = border

            ws.append([])
            ws.append([f"סיכום {ht.name}", "", breakdown.total_hours])
            ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
            ws.append([])
            ws.append(["סיכום מורים:", "", ""])
            ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
            for teacher_id, hours in breakdown.teacher_totals.items():
                ws.append([names.get(teacher_id, UNKNOWN_NAME), f"ב{ht.name}", hours])

            for letter, width in zip("ABC", (25, 25, 10)):
                ws.column_dimensions[letter].width = width

        ws = self._new_sheet(wb, self._unique_title(DETAILED_SUMMARY_SHEET, used_titles))
        ws.append([DETAILED_SUMMARY_SHEET, self.scenario.name])
        self._style_row(ws, 1, 1, COLORS["header"], bold=True, white=True)
        ws.append([])
        ws.append(["מורה", 'סה"כ שעות מוקצות'])
        self._style_row(ws, 3, 2, COLORS["totals"], bold=True)
        for teacher_id, hours in detailed.teacher_grand_totals.items():
            ws.append([names.get(teacher_id, UNKNOWN_NAME), hours])
        ws.append([])
        ws.append(['סה"כ כללי', detailed.grand_total])
        ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
        ws.column_dimensions["A"].width = 25
        ws.column_dimensions["B"].width = 15

        return self._save(wb, output_path)

    @staticmethod
    def _unique_title(name: str, used: set[str]) -> str:
        """Sanitised sheet title not yet used in this workbook."""
        title = clean_sheet_name(name)
        n = 2
        while title in used:
            suffix = f" ({n})"
            title = clean_sheet_name(name)[: MAX_SHEET_NAME - len(suffix)] + suffix
            n += 1
        used.add(title)
        return title

    def export_all(self, output_dir: Path) -> list[Path]:
        """Writes all three workbooks into output_dir."""
        output_dir = Path(output_dir)
        return [
            self.export_matrix(output_dir / self.matrix_filename()),
            self.export_summary(output_dir / self.summary_filename()),
            self.export_detailed(output_dir / self.detailed_filename()),
        ]
