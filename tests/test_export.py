"""Tests for the Excel export (workbooks are read back with openpyxl)."""

from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

from export.excel_export import ReportExcelExporter
from export.helpers import (
    MAX_SHEET_NAME,
    clean_file_part,
    clean_sheet_name,
    fill_color,
    hex_to_rgb,
    light_tint,
)
from models import Allocation, HourBank, HourType, Scenario, SchoolClass, Teacher

HOUR_TYPES = [
    HourType(id="H", name="שעות הוראה", color="#3B82F6", is_class_hour=True),
    HourType(id="C", name="שעות תיאום", color="#10B981"),
]


def _scenario() -> Scenario:
    return Scenario(
        id="s1",
        name="תשפ״ה",
        hour_banks=[
            HourBank(id="b1", hour_type_id="H", total_hours=20, allocated_hours=10, remaining_hours=10),
            HourBank(id="b2", hour_type_id="C", total_hours=10, allocated_hours=3, remaining_hours=7),
        ],
        teachers=[
            Teacher(id="T", name="מורה א", id_number="111111111", max_hours=10, allocated_hours=7),
            Teacher(id="U", name="מורה ב", id_number="222222222", max_hours=8, allocated_hours=6),
        ],
        classes=[
            SchoolClass(id="k1", name="א1", grade="א"),
            SchoolClass(id="k2", name="א2", grade="א"),
        ],
        allocations=[
            Allocation(id="a1", teacher_id="T", class_ids=["k1"], hour_type_id="H", hours=4),
            Allocation(id="a2", teacher_id="T", hour_type_id="C", hours=3),
            Allocation(id="a3", teacher_id="U", class_ids=["k1", "k2"], hour_type_id="H", hours=6),
        ],
    )


@pytest.fixture
def exporter() -> ReportExcelExporter:
    return ReportExcelExporter(_scenario(), HOUR_TYPES)


# ─── Helpers ──────────────────────────────────────────────────────────────────

class TestHelpers:
    def test_clean_sheet_name(self):
        """Forbidden characters are replaced and the name is cut to 31."""
        assert clean_sheet_name("א/ב [x]?") == "א_ב _x__"
        assert len(clean_sheet_name("ש" * 40)) == MAX_SHEET_NAME
        assert clean_sheet_name("  ") == "Sheet"

    def test_clean_file_part(self):
        assert clean_file_part('a:b"c') == "a_b_c"

    def test_colors(self):
        assert hex_to_rgb("#3B82F6") == (0x3B, 0x82, 0xF6)
        assert fill_color("#3b82f6") == "3B82F6"
        assert light_tint("#000000", 0.5) == "7F7F7F"
        assert light_tint("#FFFFFF") == "FFFFFF"

    def test_filenames(self, exporter):
        today = date.today().isoformat()
        assert exporter.matrix_filename() == f"דוח_תשפ״ה_{today}.xlsx"
        assert exporter.summary_filename() == f"סיכום_תשפ״ה_{today}.xlsx"
        assert exporter.detailed_filename() == f"דוח_פירוט_כיתות_תשפ״ה_{today}.xlsx"


# ─── Matrix ───────────────────────────────────────────────────────────────────

class TestMatrixExport:
    def test_layout(self, exporter, tmp_path: Path):
        path = exporter.export_matrix(tmp_path / "matrix.xlsx")
        ws = load_workbook(path)["דוח הקצאת שעות"]
        assert ws.sheet_view.rightToLeft
        assert [c.value for c in ws[1]] == ["סוג שעה", "מורה א", "מורה ב", 'סה"כ', "אחוז"]
        assert [c.value for c in ws[2]] == ["שעות הוראה", 4, 6, 10, "50%"]
        assert [c.value for c in ws[3]] == ["שעות תיאום", 3, 0, 3, "30%"]
        assert [c.value for c in ws[4]] == ['סה"כ', 7, 6, 13, "43%"]
        assert [c.value for c in ws[5]] == ["אחוז ניצול", "70%", "75%", "72%", "-"]

    def test_styles(self, exporter, tmp_path: Path):
        ws = load_workbook(exporter.export_matrix(tmp_path / "m.xlsx")).active
        assert ws["A1"].fill.start_color.rgb.endswith("4472C4")
        assert ws["A1"].font.bold
        assert ws["B4"].fill.start_color.rgb.endswith("E7E6E6")
        assert ws.column_dimensions["A"].width == 20

    def test_without_utilization_row(self, exporter, tmp_path: Path):
        ws = load_workbook(exporter.export_matrix(tmp_path / "m.xlsx", include_utilization=False)).active
        assert ws.max_row == 4

    def test_empty_scenario(self, tmp_path: Path):
        s = _scenario().model_copy(update={"allocations": [], "teachers": []})
        ws = load_workbook(ReportExcelExporter(s, HOUR_TYPES).export_matrix(tmp_path / "e.xlsx")).active
        assert ws["A2"].value == 'סה"כ'


# ─── Summary ──────────────────────────────────────────────────────────────────

class TestSummaryExport:
    def test_layout(self, exporter, tmp_path: Path):
        ws = load_workbook(exporter.export_summary(tmp_path / "s.xlsx"))["סיכום"]
        assert ws.sheet_view.rightToLeft
        assert (ws["A1"].value, ws["B1"].value) == ("סיכום התרחיש", "תשפ״ה")
        assert (ws["A3"].value, ws["B3"].value) == ("מספר מורים", 2)
        assert (ws["A4"].value, ws["B4"].value) == ('סה"כ שעות מוקצות', 13)
        assert (ws["A5"].value, ws["B5"].value) == ("ממוצע שעות למורה", 7)
        assert ws["A7"].value == "פירוט מורים:"
        assert [c.value for c in ws[8]] == ["שם המורה", "שעות מוקצות", "מקסימום שעות", "אחוז ניצול"]
        assert [c.value for c in ws[9]] == ["מורה א", 7, 10, "70%"]
        assert [c.value for c in ws[10]] == ["מורה ב", 6, 8, "75%"]


# ─── Detailed ─────────────────────────────────────────────────────────────────

class TestDetailedExport:
    def test_sheets(self, exporter, tmp_path: Path):
        wb = load_workbook(exporter.export_detailed(tmp_path / "d.xlsx"))
        assert wb.sheetnames == ["שעות הוראה", "שעות תיאום", "סיכום כללי"]
        assert all(ws.sheet_view.rightToLeft for ws in wb.worksheets)

    def test_hour_type_sheet(self, exporter, tmp_path: Path):
        ws = load_workbook(exporter.export_detailed(tmp_path / "d.xlsx"))["שעות הוראה"]
        assert ws["A1"].value == "פירוט שעות הוראה"
        assert ws["C1"].value == 'סה"כ שעות: 10'
        assert [c.value for c in ws[3]] == ["כיתה", "מורה", "שעות"]
        rows = [[c.value for c in ws[r]] for r in (4, 5, 6)]
        assert rows == [["א1", "מורה א", 4], ["א1", "מורה ב", 3], ["א2", "מורה ב", 3]]
        assert (ws["A8"].value, ws["C8"].value) == ("סיכום שעות הוראה", 10)
        assert ws["A10"].value == "סיכום מורים:"
        assert [ws["A11"].value, ws["B11"].value, ws["C11"].value] == ["מורה א", "בשעות הוראה", 4]
        assert [ws["A12"].value, ws["C12"].value] == ["מורה ב", 6]

    def test_general_row(self, exporter, tmp_path: Path):
        ws = load_workbook(exporter.export_detailed(tmp_path / "d.xlsx"))["שעות תיאום"]
        assert ws["A4"].value == "הקצאה כללית"
        assert ws["C4"].value == 3

    def test_summary_sheet(self, exporter, tmp_path: Path):
        ws = load_workbook(exporter.export_detailed(tmp_path / "d.xlsx"))["סיכום כללי"]
        assert (ws["A1"].value, ws["B1"].value) == ("סיכום כללי", "תשפ״ה")
        assert [ws["A4"].value, ws["B4"].value] == ["מורה א", 7]
        assert [ws["A5"].value, ws["B5"].value] == ["מורה ב", 6]
        assert [ws["A7"].value, ws["B7"].value] == ['סה"כ כללי', 13]

    def test_sheet_names_sanitised_and_unique(self, tmp_path: Path):
        types = [
            HourType(id="H", name="הוראה/תגבור [א]"),
            HourType(id="C", name="סיכום כללי"),
        ]
        wb = load_workbook(ReportExcelExporter(_scenario(), types).export_detailed(tmp_path / "d.xlsx"))
        assert wb.sheetnames == ["הוראה_תגבור _א_", "סיכום כללי", "סיכום כללי (2)"]


class TestExportAll:
    def test_three_files(self, exporter, tmp_path: Path):
        paths = exporter.export_all(tmp_path / "out")
        assert len(paths) == 3
        assert all(p.exists() and p.parent == tmp_path / "out" for p in paths)
