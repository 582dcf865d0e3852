"""Export module: Excel reports (openpyxl)."""

from export.excel_export import ReportExcelExporter

__all__ = ["ReportExcelExporter"]
