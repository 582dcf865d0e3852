"""Shared helpers for the spreadsheet export."""

import re
from datetime import date

# ─── Colour palette (RRGGBB, without #) ───────────────────────────────────────

COLORS: dict[str, str] = {
    "header":      "4472C4",
    "totals":      "E7E6E6",
    "utilization": "FFF2CC",
    "under":       "FFCCCC",
    "over":        "FFEECC",
    "optimal":     "CCFFCC",
    "border":      "000000",
}

MAX_SHEET_NAME = 31
_INVALID_SHEET_CHARS = re.compile(r"[\\/?*\[\]]")


def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Converts "RRGGBB" or "#RRGGBB" into an (r, g, b) tuple."""
    h = hex_color.lstrip("#")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def fill_color(hex_color: str) -> str:
    """"#3B82F6" → "3B82F6" (openpyxl colour format)."""
    return hex_color.lstrip("#").upper()


def light_tint(hex_color: str, factor: float = 0.75) -> str:
    """Mixes a colour with white; used for hour type row backgrounds."""
    r, g, b = hex_to_rgb(hex_color)
    r, g, b = (int(c + (255 - c) * factor) for c in (r, g, b))
    return f"{r:02X}{g:02X}{b:02X}"


def today_str() -> str:
    """Today's date as YYYY-MM-DD (used in file names)."""
    return date.today().isoformat()


def clean_sheet_name(name: str) -> str:
    """Excel sheet name: no \\ / ? * [ ], at most 31 characters."""
    cleaned = _INVALID_SHEET_CHARS.sub("_", name).strip()
    return (cleaned or "Sheet")[:MAX_SHEET_NAME]


def clean_file_part(name: str) -> str:
    """Scenario name usable inside a file name."""
    return re.sub(r'[\\/:*?"<>|]', "_", name).strip() or "scenario"


def percent_str(value: int) -> str:
    return f"{value}%"
