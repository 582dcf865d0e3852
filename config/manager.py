"""Configuration manager: load, save and interactive editing.

Uses ruamel.yaml for YAML serialisation with comments.
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, FloatPrompt, IntPrompt, Prompt
from rich.table import Table
from rich import box
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.defaults import default_app_config
from config.schema import (
    AllocationConfig,
    AppConfig,
    ExportConfig,
    ReportConfig,
    StoreConfig,
)

logger = logging.getLogger(__name__)

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── YAML COMMENTS ───

_YAML_HEADER = f"""\
# ============================================
# Hour Bank Planner: application config
# Created: {date.today().isoformat()}
# ============================================
"""

_SECTION_COMMENTS = {
    "store": (
        "Store",
        "JSON key-value store; all paths live under users/<user_id>/.",
    ),
    "allocation": (
        "Allocation limits",
        None,
    ),
    "reports": (
        "Reports",
        "Utilization thresholds in percent (display only).",
    ),
    "export": (
        "Export",
        None,
    ),
}


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "app_config.yaml"

    def first_run_check(self) -> bool:
        """True when no config file exists yet."""
        return not self.DEFAULT_CONFIG.exists()

    # ─── Load ───

    def load(self, path: Optional[Path] = None) -> AppConfig:
        """Load config from YAML, validated by pydantic.

        A missing default file yields the default configuration.
        """
        target = path or self.DEFAULT_CONFIG
        if not target.exists():
            if path is not None:
                raise FileNotFoundError(f"Config file not found: {target}")
            logger.info(f"No config at {target}, using defaults")
            return default_app_config()
        with open(target, "r", encoding="utf-8") as f:
            raw = yaml.load(f) or {}
        try:
            return AppConfig.model_validate(dict(raw))
        except Exception as e:
            raise ValueError(
                f"Invalid config file: {target}\n"
                f"Pydantic error: {e}"
            ) from e

    # ─── Save ───

    def save(self, config: AppConfig, path: Optional[Path] = None) -> None:
        """Save config as commented YAML."""
        target = path or self.DEFAULT_CONFIG
        target.parent.mkdir(parents=True, exist_ok=True)

        data = self._build_commented_yaml(config)

        with open(target, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(data, f)

        console.print(f"[green]✓[/green] ההגדרות נשמרו: {target}")

    def _build_commented_yaml(self, config: AppConfig) -> CommentedMap:
        raw = json.loads(config.model_dump_json())
        cm = CommentedMap(raw)

        for field, (label, comment) in _SECTION_COMMENTS.items():
            cm.yaml_set_comment_before_after_key(
                field,
                before=f"\n─── {label} ───" + (f"\n{comment}" if comment else ""),
            )
        return cm

    # ─── Display ───

    def show(self, config: AppConfig) -> None:
        console.print(Panel(f"[bold]{config.school_name}[/bold]",
                            title="הגדרות", border_style="cyan"))
        table = Table(box=box.ROUNDED)
        table.add_column("Section", style="bold")
        table.add_column("Key")
        table.add_column("Value")
        for section in ("store", "allocation", "reports", "export"):
            for key, value in getattr(config, section).model_dump().items():
                table.add_row(section, key, str(value))
        console.print(table)

    # ─── Interactive editing ───

    def edit_interactive(self, config: AppConfig) -> AppConfig:
        """Interactive edit menu."""
        while True:
            console.print()
            console.print(Panel("[bold]עריכת הגדרות[/bold]", border_style="cyan"))
            console.print("  [bold]1.[/bold] Store")
            console.print("  [bold]2.[/bold] Allocation limits")
            console.print("  [bold]3.[/bold] Report thresholds")
            console.print("  [bold]4.[/bold] Export directory")
            console.print("  [bold]5.[/bold] School name")
            console.print("  [bold]0.[/bold] Save & back")

            choice = Prompt.ask("\nבחירה", default="0")

            if choice == "1":
                config = config.model_copy(update={"store": self._edit_store(config.store)})
            elif choice == "2":
                config = config.model_copy(
                    update={"allocation": self._edit_allocation(config.allocation)}
                )
            elif choice == "3":
                config = config.model_copy(update={"reports": self._edit_reports(config.reports)})
            elif choice == "4":
                out = Prompt.ask("Output directory", default=str(config.export.output_dir))
                config = config.model_copy(update={"export": ExportConfig(output_dir=Path(out))})
            elif choice == "5":
                name = Prompt.ask("School name", default=config.school_name)
                config = config.model_copy(update={"school_name": name})
            elif choice == "0":
                self.save(config)
                break
            else:
                console.print("[yellow]בחירה לא חוקית.[/yellow]")

        return config

    def _edit_store(self, sc: StoreConfig) -> StoreConfig:
        path = Prompt.ask("Store file", default=str(sc.path))
        user_id = Prompt.ask("User id", default=sc.user_id)
        read_only = Confirm.ask("Read-only?", default=sc.read_only)
        return StoreConfig(path=Path(path), user_id=user_id, read_only=read_only)

    def _edit_allocation(self, ac: AllocationConfig) -> AllocationConfig:
        max_cell = FloatPrompt.ask("Max hours per cell", default=ac.max_cell_hours)
        max_hours = FloatPrompt.ask("Default teacher max hours",
                                    default=ac.default_teacher_max_hours)
        students = IntPrompt.ask("Default student count", default=ac.default_student_count)
        return AllocationConfig(max_cell_hours=max_cell,
                                default_teacher_max_hours=max_hours,
                                default_student_count=students)

    def _edit_reports(self, rc: ReportConfig) -> ReportConfig:
        under = IntPrompt.ask("Under-utilized below (%)", default=rc.under_utilized_percent)
        over = IntPrompt.ask("Over-allocated above (%)", default=rc.over_allocated_percent)
        return ReportConfig(under_utilized_percent=under, over_allocated_percent=over)
