"""Hour Bank Planner: main CLI.

Usage:
  python main.py config show                       Show configuration
  python main.py hour-types init-defaults          Seed the default hour types
  python main.py scenario create <name> --bank "שעות הוראה=120"
  python main.py scenario list                     List scenarios
  python main.py teacher add <name> -s <scenario>  Add a teacher
  python main.py class add <name> --grade א        Add a class
  python main.py allocation set <teacher> <type> <hours> [--class <class>]
  python main.py report show                       Hour type × teacher matrix
  python main.py report excel --all                Excel reports
  python main.py scenario export <scenario>        JSON export
  python main.py scenario import <file.json>       JSON import

Commands that work on one scenario take --scenario/-s (id or name); without
it the active scenario is used.
"""

import functools
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from data.errors import PersistenceError, ScenarioNotFound
from models.base import fmt_hours
from planning.errors import AllocationRejected, ImportFormatError, ValidationFailed

console = Console()


# ─── Services ─────────────────────────────────────────────────────────────────

class _Services:
    """Store, repositories and registries for the configured user."""

    def __init__(self, config):
        from data.repository import HourTypeRepository, ScenarioRepository
        from data.store import TreeStore
        from planning.lifecycle import ScenarioLifecycle
        from planning.registry import HourTypeRegistry

        self.config = config
        store = TreeStore(config.store.path, read_only=config.store.read_only)
        self.scenarios = ScenarioRepository(store, config.store.user_id)
        self.hour_types = HourTypeRegistry(HourTypeRepository(store, config.store.user_id))
        self.lifecycle = ScenarioLifecycle(self.scenarios, self.hour_types)


def _load_config_or_abort(config_path: Optional[Path]):
    from config.manager import ConfigManager
    mgr = ConfigManager()
    try:
        return mgr, mgr.load(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]טעינת ההגדרות נכשלה:[/red]\n{e}")
        sys.exit(1)


def _services() -> _Services:
    root = click.get_current_context().find_root()
    root.ensure_object(dict)
    if "services" not in root.obj:
        _, config = _load_config_or_abort(root.obj.get("config_path"))
        root.obj["services"] = _Services(config)
    return root.obj["services"]


def _abort(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def _print_errors(title: str, errors: dict) -> None:
    console.print(f"[red bold]{title}[/red bold]")
    for field, message in errors.items():
        console.print(f"  [red]• {field}: {message}[/red]")


def _handle_errors(fn):
    """Turns domain errors into Hebrew messages and exit code 1."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except AllocationRejected as e:
            _print_errors("השמירה נחסמה:", e.errors)
        except ValidationFailed as e:
            _print_errors("שגיאת אימות:", e.errors)
        except PersistenceError as e:
            console.print(f"[red bold]שגיאה בשמירת הנתונים:[/red bold] {e.message}")
        except (ScenarioNotFound, ImportFormatError) as e:
            console.print(f"[red]{e}[/red]")
        sys.exit(1)

    return wrapper


# ─── Lookups ──────────────────────────────────────────────────────────────────

def _resolve_scenario_id(services: _Services, ref: Optional[str]) -> str:
    """Scenario id from an id or name; the active scenario when ref is empty."""
    scenarios = services.scenarios.list()
    if ref:
        for s in scenarios:
            if s.id == ref:
                return s.id
        matches = [s for s in scenarios if s.name == ref]
        if len(matches) == 1:
            return matches[0].id
        raise ScenarioNotFound(ref)
    active = [s for s in scenarios if s.is_active]
    if active:
        return active[0].id
    if len(scenarios) == 1:
        return scenarios[0].id
    _abort("לא נבחר תרחיש. השתמש ב--scenario או הפעל תרחיש (scenario activate).")


def _workspace(ref: Optional[str]):
    from planning.workspace import ScenarioWorkspace
    services = _services()
    return ScenarioWorkspace(services.scenarios, _resolve_scenario_id(services, ref))


def _resolve_hour_type(hour_types: list, ref: str):
    for ht in hour_types:
        if ht.id == ref:
            return ht
    wanted = ref.strip().lower()
    for ht in hour_types:
        if ht.name.strip().lower() == wanted:
            return ht
    _abort(f"סוג שעה לא נמצא: {ref}")


def _resolve_teacher(scenario, ref: str):
    for t in scenario.teachers:
        if ref in (t.id, t.id_number):
            return t
    matches = [t for t in scenario.teachers if t.name == ref]
    if len(matches) == 1:
        return matches[0]
    _abort(f"מורה לא נמצא: {ref}" if not matches else f"יותר ממורה אחד בשם {ref}; השתמש בת.ז.")


def _resolve_class(scenario, ref: str):
    for c in scenario.classes:
        if c.id == ref:
            return c
    for c in scenario.classes:
        if c.name == ref:
            return c
    _abort(f"כיתה לא נמצאה: {ref}")


def _parse_bank_totals(values: tuple[str, ...], hour_types: list) -> dict[str, float]:
    """"NAME=HOURS" pairs → {hour_type_id: hours}."""
    totals: dict[str, float] = {}
    for value in values:
        name, sep, hours = value.rpartition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"פורמט לא תקין: {value} (נדרש NAME=HOURS)")
        try:
            totals[_resolve_hour_type(hour_types, name).id] = float(hours)
        except ValueError:
            raise click.BadParameter(f"מספר שעות לא תקין: {hours}")
    return totals


scenario_option = click.option(
    "--scenario", "-s", "scenario_ref", default=None,
    help="מזהה או שם התרחיש (ברירת מחדל: התרחיש הפעיל).",
)


# ─── CONFIG ───────────────────────────────────────────────────────────────────

@click.group("config")
def cmd_config():
    """הצגה ועריכה של ההגדרות."""


@cmd_config.command("show")
@click.pass_context
def config_show(ctx):
    """מציג את ההגדרות הנוכחיות."""
    mgr, config = _load_config_or_abort(ctx.find_root().obj.get("config_path"))
    mgr.show(config)


@cmd_config.command("edit")
@click.pass_context
def config_edit(ctx):
    """עריכה אינטראקטיבית של ההגדרות."""
    mgr, config = _load_config_or_abort(ctx.find_root().obj.get("config_path"))
    mgr.edit_interactive(config)


# ─── HOUR TYPES ───────────────────────────────────────────────────────────────

@click.group("hour-types")
def cmd_hour_types():
    """ניהול סוגי שעות."""


@cmd_hour_types.command("list")
@_handle_errors
def hour_types_list():
    """מציג את כל סוגי השעות."""
    hour_types = _services().hour_types.list()
    if not hour_types:
        console.print("[dim]אין סוגי שעות. הרץ hour-types init-defaults.[/dim]")
        return
    table = Table(title="סוגי שעות", box=box.ROUNDED)
    table.add_column("", width=2)
    table.add_column("שם", style="bold")
    table.add_column("תיאור")
    table.add_column("שעה כיתתית", justify="center")
    table.add_column("מזהה", style="dim")
    for ht in hour_types:
        swatch = f"[{ht.color}]●[/]" if ht.has_valid_color else "●"
        table.add_row(swatch, ht.name, ht.description, "✓" if ht.is_class_hour else "", ht.id)
    console.print(table)


@cmd_hour_types.command("add")
@click.argument("name")
@click.option("--description", "-d", default="", help="תיאור.")
@click.option("--color", "-c", default="#3B82F6", show_default=True, help="צבע #RRGGBB.")
@click.option("--class-hour", is_flag=True, default=False, help="שעות הקשורות לכיתות.")
@_handle_errors
def hour_types_add(name: str, description: str, color: str, class_hour: bool):
    """יוצר סוג שעה חדש."""
    new_id = _services().hour_types.create(name, description, color, class_hour)
    console.print(f"[green]✓[/green] סוג השעה נוצר: {name} ({new_id})")


@cmd_hour_types.command("edit")
@click.argument("ref")
@click.option("--name", default=None)
@click.option("--description", "-d", default=None)
@click.option("--color", "-c", default=None)
@click.option("--class-hour/--no-class-hour", default=None)
@_handle_errors
def hour_types_edit(ref: str, name, description, color, class_hour):
    """עורך סוג שעה (לפי מזהה או שם)."""
    registry = _services().hour_types
    ht = _resolve_hour_type(registry.list(), ref)
    updated = registry.update(
        ht.id, name=name, description=description, color=color, is_class_hour=class_hour
    )
    console.print(f"[green]✓[/green] סוג השעה עודכן: {updated.name}")


@cmd_hour_types.command("delete")
@click.argument("ref")
@click.option("--yes", "-y", is_flag=True, default=False, help="ללא אישור.")
@_handle_errors
def hour_types_delete(ref: str, yes: bool):
    """מוחק סוג שעה. בנקים והקצאות קיימים יוצגו כ"לא ידוע"."""
    registry = _services().hour_types
    ht = _resolve_hour_type(registry.list(), ref)
    if not yes and not click.confirm(f"למחוק את סוג השעה '{ht.name}'?", default=False):
        return
    registry.delete(ht.id)
    console.print(f"[green]✓[/green] סוג השעה נמחק: {ht.name}")


@cmd_hour_types.command("init-defaults")
@_handle_errors
def hour_types_init_defaults():
    """יוצר את סוגי השעות המוגדרים מראש (רק כשאין סוגי שעות)."""
    ids = _services().hour_types.initialize_defaults()
    if ids:
        console.print(f"[green]✓[/green] נוצרו {len(ids)} סוגי שעות")
    else:
        console.print("[yellow]קיימים כבר סוגי שעות, לא נוצר דבר.[/yellow]")


# ─── SCENARIO ─────────────────────────────────────────────────────────────────

@click.group("scenario")
def cmd_scenario():
    """ניהול תרחישים."""


@cmd_scenario.command("list")
@_handle_errors
def scenario_list():
    """מציג את כל התרחישים."""
    scenarios = _services().scenarios.list()
    if not scenarios:
        console.print("[dim]אין תרחישים.[/dim]")
        return
    table = Table(title="תרחישים", box=box.ROUNDED)
    table.add_column("שם", style="bold")
    table.add_column("פעיל", justify="center")
    table.add_column("מורים", justify="center")
    table.add_column("כיתות", justify="center")
    table.add_column("עודכן")
    table.add_column("מזהה", style="dim")
    for s in scenarios:
        table.add_row(
            s.name,
            "[green]✓[/green]" if s.is_active else "",
            str(len(s.teachers)),
            str(len(s.classes)),
            s.updated_at.strftime("%Y-%m-%d %H:%M") if s.updated_at else "",
            s.id,
        )
    console.print(table)


@cmd_scenario.command("create")
@click.argument("name")
@click.option("--description", "-d", default="", help="תיאור התרחיש.")
@click.option("--bank", "-b", "banks", multiple=True, help='בנק שעות: "שם סוג שעה=שעות".')
@click.option("--activate", is_flag=True, default=False, help="להגדיר כתרחיש הפעיל.")
@_handle_errors
def scenario_create(name: str, description: str, banks: tuple, activate: bool):
    """יוצר תרחיש חדש עם בנק שעות לכל סוג שעה."""
    services = _services()
    totals = _parse_bank_totals(banks, services.hour_types.list())
    scenario = services.lifecycle.create(name, description, totals)
    if activate:
        services.lifecycle.set_active(scenario.id)
    console.print(f"[green]✓[/green] התרחיש נוצר: {scenario.name} ({scenario.id})")


def _print_banks(scenario, hour_types) -> None:
    from analysis.reports import get_hour_bank_report

    table = Table(title="בנקי שעות", box=box.ROUNDED)
    table.add_column("סוג שעה", style="bold")
    table.add_column('סה"כ', justify="right")
    table.add_column("מוקצה", justify="right")
    table.add_column("נותר", justify="right")
    table.add_column("ניצול", justify="right")
    for row in get_hour_bank_report(scenario, hour_types):
        remaining = fmt_hours(row.remaining_hours)
        if row.remaining_hours < 0:
            remaining = f"[red]{remaining}[/red]"
        table.add_row(row.hour_type_name, fmt_hours(row.total_hours),
                      fmt_hours(row.allocated_hours), remaining,
                      f"{row.utilization_percentage}%")
    console.print(table)


@cmd_scenario.command("show")
@click.argument("ref", required=False)
@_handle_errors
def scenario_show(ref: Optional[str]):
    """מציג סיכום של תרחיש ואת בנקי השעות שלו."""
    services = _services()
    scenario = services.scenarios.load(_resolve_scenario_id(services, ref))
    console.print(Panel(scenario.summary(), title=scenario.name, border_style="cyan"))
    if scenario.description:
        console.print(f"[dim]{scenario.description}[/dim]")
    _print_banks(scenario, services.hour_types.list())


@cmd_scenario.command("edit")
@click.argument("ref")
@click.option("--name", default=None, help="שם חדש.")
@click.option("--description", "-d", default=None, help="תיאור חדש.")
@click.option("--bank", "-b", "banks", multiple=True, help='סה"כ בנק: "שם סוג שעה=שעות".')
@_handle_errors
def scenario_edit(ref: str, name, description, banks: tuple):
    """עורך שם, תיאור וסה"כ בנקי שעות של תרחיש."""
    services = _services()
    ws = _workspace(ref)
    totals = _parse_bank_totals(banks, services.hour_types.list())
    updated, warnings = services.lifecycle.update_details(
        ws.scenario, name=name, description=description, bank_totals=totals
    )
    ws.commit(updated)
    for w in warnings:
        console.print(f"[yellow]⚠ {w}[/yellow]")
    console.print(f"[green]✓[/green] התרחיש עודכן: {updated.name}")


@cmd_scenario.command("delete")
@click.argument("ref")
@click.option("--yes", "-y", is_flag=True, default=False, help="ללא אישור.")
@_handle_errors
def scenario_delete(ref: str, yes: bool):
    """מוחק תרחיש לצמיתות."""
    services = _services()
    scenario = services.scenarios.load(_resolve_scenario_id(services, ref))
    if not yes and not click.confirm(f"למחוק את התרחיש '{scenario.name}'?", default=False):
        return
    services.lifecycle.delete(scenario.id)
    console.print(f"[green]✓[/green] התרחיש נמחק: {scenario.name}")


@cmd_scenario.command("duplicate")
@click.argument("ref")
@_handle_errors
def scenario_duplicate(ref: str):
    """משכפל תרחיש (מזהים חדשים, לא פעיל)."""
    services = _services()
    copy = services.lifecycle.duplicate(_resolve_scenario_id(services, ref))
    console.print(f"[green]✓[/green] נוצר עותק: {copy.name} ({copy.id})")


@cmd_scenario.command("export")
@click.argument("ref", required=False)
@click.option("--output-dir", "-o", type=click.Path(path_type=Path), default=None,
              help="תיקיית יעד (ברירת מחדל מההגדרות).")
@_handle_errors
def scenario_export(ref: Optional[str], output_dir: Optional[Path]):
    """מייצא תרחיש לקובץ JSON."""
    services = _services()
    output_dir = output_dir or services.config.export.output_dir
    path = services.lifecycle.export_to_file(_resolve_scenario_id(services, ref), output_dir)
    console.print(f"[green]✓[/green] התרחיש יוצא: {path}")


@cmd_scenario.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-create-missing", is_flag=True, default=False,
              help="לא ליצור סוגי שעות חסרים.")
@click.option("--yes", "-y", is_flag=True, default=False, help="ללא אישור.")
@_handle_errors
def scenario_import(file: Path, no_create_missing: bool, yes: bool):
    """מייבא תרחיש מקובץ JSON כתרחיש חדש."""
    from planning.lifecycle import read_export_file

    services = _services()
    payload = read_export_file(file)
    check = services.lifecycle.validate_import(payload)
    check.print_rich()
    if not yes and not click.confirm("להמשיך בייבוא?", default=True):
        return
    scenario = services.lifecycle.import_(payload, create_missing=not no_create_missing)
    console.print(f"[green]✓[/green] התרחיש יובא: {scenario.name} ({scenario.id})")


@cmd_scenario.command("activate")
@click.argument("ref")
@_handle_errors
def scenario_activate(ref: str):
    """מגדיר תרחיש כפעיל (כל השאר לא פעילים)."""
    services = _services()
    scenario_id = _resolve_scenario_id(services, ref)
    services.lifecycle.set_active(scenario_id)
    console.print(f"[green]✓[/green] התרחיש הפעיל: {scenario_id}")


@cmd_scenario.command("check")
@click.argument("ref", required=False)
@_handle_errors
def scenario_check(ref: Optional[str]):
    """בודק את עקביות הבנקים והמורים מול ההקצאות."""
    services = _services()
    scenario = services.scenarios.load(_resolve_scenario_id(services, ref))
    report = scenario.check_consistency(services.hour_types.list())
    report.print_rich()
    sys.exit(0 if report.is_consistent else 1)


@cmd_scenario.command("repair")
@click.argument("ref", required=False)
@_handle_errors
def scenario_repair(ref: Optional[str]):
    """מחשב מחדש את סיכומי הבנקים והמורים מתוך ההקצאות."""
    from planning.ledger import recompute_aggregates

    ws = _workspace(ref)
    ws.apply(recompute_aggregates, fields=["hour_banks", "teachers"])
    console.print(f"[green]✓[/green] הסיכומים חושבו מחדש: {ws.scenario.name}")


@cmd_scenario.command("compare")
@click.argument("base_ref")
@click.argument("other_ref")
@click.option("--json", "as_json", is_flag=True, default=False, help="פלט JSON.")
@_handle_errors
def scenario_compare(base_ref: str, other_ref: str, as_json: bool):
    """משווה בין שני תרחישים."""
    from analysis.diff import compare_scenarios

    services = _services()
    a = services.scenarios.load(_resolve_scenario_id(services, base_ref))
    b = services.scenarios.load(_resolve_scenario_id(services, other_ref))
    diff = compare_scenarios(a, b, services.hour_types.list())
    if as_json:
        click.echo(diff.to_json())
    else:
        diff.print_rich()


# ─── TEACHER ──────────────────────────────────────────────────────────────────

@click.group("teacher")
def cmd_teacher():
    """ניהול מורים בתרחיש."""


@cmd_teacher.command("list")
@scenario_option
@click.option("--search", "-q", default="", help="חיפוש בשם, דוא\"ל, ת.ז. או מקצוע.")
@_handle_errors
def teacher_list(scenario_ref, search: str):
    """מציג את מורי התרחיש."""
    from planning.registry import search_teachers

    services = _services()
    scenario = services.scenarios.load(_resolve_scenario_id(services, scenario_ref))
    teachers = search_teachers(scenario, search)
    if not teachers:
        console.print("[dim]לא נמצאו מורים.[/dim]")
        return
    class_names = {c.id: c.name for c in scenario.classes}
    table = Table(title=f"מורים · {scenario.name}", box=box.ROUNDED)
    table.add_column("שם", style="bold")
    table.add_column("ת.ז.")
    table.add_column("מקצוע")
    table.add_column("שעות", justify="right")
    table.add_column("ניצול", justify="right")
    table.add_column("מחנך")
    for t in teachers:
        table.add_row(
            t.name, t.id_number, t.subject or "",
            f"{fmt_hours(t.allocated_hours)}/{fmt_hours(t.max_hours)}",
            f"{t.utilization_percentage}%",
            ", ".join(class_names.get(c, c) for c in t.homeroom_class_ids),
        )
    console.print(table)


@cmd_teacher.command("add")
@click.argument("name")
@scenario_option
@click.option("--id-number", default="", help="ת.ז. (ריק = מספר אקראי ייחודי).")
@click.option("--email", default=None)
@click.option("--phone", default=None)
@click.option("--subject", default=None)
@click.option("--max-hours", type=float, default=None, help="מקסימום שעות שבועיות.")
@_handle_errors
def teacher_add(name, scenario_ref, id_number, email, phone, subject, max_hours):
    """מוסיף מורה לתרחיש."""
    from planning.registry import add_teacher

    services = _services()
    ws = _workspace(scenario_ref)
    if max_hours is None:
        max_hours = services.config.allocation.default_teacher_max_hours
    updated, teacher = add_teacher(
        ws.scenario, name, id_number, email=email, phone=phone,
        subject=subject, max_hours=max_hours,
    )
    ws.commit(updated, fields=["teachers"])
    console.print(f"[green]✓[/green] המורה נוסף: {teacher.name} (ת.ז. {teacher.id_number})")


@cmd_teacher.command("edit")
@click.argument("ref")
@scenario_option
@click.option("--name", default=None)
@click.option("--id-number", default=None)
@click.option("--email", default=None)
@click.option("--phone", default=None)
@click.option("--subject", default=None)
@click.option("--max-hours", type=float, default=None)
@_handle_errors
def teacher_edit(ref, scenario_ref, name, id_number, email, phone, subject, max_hours):
    """עורך פרטי מורה (לפי מזהה, ת.ז. או שם)."""
    from planning.registry import update_teacher

    ws = _workspace(scenario_ref)
    teacher = _resolve_teacher(ws.scenario, ref)
    ws.apply(update_teacher, teacher.id, name=name, id_number=id_number, email=email,
             phone=phone, subject=subject, max_hours=max_hours, fields=["teachers"])
    updated = ws.scenario.get_teacher(teacher.id)
    if updated.allocated_hours > updated.max_hours:
        console.print(
            f"[yellow]⚠ למורה מוקצות {fmt_hours(updated.allocated_hours)} שעות, "
            f"מעל המקסימום החדש ({fmt_hours(updated.max_hours)})[/yellow]"
        )
    console.print(f"[green]✓[/green] המורה עודכן: {updated.name}")


@cmd_teacher.command("delete")
@click.argument("ref")
@scenario_option
@click.option("--yes", "-y", is_flag=True, default=False, help="ללא אישור.")
@_handle_errors
def teacher_delete(ref, scenario_ref, yes: bool):
    """מוחק מורה יחד עם ההקצאות שלו (השעות חוזרות לבנק)."""
    from planning.registry import remove_teacher

    ws = _workspace(scenario_ref)
    teacher = _resolve_teacher(ws.scenario, ref)
    if not yes and not click.confirm(f"למחוק את המורה '{teacher.name}'?", default=False):
        return
    ws.apply(remove_teacher, teacher.id)
    console.print(f"[green]✓[/green] המורה נמחק: {teacher.name}")


@cmd_teacher.command("homeroom")
@click.argument("ref")
@click.argument("classes", nargs=-1)
@scenario_option
@_handle_errors
def teacher_homeroom(ref, classes: tuple, scenario_ref):
    """קובע את כיתות החינוך של מורה (עד 2; ללא כיתות = ביטול)."""
    from planning.registry import set_homeroom_classes

    ws = _workspace(scenario_ref)
    teacher = _resolve_teacher(ws.scenario, ref)
    class_ids = [_resolve_class(ws.scenario, c).id for c in classes]
    ws.apply(set_homeroom_classes, teacher.id, class_ids, fields=["teachers", "classes"])
    console.print(f"[green]✓[/green] כיתות חינוך של {teacher.name}: {', '.join(classes) or '-'}")


# ─── CLASS ────────────────────────────────────────────────────────────────────

@click.group("class")
def cmd_class():
    """ניהול כיתות בתרחיש."""


@cmd_class.command("list")
@scenario_option
@click.option("--search", "-q", default="", help="חיפוש בשם או בשכבה.")
@_handle_errors
def class_list(scenario_ref, search: str):
    """מציג את כיתות התרחיש לפי שכבות."""
    from planning.registry import classes_by_grade, search_classes

    services = _services()
    scenario = services.scenarios.load(_resolve_scenario_id(services, scenario_ref))
    matching = {c.id for c in search_classes(scenario, search)}
    by_grade, special = classes_by_grade(scenario)
    teacher_names = {t.id: t.name for t in scenario.teachers}

    table = Table(title=f"כיתות · {scenario.name}", box=box.ROUNDED)
    table.add_column("שכבה", style="bold")
    table.add_column("כיתה")
    table.add_column("תלמידים", justify="right")
    table.add_column("מחנך")
    groups = list(by_grade.items()) + ([("חינוך מיוחד", special)] if special else [])
    shown = 0
    for grade, classes in groups:
        for c in classes:
            if c.id not in matching:
                continue
            table.add_row(grade, c.name, str(c.student_count),
                          teacher_names.get(c.homeroom_teacher_id, ""))
            shown += 1
    if not shown:
        console.print("[dim]לא נמצאו כיתות.[/dim]")
        return
    console.print(table)


@cmd_class.command("add")
@click.argument("name")
@scenario_option
@click.option("--grade", "-g", required=True, help="שכבה (א..ו).")
@click.option("--students", type=int, default=None, help="מספר תלמידים.")
@click.option("--homeroom", default=None, help="מחנך הכיתה (מזהה, ת.ז. או שם).")
@click.option("--special", is_flag=True, default=False, help="כיתת חינוך מיוחד.")
@_handle_errors
def class_add(name, scenario_ref, grade, students, homeroom, special):
    """מוסיף כיתה לתרחיש."""
    from planning.registry import add_class

    services = _services()
    ws = _workspace(scenario_ref)
    if students is None:
        students = services.config.allocation.default_student_count
    homeroom_id = _resolve_teacher(ws.scenario, homeroom).id if homeroom else None
    updated, school_class = add_class(
        ws.scenario, name, grade, students,
        homeroom_teacher_id=homeroom_id, is_special_education=special,
    )
    ws.commit(updated, fields=["classes", "teachers"])
    console.print(f"[green]✓[/green] הכיתה נוספה: {school_class.name}")


@cmd_class.command("edit")
@click.argument("ref")
@scenario_option
@click.option("--name", default=None)
@click.option("--grade", "-g", default=None)
@click.option("--students", type=int, default=None)
@click.option("--homeroom", default=None, help="מחנך חדש (מזהה, ת.ז. או שם).")
@click.option("--no-homeroom", is_flag=True, default=False, help="הסרת המחנך.")
@click.option("--special/--regular", default=None)
@_handle_errors
def class_edit(ref, scenario_ref, name, grade, students, homeroom, no_homeroom, special):
    """עורך פרטי כיתה."""
    from planning.registry import update_class

    ws = _workspace(scenario_ref)
    school_class = _resolve_class(ws.scenario, ref)
    kwargs = dict(name=name, grade=grade, student_count=students, is_special_education=special)
    if no_homeroom:
        kwargs["homeroom_teacher_id"] = None
    elif homeroom:
        kwargs["homeroom_teacher_id"] = _resolve_teacher(ws.scenario, homeroom).id
    ws.apply(update_class, school_class.id, fields=["classes", "teachers"], **kwargs)
    console.print(f"[green]✓[/green] הכיתה עודכנה: {ws.scenario.get_class(school_class.id).name}")


@cmd_class.command("delete")
@click.argument("ref")
@scenario_option
@click.option("--yes", "-y", is_flag=True, default=False, help="ללא אישור.")
@_handle_errors
def class_delete(ref, scenario_ref, yes: bool):
    """מוחק כיתה. הקצאות שנותרו ללא כיתה הופכות להקצאות כלליות."""
    from planning.registry import remove_class

    ws = _workspace(scenario_ref)
    school_class = _resolve_class(ws.scenario, ref)
    if not yes and not click.confirm(f"למחוק את הכיתה '{school_class.name}'?", default=False):
        return
    ws.apply(remove_class, school_class.id, fields=["classes", "allocations", "teachers"])
    console.print(f"[green]✓[/green] הכיתה נמחקה: {school_class.name}")


# ─── ALLOCATION ───────────────────────────────────────────────────────────────

@click.group("allocation")
def cmd_allocation():
    """הקצאת שעות למורים."""


def _editor(scenario, teacher_id: str):
    from planning.ledger import AllocationEditor
    limit = _services().config.allocation.max_cell_hours
    return AllocationEditor(scenario, teacher_id, max_cell_hours=limit)


@cmd_allocation.command("show")
@click.argument("teacher_ref")
@scenario_option
@_handle_errors
def allocation_show(teacher_ref, scenario_ref):
    """מציג את ההקצאות של מורה לפי סוג שעה וכיתה."""
    from models.hour_type import hour_type_name

    services = _services()
    scenario = services.scenarios.load(_resolve_scenario_id(services, scenario_ref))
    teacher = _resolve_teacher(scenario, teacher_ref)
    editor = _editor(scenario, teacher.id)
    hour_types = services.hour_types.list()
    class_names = {c.id: c.name for c in scenario.classes}

    table = Table(title=f"הקצאות · {teacher.name}", box=box.ROUNDED)
    table.add_column("סוג שעה", style="bold")
    table.add_column("כיתה")
    table.add_column("שעות", justify="right")
    table.add_column("זמין", justify="right", style="dim")
    for ht_id in editor.visible_hour_types():
        entry = editor.entries[ht_id]
        name = hour_type_name(hour_types, ht_id)
        available = fmt_hours(editor.available_hours(ht_id))
        if entry.general_hours or not entry.class_hours:
            table.add_row(name, "כללי", fmt_hours(entry.general_hours), available)
        for class_id, hours in entry.class_hours.items():
            table.add_row(name, class_names.get(class_id, class_id), fmt_hours(hours), available)
    console.print(table)
    console.print(
        f'סה"כ: {fmt_hours(editor.teacher_total())} / {fmt_hours(teacher.max_hours)} שעות'
    )


@cmd_allocation.command("set")
@click.argument("teacher_ref")
@click.argument("hour_type_ref")
@click.argument("hours", type=float)
@scenario_option
@click.option("--class", "class_ref", default=None, help="כיתה (ללא = הקצאה כללית).")
@_handle_errors
def allocation_set(teacher_ref, hour_type_ref, hours: float, scenario_ref, class_ref):
    """קובע את מספר השעות של מורה בסוג שעה (ובכיתה)."""
    services = _services()
    ws = _workspace(scenario_ref)
    teacher = _resolve_teacher(ws.scenario, teacher_ref)
    ht = _resolve_hour_type(services.hour_types.list(), hour_type_ref)
    editor = _editor(ws.scenario, teacher.id)
    if class_ref:
        editor.set_class_hours(ht.id, _resolve_class(ws.scenario, class_ref).id, hours)
    else:
        editor.set_general_hours(ht.id, hours)
    ws.commit(editor.save(), fields=["allocations", "hour_banks", "teachers"])
    console.print(
        f"[green]✓[/green] {teacher.name} · {ht.name}: {fmt_hours(editor.type_total(ht.id))} שעות"
    )


@cmd_allocation.command("clear")
@click.argument("teacher_ref")
@scenario_option
@click.option("--hour-type", "hour_type_ref", default=None, help="רק סוג שעה זה.")
@_handle_errors
def allocation_clear(teacher_ref, scenario_ref, hour_type_ref):
    """מוחק את הקצאות המורה (הכל או סוג שעה אחד)."""
    services = _services()
    ws = _workspace(scenario_ref)
    teacher = _resolve_teacher(ws.scenario, teacher_ref)
    editor = _editor(ws.scenario, teacher.id)
    if hour_type_ref:
        editor.remove_hour_type(_resolve_hour_type(services.hour_types.list(), hour_type_ref).id)
    else:
        editor.clear()
    ws.commit(editor.save(), fields=["allocations", "hour_banks", "teachers"])
    console.print(f"[green]✓[/green] ההקצאות נמחקו: {teacher.name}")


@cmd_allocation.command("remove")
@click.argument("allocation_id")
@scenario_option
@_handle_errors
def allocation_remove(allocation_id: str, scenario_ref):
    """מוחק הקצאה בודדת לפי מזהה."""
    from planning.ledger import remove_allocation

    ws = _workspace(scenario_ref)
    ws.apply(remove_allocation, allocation_id, fields=["allocations", "hour_banks", "teachers"])
    console.print(f"[green]✓[/green] ההקצאה נמחקה: {allocation_id}")


# ─── REPORT ───────────────────────────────────────────────────────────────────

@click.group("report")
def cmd_report():
    """דוחות הקצאת שעות."""


def _report_inputs(scenario_ref):
    services = _services()
    scenario = services.scenarios.load(_resolve_scenario_id(services, scenario_ref))
    return services, scenario, services.hour_types.list()


def _exporter(services, scenario, hour_types):
    from export.excel_export import ReportExcelExporter
    rc = services.config.reports
    return ReportExcelExporter(
        scenario, hour_types,
        under_percent=rc.under_utilized_percent,
        over_percent=rc.over_allocated_percent,
    )


def _output_dir(services, output_dir: Optional[Path]) -> Path:
    return Path(output_dir or services.config.export.output_dir)


output_dir_option = click.option(
    "--output-dir", "-o", type=click.Path(path_type=Path), default=None,
    help="תיקיית יעד (ברירת מחדל מההגדרות).",
)


@cmd_report.command("show")
@scenario_option
@_handle_errors
def report_show(scenario_ref):
    """מציג את מטריצת סוג שעה × מורה."""
    from analysis.reports import generate_report_data

    services, scenario, hour_types = _report_inputs(scenario_ref)
    report = generate_report_data(scenario, hour_types)
    if not report.hour_types:
        console.print("[dim]אין הקצאות בתרחיש.[/dim]")
        return
    report.print_rich(title=f"דוח הקצאת שעות · {scenario.name}")


@cmd_report.command("excel")
@scenario_option
@output_dir_option
@click.option("--all", "export_all", is_flag=True, default=False,
              help="גם דוח סיכום ודוח פירוט כיתות.")
@click.option("--no-utilization", is_flag=True, default=False, help="ללא שורת אחוז ניצול.")
@_handle_errors
def report_excel(scenario_ref, output_dir, export_all: bool, no_utilization: bool):
    """מייצא את דוח ההקצאה ל-Excel."""
    services, scenario, hour_types = _report_inputs(scenario_ref)
    exporter = _exporter(services, scenario, hour_types)
    out = _output_dir(services, output_dir)
    if export_all:
        paths = exporter.export_all(out)
    else:
        paths = [exporter.export_matrix(out / exporter.matrix_filename(),
                                        include_utilization=not no_utilization)]
    for path in paths:
        console.print(f"[green]✓[/green] {path}")


@cmd_report.command("summary")
@scenario_option
@output_dir_option
@click.option("--excel", is_flag=True, default=False, help="לשמור גם כקובץ Excel.")
@_handle_errors
def report_summary(scenario_ref, output_dir, excel: bool):
    """סיכום ניצול המורים בתרחיש."""
    from analysis.reports import (
        UTILIZATION_LABELS, classify_utilization, generate_report_data,
        get_scenario_summary, get_teacher_hour_breakdowns,
    )

    services, scenario, hour_types = _report_inputs(scenario_ref)
    rc = services.config.reports
    under, over = rc.under_utilized_percent, rc.over_allocated_percent
    summary = get_scenario_summary(generate_report_data(scenario, hour_types), under, over)

    console.print(Panel(
        f"מורים: {summary.total_teachers}\n"
        f'סה"כ שעות מוקצות: {fmt_hours(summary.total_allocated_hours)} / '
        f"{fmt_hours(summary.total_max_hours)}\n"
        f"ניצול ממוצע: {summary.average_utilization}%\n"
        f"בהקצאת יתר: {summary.teachers_over_allocated} | "
        f"בניצול חסר: {summary.teachers_under_utilized}",
        title=f"סיכום · {scenario.name}",
        border_style="cyan",
    ))
    table = Table(box=box.ROUNDED)
    table.add_column("מורה", style="bold")
    table.add_column("פירוט")
    table.add_column('סה"כ', justify="right")
    table.add_column("ניצול", justify="right")
    table.add_column("מצב")
    colors = {"under": "yellow", "over": "red", "optimal": "green"}
    for row in get_teacher_hour_breakdowns(scenario, hour_types):
        status = classify_utilization(row.utilization_percentage, under, over)
        detail = ", ".join(f"{h.hour_type_name} {fmt_hours(h.hours)}" for h in row.hour_breakdown)
        table.add_row(row.teacher_name, detail, fmt_hours(row.total_hours),
                      f"{row.utilization_percentage}%",
                      f"[{colors[status]}]{UTILIZATION_LABELS[status]}[/{colors[status]}]")
    console.print(table)

    if excel:
        exporter = _exporter(services, scenario, hour_types)
        path = exporter.export_summary(_output_dir(services, output_dir) / exporter.summary_filename())
        console.print(f"[green]✓[/green] {path}")


@cmd_report.command("detailed")
@scenario_option
@output_dir_option
@click.option("--excel", is_flag=True, default=False, help="לשמור גם כקובץ Excel.")
@_handle_errors
def report_detailed(scenario_ref, output_dir, excel: bool):
    """פירוט השעות לפי כיתות לכל סוג שעה."""
    from analysis.reports import generate_detailed_report_data

    services, scenario, hour_types = _report_inputs(scenario_ref)
    generate_detailed_report_data(scenario, hour_types).print_rich()
    if excel:
        exporter = _exporter(services, scenario, hour_types)
        path = exporter.export_detailed(_output_dir(services, output_dir) / exporter.detailed_filename())
        console.print(f"[green]✓[/green] {path}")


@cmd_report.command("classes")
@scenario_option
@click.option("--class", "class_ref", default=None, help="רק כיתה זו.")
@_handle_errors
def report_classes(scenario_ref, class_ref):
    """ההקצאות מקובצות לפי כיתה, וההקצאות הכלליות."""
    from analysis.reports import UNKNOWN_NAME, class_allocation_view
    from models.hour_type import hour_type_name

    services, scenario, hour_types = _report_inputs(scenario_ref)
    class_id = _resolve_class(scenario, class_ref).id if class_ref else None
    view = class_allocation_view(scenario, class_id)
    names = {t.id: t.name for t in scenario.teachers}

    for group in view.by_class:
        table = Table(title=f"{group.school_class.name} · {fmt_hours(group.total_hours)} שעות",
                      box=box.SIMPLE_HEAVY)
        table.add_column("מורה")
        table.add_column("סוג שעה")
        table.add_column("שעות", justify="right")
        for a in group.allocations:
            table.add_row(names.get(a.teacher_id, UNKNOWN_NAME),
                          hour_type_name(hour_types, a.hour_type_id),
                          fmt_hours(a.hours / len(a.class_ids)))
        console.print(table)
    if view.general and class_id is None:
        table = Table(title="הקצאות כלליות", box=box.SIMPLE_HEAVY)
        table.add_column("מורה")
        table.add_column("סוג שעה")
        table.add_column("שעות", justify="right")
        for a in view.general:
            table.add_row(names.get(a.teacher_id, UNKNOWN_NAME),
                          hour_type_name(hour_types, a.hour_type_id), fmt_hours(a.hours))
        console.print(table)
    if not view.by_class and not view.general:
        console.print("[dim]אין הקצאות.[/dim]")


# ─── MAIN CLI ─────────────────────────────────────────────────────────────────

@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="קובץ הגדרות (ברירת מחדל: config/app_config.yaml).")
@click.option("--verbose", "-v", is_flag=True, default=False, help="פלט יומן מפורט.")
@click.pass_context
def cli(ctx, config_path: Optional[Path], verbose: bool):
    """ניהול בנק שעות לבית ספר יסודי.

    התחל עם: python main.py hour-types init-defaults
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def main():
    cli()


cli.add_command(cmd_config)
cli.add_command(cmd_hour_types)
cli.add_command(cmd_scenario)
cli.add_command(cmd_teacher)
cli.add_command(cmd_class)
cli.add_command(cmd_allocation)
cli.add_command(cmd_report)


if __name__ == "__main__":
    main()
