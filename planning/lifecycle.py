"""Scenario lifecycle: create, edit, duplicate, export, import, delete.

Duplicate and import never copy derived counters: both remap every id
through an IdMap and then rebuild bank and teacher totals from the remapped
ledger.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

from data.repository import ScenarioRepository
from export.helpers import clean_file_part
from models.base import CamelModel, fmt_hours, new_id, utcnow
from models.hour_bank import HourBank
from models.hour_type import HourType
from models.scenario import Scenario
from planning.errors import ImportFormatError, ValidationFailed
from planning.ids import IdMap
from planning.ledger import recompute_aggregates
from planning.registry import HourTypeRegistry

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
DUPLICATE_SUFFIX = " - עותק"
IMPORT_SUFFIX = " (מיובא)"
MAX_NAME = 100
MAX_DESCRIPTION = 300


# ─── Export format ────────────────────────────────────────────────────────────

class ScenarioExport(CamelModel):
    """Export file: {scenario, hourTypes, exportedAt, version}."""

    scenario: Scenario
    hour_types: list[HourType] = Field(default_factory=list)
    exported_at: datetime
    version: str = EXPORT_VERSION

    def to_json(self) -> str:
        return json.dumps(self.to_document(), ensure_ascii=False, indent=2)


class ImportValidation(BaseModel):
    """Outcome of checking an import file against the user's hour types.

    Missing hour types are advisory; is_valid stays True.
    """

    is_valid: bool = True
    missing_hour_types: list[HourType]
    existing_hour_types: list[HourType]
    warnings: list[str]

    def print_rich(self) -> None:
        from rich.console import Console
        from rich.panel import Panel

        console = Console()
        lines = [f"[green]סוגי שעות קיימים: {len(self.existing_hour_types)}[/green]"]
        if self.missing_hour_types:
            names = ", ".join(ht.name for ht in self.missing_hour_types)
            lines.append(f"[yellow]סוגי שעות חסרים ({len(self.missing_hour_types)}): {names}[/yellow]")
        if self.warnings:
            lines.append("\n[yellow bold]אזהרות:[/yellow bold]")
            for w in self.warnings:
                lines.append(f"  [yellow]• {w}[/yellow]")
        console.print(Panel("\n".join(lines), title="בדיקת ייבוא", border_style="cyan"))


def parse_export(source: Union[str, bytes, dict]) -> ScenarioExport:
    """Parses and schema-validates an export document before any write."""
    if isinstance(source, (str, bytes)):
        try:
            source = json.loads(source)
        except json.JSONDecodeError as e:
            raise ImportFormatError(f"קובץ JSON לא תקין: {e}") from e
    if not isinstance(source, dict):
        raise ImportFormatError("מבנה קובץ הייבוא אינו תקין")
    try:
        return ScenarioExport.model_validate(source)
    except ValidationError as e:
        raise ImportFormatError(f"מבנה קובץ הייבוא אינו תקין:\n{e}") from e


def read_export_file(path: Path) -> ScenarioExport:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"קובץ לא נמצא: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return parse_export(f.read())


def export_filename(scenario_name: str, day: Optional[datetime] = None) -> str:
    """"{name}-{YYYY-MM-DD}.json", with path separators removed from the name."""
    day = day or utcnow()
    return f"{clean_file_part(scenario_name)}-{day.strftime('%Y-%m-%d')}.json"


# ─── Pure transformations ─────────────────────────────────────────────────────

def _unique_name(name: str, taken: set[str], suffix: str = "") -> str:
    """name + suffix, numbered " 2", " 3" ... until unused.

    The base name is cut so the result stays within MAX_NAME characters.
    """
    def fit(number: str) -> str:
        room = MAX_NAME - len(suffix) - len(number)
        return name.strip()[:room].rstrip() + suffix + number

    candidate = fit("")
    n = 2
    while candidate in taken:
        candidate = fit(f" {n}")
        n += 1
    return candidate


def remap_scenario(
    scenario: Scenario,
    hour_type_map: Optional[IdMap] = None,
) -> tuple[Scenario, dict[str, IdMap]]:
    """Copy of the scenario with fresh ids for every child entity.

    Teacher, class and hour type references are rewritten through the maps;
    hour type ids without a mapping are kept as they are, and banks whose
    hour types map to the same id are merged. Derived counters
    are rebuilt from the remapped ledger.
    """
    hour_type_map = hour_type_map or IdMap("hourType")
    maps = {
        "teacher": IdMap("teacher"),
        "class": IdMap("class"),
        "allocation": IdMap("allocation"),
        "bank": IdMap("bank"),
        "hourType": hour_type_map,
    }
    for t in scenario.teachers:
        maps["teacher"].assign(t.id)
    for c in scenario.classes:
        maps["class"].assign(c.id)

    teachers = [
        t.model_copy(update={
            "id": maps["teacher"].remap(t.id),
            "homeroom_class_ids": maps["class"].remap_all(t.homeroom_class_ids),
        })
        for t in scenario.teachers
    ]
    classes = [
        c.model_copy(update={
            "id": maps["class"].remap(c.id),
            "homeroom_teacher_id": maps["teacher"].new(c.homeroom_teacher_id)
            if c.homeroom_teacher_id else None,
        })
        for c in scenario.classes
    ]
    banks: list[HourBank] = []
    bank_of_type: dict[str, int] = {}
    for b in scenario.hour_banks:
        hour_type_id = hour_type_map.remap(b.hour_type_id)
        if hour_type_id in bank_of_type:
            # two hour types resolved to one; their totals are merged
            i = bank_of_type[hour_type_id]
            banks[i] = banks[i].model_copy(update={"total_hours": banks[i].total_hours + b.total_hours})
            continue
        bank_of_type[hour_type_id] = len(banks)
        banks.append(b.model_copy(update={
            "id": maps["bank"].assign(b.id),
            "hour_type_id": hour_type_id,
        }))
    allocations = []
    for a in scenario.allocations:
        teacher_id = maps["teacher"].new(a.teacher_id)
        if teacher_id is None:
            logger.warning(f"Allocation {a.id} dropped: unknown teacher {a.teacher_id}")
            continue
        allocations.append(a.model_copy(update={
            "id": maps["allocation"].assign(a.id),
            "teacher_id": teacher_id,
            "class_ids": maps["class"].remap_all(a.class_ids),
            "hour_type_id": hour_type_map.remap(a.hour_type_id),
        }))

    copy = scenario.model_copy(update={
        "id": new_id(),
        "teachers": teachers,
        "classes": classes,
        "hour_banks": banks,
        "allocations": allocations,
        "is_active": False,
    })
    return recompute_aggregates(copy), maps


def duplicate_scenario(scenario: Scenario, taken_names: Optional[set[str]] = None) -> Scenario:
    """Deep copy with fresh ids, inactive, named "<name> - עותק"."""
    copy, _ = remap_scenario(scenario)
    now = utcnow()
    name = _unique_name(scenario.name, taken_names or set(), DUPLICATE_SUFFIX)
    return copy.model_copy(update={"name": name, "created_at": now, "updated_at": now})


def build_export(scenario: Scenario, hour_types: list[HourType]) -> ScenarioExport:
    """Export payload: only banks with hours, and the hour types they use.

    Teachers, classes and allocations are embedded verbatim (ids unchanged).
    """
    banks = [b for b in scenario.hour_banks if b.total_hours > 0]
    used = {b.hour_type_id for b in banks}
    return ScenarioExport(
        scenario=scenario.model_copy(update={"hour_banks": banks}),
        hour_types=[ht for ht in hour_types if ht.id in used],
        exported_at=utcnow(),
        version=EXPORT_VERSION,
    )


def _match_hour_type(candidate: HourType, existing: list[HourType]) -> Optional[HourType]:
    """Existing hour type with the same name (case-insensitive), else the same id."""
    wanted = candidate.name.strip().lower()
    by_name = next((ht for ht in existing if ht.name.strip().lower() == wanted), None)
    if by_name is not None:
        return by_name
    return next((ht for ht in existing if ht.id == candidate.id), None)


def validate_import(payload: ScenarioExport, existing: list[HourType]) -> ImportValidation:
    """Partitions the payload's hour types into missing and existing."""
    missing: list[HourType] = []
    found: list[HourType] = []
    warnings: list[str] = []

    for ht in payload.hour_types:
        match = _match_hour_type(ht, existing)
        if match is None:
            missing.append(ht)
            continue
        found.append(match)
        if match.color.lower() != ht.color.lower() or match.is_class_hour != ht.is_class_hour:
            warnings.append(f"סוג השעה '{ht.name}' קיים עם הגדרות שונות (צבע/שעה כיתתית)")

    scenario = payload.scenario
    if not scenario.name.strip():
        warnings.append("לתרחיש המיובא אין שם")
    if not scenario.hour_banks:
        warnings.append("לתרחיש המיובא אין בנקי שעות")
    listed = {ht.id for ht in payload.hour_types}
    for bank in scenario.hour_banks:
        if bank.hour_type_id not in listed:
            warnings.append(f"בנק שעות לסוג שעה שאינו כלול בקובץ ({bank.hour_type_id})")
    if payload.version != EXPORT_VERSION:
        warnings.append(f"גרסת קובץ לא מוכרת: {payload.version}")

    return ImportValidation(
        is_valid=True,
        missing_hour_types=missing,
        existing_hour_types=found,
        warnings=warnings,
    )


def validate_scenario_details(
    name: str,
    description: str,
    taken_names: set[str],
) -> dict[str, str]:
    errors: dict[str, str] = {}
    name = (name or "").strip()
    if not name:
        errors["name"] = "שם התרחיש הוא שדה חובה"
    elif len(name) < 2:
        errors["name"] = "שם התרחיש חייב להכיל לפחות 2 תווים"
    elif len(name) > MAX_NAME:
        errors["name"] = f"שם התרחיש לא יכול להכיל יותר מ-{MAX_NAME} תווים"
    elif name in taken_names:
        errors["name"] = "תרחיש עם שם זה כבר קיים"
    if len(description or "") > MAX_DESCRIPTION:
        errors["description"] = f"התיאור לא יכול להכיל יותר מ-{MAX_DESCRIPTION} תווים"
    return errors


def rebuild_banks(
    scenario: Scenario,
    hour_types: list[HourType],
    bank_totals: dict[str, float],
) -> tuple[list[HourBank], list[str]]:
    """One bank per current hour type; existing banks keep id and allocated hours.

    Banks of hour types that no longer exist are kept only while they still
    carry allocated hours. Returns the banks and warnings for totals set below
    the allocated hours.
    """
    warnings: list[str] = []
    banks: list[HourBank] = []
    known = {ht.id for ht in hour_types}
    for ht in hour_types:
        current = scenario.get_bank(ht.id)
        total = bank_totals.get(ht.id, current.total_hours if current else 0)
        if total < 0:
            raise ValidationFailed({ht.id: "מספר השעות לא יכול להיות שלילי"})
        if current is None:
            banks.append(HourBank(id=new_id(), hour_type_id=ht.id,
                                  total_hours=total, remaining_hours=total))
            continue
        if total < current.allocated_hours:
            warnings.append(
                f"{ht.name}: סה\"כ {fmt_hours(total)} שעות נמוך מהשעות שכבר הוקצו "
                f"({fmt_hours(current.allocated_hours)})"
            )
        banks.append(current.model_copy(update={
            "total_hours": total,
            "remaining_hours": total - current.allocated_hours,
        }))
    for bank in scenario.hour_banks:
        if bank.hour_type_id not in known and bank.allocated_hours > 0:
            banks.append(bank)
    return banks, warnings


# ─── Persisted operations ─────────────────────────────────────────────────────

class ScenarioLifecycle:
    """Scenario operations against the user's repositories."""

    def __init__(self, scenarios: ScenarioRepository, hour_types: HourTypeRegistry) -> None:
        self.scenarios = scenarios
        self.hour_types = hour_types

    def _taken_names(self, exclude_id: Optional[str] = None) -> set[str]:
        return {s.name for s in self.scenarios.list() if s.id != exclude_id}

    def create(
        self,
        name: str,
        description: str = "",
        bank_totals: Optional[dict[str, float]] = None,
    ) -> Scenario:
        """New empty scenario with one bank per existing hour type."""
        bank_totals = {k: v for k, v in (bank_totals or {}).items() if v is not None}
        errors = validate_scenario_details(name, description, self._taken_names())
        hour_types = self.hour_types.list()
        if not any(bank_totals.get(ht.id, 0) > 0 for ht in hour_types):
            errors["hourBanks"] = "יש להקצות לפחות שעה אחת בבנק השעות"
        if any(v < 0 for v in bank_totals.values()):
            errors["hourBanks"] = "מספר השעות לא יכול להיות שלילי"
        if errors:
            raise ValidationFailed(errors)

        banks = [
            HourBank(id=new_id(), hour_type_id=ht.id,
                     total_hours=bank_totals.get(ht.id, 0),
                     remaining_hours=bank_totals.get(ht.id, 0))
            for ht in hour_types
        ]
        scenario = Scenario(
            id="",
            name=name.strip(),
            description=(description or "").strip(),
            is_active=False,
            hour_banks=banks,
        )
        scenario_id = self.scenarios.create(scenario)
        return self.scenarios.load(scenario_id)

    def update_details(
        self,
        scenario: Scenario,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
        bank_totals: Optional[dict[str, float]] = None,
    ) -> tuple[Scenario, list[str]]:
        """Edits name, description, active flag and bank totals.

        Returns the updated (unsaved) scenario and warnings.
        """
        name = scenario.name if name is None else name.strip()
        description = scenario.description if description is None else description.strip()
        errors = validate_scenario_details(name, description, self._taken_names(scenario.id))
        if errors:
            raise ValidationFailed(errors)

        banks, warnings = rebuild_banks(scenario, self.hour_types.list(), bank_totals or {})
        updated = scenario.model_copy(update={
            "name": name,
            "description": description,
            "is_active": scenario.is_active if is_active is None else is_active,
            "hour_banks": banks,
            "updated_at": utcnow(),
        })
        for w in warnings:
            logger.warning(w)
        return updated, warnings

    def duplicate(self, scenario_id: str) -> Scenario:
        source = self.scenarios.load(scenario_id)
        copy = duplicate_scenario(source, self._taken_names())
        copy_id = self.scenarios.create(copy)
        logger.info(f"Scenario duplicated: {scenario_id} → {copy_id}")
        return self.scenarios.load(copy_id)

    def export(self, scenario_id: str) -> ScenarioExport:
        return build_export(self.scenarios.load(scenario_id), self.hour_types.list())

    def export_to_file(self, scenario_id: str, output_dir: Path) -> Path:
        """Writes the export to "{name}-{date}.json" in output_dir."""
        payload = self.export(scenario_id)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / export_filename(payload.scenario.name, payload.exported_at)
        with open(path, "w", encoding="utf-8") as f:
            f.write(payload.to_json())
        logger.info(f"Scenario exported: {path}")
        return path

    def validate_import(self, payload: ScenarioExport) -> ImportValidation:
        return validate_import(payload, self.hour_types.list())

    def import_(self, payload: ScenarioExport, create_missing: bool = True) -> Scenario:
        """Imports as a new scenario named "<name> (מיובא)".

        Hour types are matched by name, then by id; several payload hour types
        may resolve to the same existing one. Missing ones are created when
        create_missing is set, otherwise their references stay as they are.
        Every hour type to be created is validated before the first write.
        """
        existing = self.hour_types.list()
        hour_type_map = IdMap("hourType")
        to_create: list[HourType] = []
        errors: dict[str, str] = {}
        for ht in payload.hour_types:
            match = _match_hour_type(ht, existing)
            if match is not None:
                hour_type_map.assign(ht.id, match.id)
            elif create_missing:
                problems = self.hour_types.validate(ht.name, ht.color, existing=existing + to_create)
                for field, message in problems.items():
                    errors[f"hourTypes.{ht.id}.{field}"] = message
                to_create.append(ht)
            else:
                logger.warning(f"Hour type not imported: {ht.name}")
        if errors:
            raise ValidationFailed(errors)

        for ht in to_create:
            created = self.hour_types.create(ht.name, ht.description, ht.color, ht.is_class_hour)
            hour_type_map.assign(ht.id, created)
            logger.info(f"Hour type created on import: {ht.name}")

        remapped, _ = remap_scenario(payload.scenario, hour_type_map)
        name = _unique_name(payload.scenario.name, self._taken_names(), IMPORT_SUFFIX)
        remapped = remapped.model_copy(update={"name": name})
        new_key = self.scenarios.create(remapped)
        logger.info(f"Scenario imported: {name} ({new_key})")
        return self.scenarios.load(new_key)

    def delete(self, scenario_id: str) -> None:
        self.scenarios.load(scenario_id)
        self.scenarios.delete(scenario_id)

    def set_active(self, scenario_id: str) -> None:
        """Marks one scenario active and every other scenario inactive."""
        self.scenarios.load(scenario_id)
        for s in self.scenarios.list():
            should = s.id == scenario_id
            if s.is_active != should:
                self.scenarios.update(s.id, is_active=should)

