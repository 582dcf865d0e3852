"""Hour type registry and the per-scenario teacher / class registries.

Validation collects one Hebrew message per field (keys follow the stored
camelCase field names) and raises ValidationFailed with the whole map.
Teacher and class operations are pure functions returning a new Scenario.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Optional

from config.defaults import DEFAULT_HOUR_TYPES, GRADES
from data.repository import HourTypeRepository
from models.base import new_id, utcnow
from models.hour_type import COLOR_PATTERN, HourType
from models.scenario import Scenario
from models.school_class import SchoolClass
from models.teacher import MAX_HOMEROOM_CLASSES, Teacher
from planning.errors import ValidationFailed
from planning.ids import generate_id_number

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[\d\-+().\s]+$")

MSG_HOMEROOM_LIMIT = f"מורה יכול להיות מחנך של עד {MAX_HOMEROOM_CLASSES} כיתות"
MSG_TEACHER_NOT_FOUND = "המורה לא נמצא בתרחיש"
MSG_CLASS_NOT_FOUND = "הכיתה לא נמצאה בתרחיש"


def _check_name(errors: dict, label: str, name: str, min_len: int, max_len: int) -> None:
    name = (name or "").strip()
    if not name:
        errors["name"] = f"{label} הוא שדה חובה"
    elif len(name) < min_len:
        errors["name"] = f"{label} חייב להכיל לפחות {min_len} תווים"
    elif len(name) > max_len:
        errors["name"] = f"{label} לא יכול להכיל יותר מ-{max_len} תווים"


# ─── Hour types ───────────────────────────────────────────────────────────────

class HourTypeRegistry:
    """The user's hour types, validated on every write.

    Deleting an hour type does not touch scenarios; banks and allocations
    referring to it are shown as unknown.
    """

    def __init__(self, repository: HourTypeRepository) -> None:
        self.repository = repository

    def list(self) -> list[HourType]:
        return self.repository.list()

    def get(self, hour_type_id: str) -> Optional[HourType]:
        return self.repository.get(hour_type_id)

    def validate(
        self,
        name: str,
        color: str,
        exclude_id: Optional[str] = None,
        existing: Optional[list[HourType]] = None,
    ) -> dict[str, str]:
        errors: dict[str, str] = {}
        _check_name(errors, "שם סוג השעה", name, 2, 50)
        if "name" not in errors:
            existing = self.list() if existing is None else existing
            wanted = name.strip().lower()
            if any(ht.name.strip().lower() == wanted and ht.id != exclude_id for ht in existing):
                errors["name"] = "סוג שעה עם שם זה כבר קיים"
        if not COLOR_PATTERN.match(color or ""):
            errors["color"] = "צבע לא תקין (נדרש פורמט #RRGGBB)"
        return errors

    def create(
        self,
        name: str,
        description: str = "",
        color: str = "#3B82F6",
        is_class_hour: bool = False,
    ) -> str:
        errors = self.validate(name, color)
        if errors:
            raise ValidationFailed(errors)
        return self.repository.create({
            "name": name.strip(),
            "description": (description or "").strip(),
            "color": color,
            "is_class_hour": is_class_hour,
        })

    def update(self, hour_type_id: str, **changes) -> HourType:
        """Partial update; unknown ids raise ValidationFailed."""
        current = self.get(hour_type_id)
        if current is None:
            raise ValidationFailed({"id": f"סוג שעה לא נמצא: {hour_type_id}"})
        changes = {k: v for k, v in changes.items() if v is not None}
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        merged = current.model_copy(update=changes)
        errors = self.validate(merged.name, merged.color, exclude_id=hour_type_id)
        if errors:
            raise ValidationFailed(errors)
        self.repository.update(hour_type_id, changes)
        return merged

    def delete(self, hour_type_id: str) -> None:
        self.repository.delete(hour_type_id)

    def initialize_defaults(self) -> list[str]:
        """Seeds the default hour types when the user has none yet."""
        if self.list():
            logger.info("Hour types already present, defaults skipped")
            return []
        ids = [self.repository.create(dict(ht)) for ht in DEFAULT_HOUR_TYPES]
        logger.info(f"{len(ids)} default hour types created")
        return ids


# ─── Teachers ─────────────────────────────────────────────────────────────────

def validate_teacher(
    scenario: Scenario,
    name: str,
    id_number: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    max_hours: float = 40,
    exclude_id: Optional[str] = None,
) -> dict[str, str]:
    errors: dict[str, str] = {}
    _check_name(errors, "שם המורה", name, 2, 100)

    id_number = (id_number or "").strip()
    if not id_number:
        errors["idNumber"] = "מספר תעודת זהות הוא שדה חובה"
    elif any(t.id_number == id_number and t.id != exclude_id for t in scenario.teachers):
        errors["idNumber"] = "מספר תעודת זהות זה כבר קיים במערכת"

    if email and not EMAIL_PATTERN.match(email.strip()):
        errors["email"] = 'כתובת דוא"ל לא תקינה'
    if phone and not PHONE_PATTERN.match(phone.strip()):
        errors["phone"] = "מספר טלפון לא תקין"
    if max_hours is None or max_hours < 1 or max_hours > 60:
        errors["maxHours"] = "מספר שעות מקסימלי חייב להיות בין 1 ל-60"
    return errors


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def add_teacher(
    scenario: Scenario,
    name: str,
    id_number: str = "",
    email: Optional[str] = None,
    phone: Optional[str] = None,
    subject: Optional[str] = None,
    max_hours: float = 40,
) -> tuple[Scenario, Teacher]:
    """Adds a teacher; a blank id number gets a random unique 9-digit one."""
    id_number = (id_number or "").strip()
    if not id_number:
        id_number = generate_id_number({t.id_number for t in scenario.teachers})

    errors = validate_teacher(scenario, name, id_number, email, phone, max_hours)
    if errors:
        raise ValidationFailed(errors)

    teacher = Teacher(
        id=new_id(),
        name=name.strip(),
        email=_clean(email),
        phone=_clean(phone),
        id_number=id_number,
        subject=_clean(subject),
        max_hours=max_hours,
    )
    logger.info(f"Teacher added: {teacher.name} ({teacher.id})")
    return _touch(scenario, teachers=scenario.teachers + [teacher]), teacher


def update_teacher(scenario: Scenario, teacher_id: str, **changes) -> Scenario:
    """Partial update of name, email, phone, id_number, subject or max_hours.

    allocated_hours and homeroom_class_ids are not editable here.
    """
    current = scenario.get_teacher(teacher_id)
    if current is None:
        raise ValidationFailed({"id": MSG_TEACHER_NOT_FOUND})
    changes = {k: v for k, v in changes.items() if v is not None}
    changes.pop("allocated_hours", None)
    changes.pop("homeroom_class_ids", None)
    for key in ("email", "phone", "subject"):
        if key in changes:
            changes[key] = _clean(changes[key])
    for key in ("name", "id_number"):
        if key in changes:
            changes[key] = changes[key].strip()

    merged = current.model_copy(update=changes)
    errors = validate_teacher(
        scenario, merged.name, merged.id_number, merged.email, merged.phone,
        merged.max_hours, exclude_id=teacher_id,
    )
    if errors:
        raise ValidationFailed(errors)
    if merged.allocated_hours > merged.max_hours:
        logger.warning(
            f"Teacher {merged.name}: max hours {merged.max_hours:g} below "
            f"allocated {merged.allocated_hours:g}"
        )
    teachers = [merged if t.id == teacher_id else t for t in scenario.teachers]
    return _touch(scenario, teachers=teachers)


def remove_teacher(scenario: Scenario, teacher_id: str) -> Scenario:
    """Removes a teacher, its allocations (hours go back to the banks) and
    its homeroom links."""
    if scenario.get_teacher(teacher_id) is None:
        raise ValidationFailed({"id": MSG_TEACHER_NOT_FOUND})

    returned: dict[str, float] = defaultdict(float)
    allocations = []
    for a in scenario.allocations:
        if a.teacher_id == teacher_id:
            returned[a.hour_type_id] += a.hours
        else:
            allocations.append(a)

    banks = [
        b.shifted(-returned[b.hour_type_id]) if b.hour_type_id in returned else b
        for b in scenario.hour_banks
    ]
    classes = [
        c.model_copy(update={"homeroom_teacher_id": None})
        if c.homeroom_teacher_id == teacher_id else c
        for c in scenario.classes
    ]
    logger.info(
        f"Teacher removed: {teacher_id} "
        f"({len(scenario.allocations) - len(allocations)} allocations)"
    )
    return _touch(
        scenario,
        teachers=[t for t in scenario.teachers if t.id != teacher_id],
        allocations=allocations,
        hour_banks=banks,
        classes=classes,
    )


def _assign_homeroom(scenario: Scenario, class_id: str, teacher_id: Optional[str]) -> Scenario:
    """Makes teacher_id (or nobody) the homeroom teacher of class_id, on both sides."""
    if teacher_id and scenario.get_teacher(teacher_id) is None:
        raise ValidationFailed({"homeroomTeacherId": MSG_TEACHER_NOT_FOUND})

    teachers = []
    for t in scenario.teachers:
        ids = [c for c in t.homeroom_class_ids if c != class_id]
        if t.id == teacher_id:
            ids.append(class_id)
            if len(ids) > MAX_HOMEROOM_CLASSES:
                raise ValidationFailed({"homeroomTeacherId": MSG_HOMEROOM_LIMIT})
        if ids != t.homeroom_class_ids:
            t = t.model_copy(update={"homeroom_class_ids": ids})
        teachers.append(t)
    classes = [
        c.model_copy(update={"homeroom_teacher_id": teacher_id or None}) if c.id == class_id else c
        for c in scenario.classes
    ]
    return scenario.model_copy(update={"teachers": teachers, "classes": classes})


def set_homeroom_classes(scenario: Scenario, teacher_id: str, class_ids: list[str]) -> Scenario:
    """Sets the classes a teacher is homeroom teacher (מחנך) of, at most two."""
    teacher = scenario.get_teacher(teacher_id)
    if teacher is None:
        raise ValidationFailed({"id": MSG_TEACHER_NOT_FOUND})
    wanted = list(dict.fromkeys(c for c in class_ids if c))
    if len(wanted) > MAX_HOMEROOM_CLASSES:
        raise ValidationFailed({"homeroomClassIds": MSG_HOMEROOM_LIMIT})
    unknown = [c for c in wanted if scenario.get_class(c) is None]
    if unknown:
        raise ValidationFailed({"homeroomClassIds": f"{MSG_CLASS_NOT_FOUND}: {', '.join(unknown)}"})

    for class_id in teacher.homeroom_class_ids:
        if class_id not in wanted:
            scenario = _assign_homeroom(scenario, class_id, None)
    for class_id in wanted:
        scenario = _assign_homeroom(scenario, class_id, teacher_id)
    return _touch(scenario)


def search_teachers(scenario: Scenario, term: str) -> list[Teacher]:
    """Case-insensitive match on name, email, id number or subject."""
    term = (term or "").strip().lower()
    if not term:
        return list(scenario.teachers)
    return [
        t for t in scenario.teachers
        if any(term in (v or "").lower() for v in (t.name, t.email, t.id_number, t.subject))
    ]


# ─── Classes ──────────────────────────────────────────────────────────────────

def validate_class(
    scenario: Scenario,
    name: str,
    grade: str,
    student_count: int = 25,
    exclude_id: Optional[str] = None,
) -> dict[str, str]:
    errors: dict[str, str] = {}
    _check_name(errors, "שם הכיתה", name, 2, 50)
    if not (grade or "").strip():
        errors["grade"] = "שכבה היא שדה חובה"
    wanted = (name or "").strip().lower()
    if wanted and any(c.name.lower() == wanted and c.id != exclude_id for c in scenario.classes):
        errors["name"] = "כיתה עם שם זה כבר קיימת"
    if student_count is None or student_count < 1 or student_count > 50:
        errors["studentCount"] = "מספר תלמידים חייב להיות בין 1 ל-50"
    return errors


def add_class(
    scenario: Scenario,
    name: str,
    grade: str,
    student_count: int = 25,
    homeroom_teacher_id: Optional[str] = None,
    is_special_education: bool = False,
) -> tuple[Scenario, SchoolClass]:
    errors = validate_class(scenario, name, grade, student_count)
    if errors:
        raise ValidationFailed(errors)
    school_class = SchoolClass(
        id=new_id(),
        name=name.strip(),
        grade=grade.strip(),
        student_count=student_count,
        is_special_education=is_special_education,
    )
    scenario = scenario.model_copy(update={"classes": scenario.classes + [school_class]})
    if homeroom_teacher_id:
        scenario = _assign_homeroom(scenario, school_class.id, homeroom_teacher_id)
    logger.info(f"Class added: {school_class.name} ({school_class.id})")
    return _touch(scenario), scenario.get_class(school_class.id)


_UNSET = object()


def update_class(
    scenario: Scenario,
    class_id: str,
    homeroom_teacher_id=_UNSET,
    **changes,
) -> Scenario:
    """Partial update; pass homeroom_teacher_id=None to clear the homeroom link."""
    current = scenario.get_class(class_id)
    if current is None:
        raise ValidationFailed({"id": MSG_CLASS_NOT_FOUND})
    changes = {k: v for k, v in changes.items() if v is not None}
    for key in ("name", "grade"):
        if key in changes:
            changes[key] = changes[key].strip()

    merged = current.model_copy(update=changes)
    errors = validate_class(
        scenario, merged.name, merged.grade, merged.student_count, exclude_id=class_id
    )
    if errors:
        raise ValidationFailed(errors)
    scenario = scenario.model_copy(update={
        "classes": [merged if c.id == class_id else c for c in scenario.classes],
    })
    if homeroom_teacher_id is not _UNSET and homeroom_teacher_id != current.homeroom_teacher_id:
        scenario = _assign_homeroom(scenario, class_id, homeroom_teacher_id)
    return _touch(scenario)


def remove_class(scenario: Scenario, class_id: str) -> Scenario:
    """Removes a class.

    The class id is stripped from allocations; an allocation left without
    classes becomes a general allocation, so no hours leave the ledger.
    """
    if scenario.get_class(class_id) is None:
        raise ValidationFailed({"id": MSG_CLASS_NOT_FOUND})
    allocations = [
        a.model_copy(update={"class_ids": [c for c in a.class_ids if c != class_id]})
        if a.covers_class(class_id) else a
        for a in scenario.allocations
    ]
    teachers = [
        t.model_copy(update={"homeroom_class_ids": [c for c in t.homeroom_class_ids if c != class_id]})
        if class_id in t.homeroom_class_ids else t
        for t in scenario.teachers
    ]
    logger.info(f"Class removed: {class_id}")
    return _touch(
        scenario,
        classes=[c for c in scenario.classes if c.id != class_id],
        allocations=allocations,
        teachers=teachers,
    )


def search_classes(scenario: Scenario, term: str) -> list[SchoolClass]:
    term = (term or "").strip().lower()
    if not term:
        return list(scenario.classes)
    return [c for c in scenario.classes if term in c.name.lower() or term in c.grade]


def classes_by_grade(scenario: Scenario) -> tuple[dict[str, list[SchoolClass]], list[SchoolClass]]:
    """Regular classes grouped by grade (א..ו first), and the special-education list."""
    grouped: dict[str, list[SchoolClass]] = defaultdict(list)
    special: list[SchoolClass] = []
    for c in scenario.classes:
        if c.is_special_education:
            special.append(c)
        else:
            grouped[c.grade].append(c)

    def grade_order(grade: str):
        return (GRADES.index(grade), "") if grade in GRADES else (len(GRADES), grade)

    ordered = {
        g: sorted(grouped[g], key=lambda c: c.name)
        for g in sorted(grouped, key=grade_order)
    }
    return ordered, sorted(special, key=lambda c: c.name)


def _touch(scenario: Scenario, **updates) -> Scenario:
    updates["updated_at"] = utcnow()
    return scenario.model_copy(update=updates)
