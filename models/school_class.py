"""Data model for a school class (Pydantic v2)."""

from typing import Optional

from models.base import CamelModel


class SchoolClass(CamelModel):
    """A class in one scenario, e.g. "א1"."""

    id: str
    name: str
    grade: str                               # "א".."ו"
    student_count: int = 25                  # 1-50, checked by the registry
    homeroom_teacher_id: Optional[str] = None
    is_special_education: bool = False       # display grouping only
