"""Data model for an hour type."""

import re
from datetime import datetime
from typing import Optional

from pydantic import field_validator

from models.base import CamelModel

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


class HourType(CamelModel):
    """A user-scoped category of work hours (teaching, coordination, ...)."""

    id: str
    name: str
    description: str = ""
    color: str = "#3B82F6"
    is_class_hour: bool = False       # True = hours are tied to specific classes
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or ""

    @property
    def has_valid_color(self) -> bool:
        return bool(COLOR_PATTERN.match(self.color))


UNKNOWN_HOUR_TYPE_NAME = "לא ידוע"


def hour_type_name(hour_types: list[HourType], hour_type_id: str) -> str:
    """Name of the hour type, or "לא ידוע" for orphaned references."""
    for ht in hour_types:
        if ht.id == hour_type_id:
            return ht.name
    return UNKNOWN_HOUR_TYPE_NAME
