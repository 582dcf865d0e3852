"""Data model for an allocation (teacher × hour type × optional classes)."""

from datetime import datetime
from typing import Optional

from pydantic import Field, model_validator

from models.base import CamelModel


class Allocation(CamelModel):
    """Grants hours of one hour type to one teacher, optionally for classes.

    class_ids is the only class representation. Documents written by older
    versions carry a singular "classId"; it is migrated into a one-element
    class_ids on load and never written back.
    """

    id: str
    teacher_id: str
    hour_type_id: str
    hours: float
    class_ids: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    notes: str = ""

    @model_validator(mode="before")
    @classmethod
    def _migrate_class_id(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy = data.pop("classId", None)
        plural = data.pop("classIds", None) or data.get("class_ids") or []
        if not plural and legacy:
            plural = [legacy]
        data["class_ids"] = [c for c in plural if c]
        if data.get("notes") is None:
            data["notes"] = ""
        return data

    @property
    def is_general(self) -> bool:
        """True when the allocation is not tied to any class."""
        return not self.class_ids

    def covers_class(self, class_id: str) -> bool:
        return class_id in self.class_ids
