"""Data model for a teacher within a scenario."""

from typing import Optional

from pydantic import Field, field_validator

from models.base import CamelModel, round_percent

MAX_HOMEROOM_CLASSES = 2


class Teacher(CamelModel):
    """A teacher in one scenario."""

    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    id_number: str                                   # 9-digit national id
    subject: Optional[str] = None
    max_hours: float = 40                            # weekly ceiling (1-60)
    allocated_hours: float = 0                       # derived from the ledger
    homeroom_class_ids: list[str] = Field(default_factory=list)

    @field_validator("allocated_hours", mode="before")
    @classmethod
    def _legacy_allocated(cls, v):
        # Older documents stored a per-type list here; it is re-derived anyway.
        if isinstance(v, list):
            return 0
        return v or 0

    @property
    def utilization_percentage(self) -> int:
        if self.max_hours <= 0:
            return 0
        return round_percent(self.allocated_hours / self.max_hours * 100)
