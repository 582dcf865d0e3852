"""Data model for a scenario hour bank."""

from pydantic import Field

from models.base import CamelModel, round_percent


class HourBank(CamelModel):
    """Quantity of one hour type available in a scenario and how much is used.

    remaining_hours == total_hours - allocated_hours is maintained by every
    writer recomputing all three fields together; nothing enforces it here.
    """

    id: str
    hour_type_id: str
    total_hours: float = Field(0, ge=0)
    allocated_hours: float = 0
    remaining_hours: float = 0

    @property
    def utilization_percentage(self) -> int:
        if self.total_hours <= 0:
            return 0
        return round_percent(self.allocated_hours / self.total_hours * 100)

    @property
    def is_consistent(self) -> bool:
        return abs(self.remaining_hours - (self.total_hours - self.allocated_hours)) < 1e-9

    def with_allocated(self, allocated: float) -> "HourBank":
        """Copy with allocated/remaining set from a new allocated total."""
        return self.model_copy(update={
            "allocated_hours": allocated,
            "remaining_hours": self.total_hours - allocated,
        })

    def shifted(self, delta: float) -> "HourBank":
        """Copy with delta hours moved from remaining to allocated."""
        return self.model_copy(update={
            "allocated_hours": self.allocated_hours + delta,
            "remaining_hours": self.remaining_hours - delta,
        })
