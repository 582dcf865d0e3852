"""Shared base for all stored models (Pydantic v2).

Stored documents and export files use camelCase keys; Python code uses
snake_case attributes.
"""

import math
import random
import string
import time
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """BaseModel with camelCase aliases for the storage format."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


def new_id(prefix: str = "") -> str:
    """Timestamp-plus-random id, e.g. "1718000000000-k3x9q"."""
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return f"{prefix}{millis}-{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fmt_hours(hours: float) -> str:
    """4.0 → "4", 2.5 → "2.5"."""
    return f"{hours:g}"


def round_percent(value: float) -> int:
    """Rounds half up (12.5 → 13)."""
    return int(math.floor(value + 0.5))
