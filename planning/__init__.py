"""Planning layer: registries, allocation ledger and scenario lifecycle."""

from .errors import AllocationRejected, ImportFormatError, ValidationFailed
from .ids import IdMap
from .ledger import AllocationEditor, recompute_aggregates, replace_teacher_allocations
from .lifecycle import ScenarioExport, ScenarioLifecycle
from .registry import HourTypeRegistry
from .workspace import ScenarioWorkspace

__all__ = [
    "AllocationRejected",
    "ImportFormatError",
    "ValidationFailed",
    "IdMap",
    "AllocationEditor",
    "recompute_aggregates",
    "replace_teacher_allocations",
    "ScenarioExport",
    "ScenarioLifecycle",
    "HourTypeRegistry",
    "ScenarioWorkspace",
]
