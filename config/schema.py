from pathlib import Path

from pydantic import BaseModel, Field, model_validator


# ─── STORE ───

class StoreConfig(BaseModel):
    """Where and as whom the hierarchical store is accessed."""
    # JSON file holding the whole key-value tree
    path: Path = Field(Path("data/store.json"),
        description="JSON file of the key-value store")
    # Root key for all persistence paths (users/{uid}/...)
    user_id: str = Field("local", min_length=1,
        description="User id used as the root of all paths")
    # Reject every write with PERMISSION_DENIED
    read_only: bool = Field(False,
        description="Open the store read-only")


# ─── ALLOCATION ───

class AllocationConfig(BaseModel):
    """Limits applied while editing allocations and registries."""
    # Upper bound of a single allocation cell
    max_cell_hours: float = Field(40, gt=0, le=60,
        description="Max hours in one allocation cell")
    # maxHours of a newly created teacher
    default_teacher_max_hours: float = Field(40, ge=1, le=60,
        description="Default weekly max hours for new teachers")
    # studentCount of a newly created class
    default_student_count: int = Field(25, ge=1, le=50,
        description="Default student count for new classes")


# ─── REPORTS ───

class ReportConfig(BaseModel):
    """Utilization thresholds (display only)."""
    # Below this percentage a teacher counts as under-utilized
    under_utilized_percent: int = Field(80, ge=0, le=100,
        description="Under-utilization threshold (%)")
    # Above this percentage a teacher counts as over-allocated
    over_allocated_percent: int = Field(100, ge=50, le=200,
        description="Over-allocation threshold (%)")

    @model_validator(mode='after')
    def _check_order(self):
        if self.under_utilized_percent > self.over_allocated_percent:
            raise ValueError(
                f"under_utilized_percent ({self.under_utilized_percent}) > "
                f"over_allocated_percent ({self.over_allocated_percent})"
            )
        return self


# ─── EXPORT ───

class ExportConfig(BaseModel):
    """Output locations for JSON and spreadsheet exports."""
    # Directory for exported files
    output_dir: Path = Field(Path("output"),
        description="Directory for exported files")


# ─── TOTAL CONFIG ───

class AppConfig(BaseModel):
    """Complete application configuration."""
    # Name of the school, shown in report headers
    school_name: str = Field("בית ספר יסודי",
        description="School name")
    store: StoreConfig = Field(default_factory=StoreConfig)
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)
    reports: ReportConfig = Field(default_factory=ReportConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
