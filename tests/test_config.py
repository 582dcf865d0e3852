"""Tests for the configuration system."""

from pathlib import Path

import pytest

from config.defaults import (
    COMMON_SUBJECTS,
    DEFAULT_HOUR_TYPES,
    GRADES,
    HOUR_TYPE_PALETTE,
    default_app_config,
)
from config.manager import ConfigManager
from config.schema import AllocationConfig, AppConfig, ReportConfig, StoreConfig


# ─── DEFAULT CONFIG ───────────────────────────────────────────────────────────

class TestDefaultConfig:
    def test_default_config_valid(self):
        """Default config uses a local store and 80/100% thresholds."""
        config = default_app_config()
        assert config.store.user_id == "local"
        assert config.store.read_only is False
        assert config.allocation.max_cell_hours == 40
        assert config.reports.under_utilized_percent == 80
        assert config.reports.over_allocated_percent == 100

    def test_default_hour_types(self):
        """Eight default hour types with unique names and valid colours."""
        names = [ht["name"] for ht in DEFAULT_HOUR_TYPES]
        assert len(names) == 8
        assert len(set(names)) == 8
        for ht in DEFAULT_HOUR_TYPES:
            assert ht["color"] in HOUR_TYPE_PALETTE

    def test_grades(self):
        assert GRADES == ["א", "ב", "ג", "ד", "ה", "ו"]
        assert "מתמטיקה" in COMMON_SUBJECTS


# ─── PYDANTIC VALIDATION ──────────────────────────────────────────────────────

class TestPydanticValidation:
    def test_threshold_order(self):
        """Under-utilization threshold above over-allocation → error."""
        with pytest.raises(Exception):
            ReportConfig(under_utilized_percent=90, over_allocated_percent=80)

    def test_cell_limit_range(self):
        with pytest.raises(Exception):
            AllocationConfig(max_cell_hours=0)
        with pytest.raises(Exception):
            AllocationConfig(max_cell_hours=61)

    def test_empty_user_id(self):
        with pytest.raises(Exception):
            StoreConfig(user_id="")

    def test_nested_from_dict(self):
        config = AppConfig.model_validate({
            "school_name": "בית ספר הדר",
            "store": {"path": "x/store.json", "user_id": "u7"},
        })
        assert config.store.path == Path("x/store.json")
        assert config.store.user_id == "u7"
        assert config.reports.under_utilized_percent == 80


# ─── YAML SAVE / LOAD ─────────────────────────────────────────────────────────

class TestConfigManager:
    def _manager(self, tmp_path: Path) -> ConfigManager:
        mgr = ConfigManager()
        mgr.CONFIG_DIR = tmp_path
        mgr.DEFAULT_CONFIG = tmp_path / "app_config.yaml"
        return mgr

    def test_save_and_load_roundtrip(self, tmp_path: Path):
        """Save, load and validate a modified config."""
        mgr = self._manager(tmp_path)
        config = default_app_config().model_copy(update={
            "school_name": "בית ספר הדר",
            "reports": ReportConfig(under_utilized_percent=70, over_allocated_percent=110),
        })
        mgr.save(config)
        assert mgr.DEFAULT_CONFIG.exists()

        loaded = mgr.load(mgr.DEFAULT_CONFIG)
        assert loaded.school_name == "בית ספר הדר"
        assert loaded.reports.under_utilized_percent == 70
        assert loaded.store.path == config.store.path

    def test_saved_file_has_section_comments(self, tmp_path: Path):
        mgr = self._manager(tmp_path)
        mgr.save(default_app_config())
        text = mgr.DEFAULT_CONFIG.read_text(encoding="utf-8")
        assert "─── Reports ───" in text
        assert "school_name" in text

    def test_missing_default_file_gives_defaults(self, tmp_path: Path):
        mgr = self._manager(tmp_path)
        assert mgr.load() == default_app_config()

    def test_missing_explicit_file_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            self._manager(tmp_path).load(tmp_path / "other.yaml")

    def test_invalid_file_raises_value_error(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text(
            "reports:\n  under_utilized_percent: 90\n  over_allocated_percent: 80\n",
            encoding="utf-8",
        )
        with pytest.raises(ValueError):
            self._manager(tmp_path).load(path)

    def test_first_run_check_no_file(self, tmp_path: Path):
        """first_run_check is True when no config exists."""
        mgr = ConfigManager()
        mgr.DEFAULT_CONFIG = tmp_path / "nonexistent.yaml"
        assert mgr.first_run_check() is True

    def test_first_run_check_with_file(self, tmp_path: Path):
        mgr = self._manager(tmp_path)
        mgr.save(default_app_config())
        assert mgr.first_run_check() is False
