"""Unit tests for configuration management."""

import shutil
import tempfile
from pathlib import Path

import pytest

from bias_app.config.defaults import get_default_config
from bias_app.config.loader import ConfigLoader
from bias_app.config.validation import ConfigValidator, ValidationError
from bias_app.errors import ConfigurationError


class TestDefaultConfig:
    """Test suite for default configuration."""

    def test_default_config_creation(self) -> None:
        """Test that default configuration can be created."""
        config = get_default_config()
        assert config.scheduler.tick_interval_seconds == 5.0
        assert config.scheduler.lookback_hours == 4.0
        assert config.scheduler.max_pass_seconds is None
        assert config.scheduler.lock_strategy == "global"
        assert config.store.backend == "memory"
        assert config.store.snapshot_retention_days == 2.0
        assert config.logging.level == "INFO"


class TestConfigLoader:
    """Test suite for configuration loader."""

    def setup_method(self) -> None:
        """Setup temp config directory."""
        self.temp_dir = Path(tempfile.mkdtemp())

    def teardown_method(self) -> None:
        """Cleanup temp config directory."""
        shutil.rmtree(self.temp_dir)

    def test_config_loader_creation(self) -> None:
        """Test that ConfigLoader defaults to the project config directory."""
        loader = ConfigLoader.create()
        assert isinstance(loader.config_dir, Path)
        assert loader.config_dir.name == "config"

    def test_merge_config_defaults_only(self) -> None:
        """Test config merging with no settings file."""
        loader = ConfigLoader.create(self.temp_dir)
        config = loader.merge_config()

        assert config["scheduler"]["tick_interval_seconds"] == 5.0
        assert config["store"]["backend"] == "memory"
        assert config["catalog"]["rules_file"] == "indicator_rules.csv"

    def test_settings_file_overrides_defaults(self) -> None:
        """Test bias.yaml values win over defaults."""
        (self.temp_dir / "bias.yaml").write_text(
            "scheduler:\n  lookback_hours: 8\nstore:\n  backend: sqlite\n"
        )
        loader = ConfigLoader.create(self.temp_dir)

        config = loader.merge_config()

        assert config["scheduler"]["lookback_hours"] == 8
        assert config["scheduler"]["tick_interval_seconds"] == 5.0
        assert config["store"]["backend"] == "sqlite"

    def test_overrides_win_over_settings_file(self) -> None:
        """Test explicit overrides have highest precedence."""
        (self.temp_dir / "bias.yaml").write_text("scheduler:\n  lookback_hours: 8\n")
        loader = ConfigLoader.create(self.temp_dir)

        config = loader.merge_config({"scheduler": {"lookback_hours": 1}})

        assert config["scheduler"]["lookback_hours"] == 1

    def test_empty_settings_file(self) -> None:
        """Test an empty bias.yaml is treated as no settings."""
        (self.temp_dir / "bias.yaml").write_text("")

        config = ConfigLoader.create(self.temp_dir).merge_config()

        assert config["logging"]["level"] == "INFO"

    def test_malformed_settings_file(self) -> None:
        """Test unparsable YAML is a configuration error."""
        (self.temp_dir / "bias.yaml").write_text("scheduler: [unclosed\n")

        with pytest.raises(ConfigurationError):
            ConfigLoader.create(self.temp_dir).merge_config()

    def test_non_mapping_settings_file(self) -> None:
        """Test a YAML list is rejected."""
        (self.temp_dir / "bias.yaml").write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError):
            ConfigLoader.create(self.temp_dir).merge_config()

    def test_resolve_rules_path(self) -> None:
        """Test relative rule sheet paths resolve against the config dir."""
        loader = ConfigLoader.create(self.temp_dir)

        relative = loader.resolve_rules_path({"catalog": {"rules_file": "rules.csv"}})
        absolute = loader.resolve_rules_path({"catalog": {"rules_file": "/srv/rules.csv"}})

        assert relative == self.temp_dir / "rules.csv"
        assert absolute == Path("/srv/rules.csv")

    def test_shipped_settings_valid(self) -> None:
        """Test the repository's bias.yaml passes validation."""
        config = ConfigLoader.create().merge_config()

        assert ConfigValidator.validate_config(config) == []


class TestConfigValidator:
    """Test suite for configuration validation."""

    def test_defaults_valid(self) -> None:
        """Test that default settings produce no errors."""
        config = ConfigLoader.create(Path("/nonexistent")).merge_config()
        assert ConfigValidator.validate_config(config) == []

    @pytest.mark.parametrize("field_name,value", [
        ("tick_interval_seconds", 0),
        ("tick_interval_seconds", -5),
        ("lookback_hours", "4"),
        ("lookback_hours", True),
        ("max_pass_seconds", 0),
    ])
    def test_invalid_scheduler_numbers(self, field_name, value) -> None:
        """Test scheduler numeric validation."""
        errors = ConfigValidator.validate_scheduler_params({field_name: value})

        assert len(errors) == 1
        assert isinstance(errors[0], ValidationError)
        assert errors[0].field == f"scheduler.{field_name}"
        assert errors[0].value == value

    def test_max_pass_seconds_may_be_null(self) -> None:
        """Test the deadline can be disabled."""
        assert ConfigValidator.validate_scheduler_params({"max_pass_seconds": None}) == []

    def test_invalid_lock_strategy(self) -> None:
        """Test unknown lock strategies are rejected."""
        errors = ConfigValidator.validate_scheduler_params({"lock_strategy": "per-thread"})
        assert errors[0].field == "scheduler.lock_strategy"

    def test_invalid_store_backend(self) -> None:
        """Test unknown store backends are rejected."""
        errors = ConfigValidator.validate_store_params({"backend": "redis"})
        assert [e.field for e in errors] == ["store.backend"]

    def test_sqlite_requires_paths(self) -> None:
        """Test the sqlite backend needs database paths."""
        errors = ConfigValidator.validate_store_params({
            "backend": "sqlite",
            "snapshot_db_path": "",
            "event_db_path": "events.db",
        })
        assert [e.field for e in errors] == ["store.snapshot_db_path"]

    def test_invalid_retention(self) -> None:
        """Test retention must be positive."""
        errors = ConfigValidator.validate_store_params({"snapshot_retention_days": 0})
        assert errors[0].field == "store.snapshot_retention_days"

    def test_missing_rules_file(self) -> None:
        """Test an empty rule sheet path is rejected."""
        errors = ConfigValidator.validate_catalog_params({"rules_file": " "})
        assert errors[0].field == "catalog.rules_file"

    def test_invalid_logging(self) -> None:
        """Test logging validation."""
        errors = ConfigValidator.validate_logging_params({"level": "LOUD", "format_json": "yes"})
        assert [e.field for e in errors] == ["logging.level", "logging.format_json"]

    def test_validate_config_collects_all_sections(self) -> None:
        """Test errors from several sections are combined."""
        errors = ConfigValidator.validate_config({
            "scheduler": {"lookback_hours": 0},
            "store": {"backend": "redis"},
            "logging": {"level": "LOUD"},
        })
        assert len(errors) == 3
