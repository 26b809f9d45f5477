"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any

LOCK_STRATEGIES = ("global", "symbol")
STORE_BACKENDS = ("memory", "sqlite")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_scheduler_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate aggregation pass parameters."""
        errors = []

        for name in ("tick_interval_seconds", "lookback_hours"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value <= 0:
                    errors.append(ValidationError(
                        field=f"scheduler.{name}",
                        message="Must be a positive number",
                        value=value
                    ))

        # None disables the deadline
        if params.get("max_pass_seconds") is not None:
            value = params["max_pass_seconds"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="scheduler.max_pass_seconds",
                    message="Must be a positive number or null",
                    value=value
                ))

        if "lock_strategy" in params:
            value = params["lock_strategy"]
            if value not in LOCK_STRATEGIES:
                errors.append(ValidationError(
                    field="scheduler.lock_strategy",
                    message=f"Must be one of {', '.join(LOCK_STRATEGIES)}",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_store_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate store parameters."""
        errors = []

        if "backend" in params:
            value = params["backend"]
            if value not in STORE_BACKENDS:
                errors.append(ValidationError(
                    field="store.backend",
                    message=f"Must be one of {', '.join(STORE_BACKENDS)}",
                    value=value
                ))

        if params.get("backend") == "sqlite":
            for name in ("snapshot_db_path", "event_db_path"):
                value = params.get(name)
                if not isinstance(value, str) or not value.strip():
                    errors.append(ValidationError(
                        field=f"store.{name}",
                        message="Must be a non-empty path for the sqlite backend",
                        value=value
                    ))

        if "snapshot_retention_days" in params:
            value = params["snapshot_retention_days"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="store.snapshot_retention_days",
                    message="Must be a positive number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_catalog_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate rule catalog parameters."""
        errors = []

        value = params.get("rules_file")
        if not isinstance(value, str) or not value.strip():
            errors.append(ValidationError(
                field="catalog.rules_file",
                message="Must be a non-empty path",
                value=value
            ))

        return errors

    @staticmethod
    def validate_logging_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate logging parameters."""
        errors = []

        if "level" in params:
            value = params["level"]
            if not isinstance(value, str) or value.upper() not in LOG_LEVELS:
                errors.append(ValidationError(
                    field="logging.level",
                    message=f"Must be one of {', '.join(LOG_LEVELS)}",
                    value=value
                ))

        if "format_json" in params:
            value = params["format_json"]
            if not isinstance(value, bool):
                errors.append(ValidationError(
                    field="logging.format_json",
                    message="Must be a boolean",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "scheduler" in config:
            errors.extend(ConfigValidator.validate_scheduler_params(config["scheduler"]))

        if "store" in config:
            errors.extend(ConfigValidator.validate_store_params(config["store"]))

        if "catalog" in config:
            errors.extend(ConfigValidator.validate_catalog_params(config["catalog"]))

        if "logging" in config:
            errors.extend(ConfigValidator.validate_logging_params(config["logging"]))

        return errors
