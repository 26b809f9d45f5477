"""Default configuration parameters for the bias aggregation engine."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CatalogParams:
    """Rule catalog parameters."""
    rules_file: str = "indicator_rules.csv"           # Relative paths resolve against the config dir


@dataclass(frozen=True)
class SchedulerParams:
    """Aggregation pass parameters."""
    tick_interval_seconds: float = 5.0               # Period between passes
    lookback_hours: float = 4.0                      # Pending events older than this are ignored
    max_pass_seconds: Optional[float] = None         # Stop a pass early, leaving the rest PENDING
    lock_strategy: str = "global"                    # "global" or "symbol"


@dataclass(frozen=True)
class StoreParams:
    """Snapshot and event store parameters."""
    backend: str = "memory"                          # "memory" or "sqlite"
    snapshot_db_path: str = "snapshots.db"
    event_db_path: str = "events.db"
    snapshot_retention_days: float = 2.0             # Versions older than this are pruned


@dataclass(frozen=True)
class LoggingParams:
    """Logging parameters."""
    level: str = "INFO"
    format_json: bool = False


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    catalog: CatalogParams
    scheduler: SchedulerParams
    store: StoreParams
    logging: LoggingParams


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        catalog=CatalogParams(),
        scheduler=SchedulerParams(),
        store=StoreParams(),
        logging=LoggingParams(),
    )
