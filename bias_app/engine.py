"""
Main bias aggregation engine coordinator.

Wires the rule catalog, the event and snapshot stores and the aggregation
scheduler together, and exposes the entry points used by alert intake and by
downstream readers:

    Alert text → Rule match → ScoredEvent (PENDING) → Aggregation pass →
    Snapshot version → Latest pointer
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from .config.loader import ConfigLoader
from .config.validation import ConfigValidator
from .errors import ConfigurationError, NoMatchingRuleError
from .logging.config import configure_logging
from .models.events import ProcessingStatus, ScoredEvent, build_scored_event, normalize_symbol
from .models.snapshot import Snapshot
from .persistence.event_store import EventStore, InMemoryEventStore, SqliteEventStore
from .persistence.snapshot_store import InMemorySnapshotStore, SnapshotStore, SqliteSnapshotStore
from .rules.catalog import RuleCatalog, load_rules
from .scheduler.locks import create_pass_lock
from .scheduler.runner import AggregationScheduler, PassResult
from .utils.time import NEW_YORK, format_time, ny_now, utc_now

logger = structlog.get_logger(__name__)


def _score_fields(node: Any) -> dict[str, Any]:
    return {
        "score": float(node.score),
        "min_score": float(node.min_score),
        "max_score": float(node.max_score),
        "percentage": float(node.percentage),
        "direction": node.direction.value,
    }


class BiasAggregationEngine:
    """
    Main coordinator for the market-bias aggregation system.

    Configuration is merged from explicit overrides, ``bias.yaml`` in the
    config directory and built-in defaults, then validated before anything
    else is constructed.
    """

    def __init__(
        self,
        config_dir: Optional[Union[str, Path]] = None,
        overrides: Optional[dict[str, Any]] = None,
        catalog: Optional[RuleCatalog] = None,
        event_store: Optional[EventStore] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        setup_logging: bool = False
    ) -> None:
        """
        Initialize the engine.

        Args:
            config_dir: Directory holding ``bias.yaml`` and the rule sheet
            overrides: Highest-precedence settings, same shape as ``bias.yaml``
            catalog: Pre-built rule catalog; loaded from the rule sheet if omitted
            event_store: Event store to use instead of the configured backend
            snapshot_store: Snapshot store to use instead of the configured backend
            setup_logging: Configure structlog from the logging settings

        Raises:
            ConfigurationError: If the merged settings are invalid or the rule
                sheet cannot be read
            CatalogError: If the rule sheet is malformed
        """
        self.logger = logger
        self.config_loader = ConfigLoader.create(Path(config_dir) if config_dir else None)
        self.config = self.config_loader.merge_config(overrides)

        validation_errors = ConfigValidator.validate_config(self.config)
        if validation_errors:
            error_msgs = [f"{err.field}: {err.message} (got: {err.value})" for err in validation_errors]
            self.logger.error("Configuration validation failed", errors=error_msgs)
            raise ConfigurationError(
                "Invalid bias engine configuration",
                errors=error_msgs
            )

        if setup_logging:
            configure_logging(
                level=self.config["logging"]["level"],
                format_json=self.config["logging"]["format_json"]
            )

        self.catalog = catalog if catalog is not None else self._load_catalog()

        store_cfg = self.config["store"]
        if store_cfg["backend"] == "sqlite":
            self.event_store = event_store or SqliteEventStore(store_cfg["event_db_path"])
            self.snapshot_store = snapshot_store or SqliteSnapshotStore(store_cfg["snapshot_db_path"])
        else:
            self.event_store = event_store or InMemoryEventStore()
            self.snapshot_store = snapshot_store or InMemorySnapshotStore()

        sched_cfg = self.config["scheduler"]
        self.scheduler = AggregationScheduler(
            event_store=self.event_store,
            snapshot_store=self.snapshot_store,
            pass_lock=create_pass_lock(sched_cfg["lock_strategy"]),
            tick_interval_seconds=sched_cfg["tick_interval_seconds"],
            lookback_hours=sched_cfg["lookback_hours"],
            max_pass_seconds=sched_cfg["max_pass_seconds"],
            snapshot_retention_days=store_cfg["snapshot_retention_days"],
        )

        self.logger.info(
            "Bias aggregation engine initialized",
            rules=len(self.catalog),
            store_backend=store_cfg["backend"],
            lock_strategy=sched_cfg["lock_strategy"]
        )

    def _load_catalog(self) -> RuleCatalog:
        rules_path = self.config_loader.resolve_rules_path(self.config)
        try:
            return load_rules(rules_path)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read rule catalog {rules_path}: {e}",
                context={"path": str(rules_path)}
            ) from e

    def ingest_alert(
        self,
        symbol: str,
        indicator_name: str,
        message: str,
        candle_type: Optional[str] = None,
        interval: Optional[str] = None,
        strategy_name: Optional[str] = None,
        event_time: Optional[datetime] = None
    ) -> ScoredEvent:
        """
        Score a raw alert and store it for the next aggregation pass.

        Skip-scoring alerts are stored as NOT_APPLICABLE and never aggregated.

        Raises:
            NoMatchingRuleError: If no rule matches; nothing is stored
        """
        try:
            event = build_scored_event(
                self.catalog,
                symbol=symbol,
                indicator_name=indicator_name,
                message=message,
                candle_type=candle_type,
                interval=interval,
                strategy_name=strategy_name,
                event_time=event_time
            )
        except NoMatchingRuleError as e:
            self.logger.warning(
                "Alert matched no rule, discarded",
                symbol=symbol,
                indicator_name=indicator_name,
                alert_message=message,
                error=str(e)
            )
            raise

        return self.enqueue_event(event)

    def enqueue_event(self, event: ScoredEvent) -> ScoredEvent:
        """Store an already-scored event and return it with its id."""
        stored = self.event_store.add(event)
        self.logger.info(
            "Scored event enqueued",
            event_id=stored.event_id,
            symbol=stored.symbol,
            indicator_name=stored.indicator_name,
            sub_category=stored.sub_category,
            score=str(stored.score),
            status=stored.processing_status.value
        )
        return stored

    def run_pending(self, symbol: Optional[str] = None) -> list[PassResult]:
        """Run aggregation now instead of waiting for the next tick."""
        if symbol is not None:
            return [self.scheduler.run_pass(normalize_symbol(symbol))]
        return self.scheduler.tick()

    def get_latest(self, symbol: str) -> Optional[Snapshot]:
        """Latest published snapshot for a symbol."""
        return self.snapshot_store.get_latest(normalize_symbol(symbol))

    def get_latest_summary(self, symbol: str) -> Optional[dict[str, Any]]:
        """
        Plain-dict view of the latest snapshot for downstream readers.

        Every level of the tree is included with its score, bounds, percentage
        and direction; sub-categories also carry the last alert message.
        """
        snapshot = self.get_latest(symbol)
        if snapshot is None:
            return None

        return {
            "symbol": snapshot.symbol,
            "version_id": snapshot.version_id,
            "previous_version_id": snapshot.previous_version_id,
            "updated_at": format_time(snapshot.created_at),
            "updated_at_new_york": snapshot.created_at.astimezone(NEW_YORK).isoformat(),
            **_score_fields(snapshot),
            "groups": [
                {
                    "candle_type": group.candle_type,
                    "interval": group.interval,
                    **_score_fields(group),
                    "indicators": {
                        indicator.name: {
                            "display_name": indicator.display_name,
                            **_score_fields(indicator),
                            "sub_categories": {
                                sub.name: {
                                    "display_name": sub.display_name,
                                    **_score_fields(sub),
                                    "last_message": sub.last_message,
                                    "last_message_at": (
                                        format_time(sub.last_message_at) if sub.last_message_at else None
                                    ),
                                    "is_strategy": sub.is_strategy,
                                    "strategy_name": sub.strategy_name,
                                }
                                for sub in indicator.sub_categories.values()
                            },
                        }
                        for indicator in group.indicators.values()
                    },
                }
                for group in snapshot.groups.values()
            ],
        }

    def start(self) -> None:
        """Start periodic aggregation passes."""
        self.scheduler.start()

    def stop(self, wait: bool = True) -> None:
        """Stop periodic aggregation passes."""
        self.scheduler.shutdown(wait=wait)

    def get_runtime_stats(self) -> dict[str, Any]:
        """Get runtime statistics."""
        counts = self.event_store.count_by_status()
        return {
            'catalog_rules': len(self.catalog),
            'catalog_source': self.catalog.source,
            'store_backend': self.config["store"]["backend"],
            'events': {status.value: counts.get(status, 0) for status in ProcessingStatus},
            'scheduler': self.scheduler.get_runtime_stats(),
            'generated_at': format_time(utc_now()),
            'generated_at_new_york': ny_now().isoformat(),
        }
