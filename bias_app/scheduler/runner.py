"""
Aggregation scheduler.

Drains PENDING scored events into snapshots. A pass takes the pass lock for
its scope without blocking, fetches the pending events inside the lookback
window, folds them one at a time in event-time order, and records each
event's outcome. A failing event is marked FAILED and the pass moves on.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from ..aggregation.aggregator import SnapshotAggregator
from ..errors import DataQualityError, PersistenceError, SystemFailureError
from ..logging.config import get_scheduler_logger, log_status_change
from ..models.events import ProcessingStatus, ScoredEvent, normalize_symbol
from ..persistence.event_store import EventStore
from ..persistence.snapshot_store import SnapshotStore
from ..utils.time import format_time, lookback_window, utc_now
from .locks import ALL_SYMBOLS, GlobalPassLock, PassLock, SymbolShardedPassLock

PASS_JOB_ID = "bias_aggregation_pass"
RETENTION_JOB_ID = "bias_snapshot_retention"


class SchedulerState(str, Enum):
    """Whether an aggregation pass is in progress."""
    IDLE = "IDLE"
    RUNNING = "RUNNING"


@dataclass
class PassResult:
    """Outcome counts for one aggregation pass."""
    scope: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    lock_busy: bool = False
    fetched: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    deferred: int = 0

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "started_at": format_time(self.started_at),
            "finished_at": format_time(self.finished_at) if self.finished_at else None,
            "lock_busy": self.lock_busy,
            "fetched": self.fetched,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "deferred": self.deferred,
            "duration_seconds": self.duration_seconds,
        }


class AggregationScheduler:
    """Runs aggregation passes on demand or on a fixed interval."""

    def __init__(
        self,
        event_store: EventStore,
        snapshot_store: SnapshotStore,
        aggregator: Optional[SnapshotAggregator] = None,
        pass_lock: Optional[PassLock] = None,
        tick_interval_seconds: float = 5.0,
        lookback_hours: float = 4.0,
        max_pass_seconds: Optional[float] = None,
        snapshot_retention_days: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic
    ) -> None:
        self.event_store = event_store
        self.snapshot_store = snapshot_store
        self.aggregator = aggregator or SnapshotAggregator(clock=clock)
        self.pass_lock = pass_lock or GlobalPassLock()
        self.tick_interval_seconds = tick_interval_seconds
        self.lookback_hours = lookback_hours
        self.max_pass_seconds = max_pass_seconds
        self.snapshot_retention_days = snapshot_retention_days
        self.clock = clock
        self.monotonic = monotonic
        self.logger = get_scheduler_logger(__name__)

        self._stats_lock = threading.Lock()
        self._running_passes = 0
        self._passes_completed = 0
        self._passes_skipped = 0
        self._last_result: Optional[PassResult] = None
        self._background: Optional[BackgroundScheduler] = None

    @property
    def state(self) -> SchedulerState:
        with self._stats_lock:
            return SchedulerState.RUNNING if self._running_passes else SchedulerState.IDLE

    @property
    def is_sharded(self) -> bool:
        return isinstance(self.pass_lock, SymbolShardedPassLock)

    def tick(self) -> list[PassResult]:
        """
        One scheduler tick.

        With the global lock this is a single pass over every symbol. With a
        per-symbol lock, one pass runs for each symbol that has pending events.
        """
        if not self.is_sharded:
            return [self.run_pass()]

        since, until = lookback_window(self.lookback_hours, self.clock())
        pending = self.event_store.fetch_pending(since, until)
        symbols = sorted({normalize_symbol(event.symbol) for event in pending})
        return [self.run_pass(symbol) for symbol in symbols]

    def run_pass(self, symbol: Optional[str] = None) -> PassResult:
        """
        Run one aggregation pass, or skip it if the scope is already locked.

        Args:
            symbol: Restrict the pass to one symbol; required with a per-symbol lock

        Returns:
            PassResult with ``lock_busy`` set when the pass was skipped
        """
        scope = normalize_symbol(symbol) or ALL_SYMBOLS
        result = PassResult(scope=scope, started_at=self.clock())

        if not self.pass_lock.try_acquire(scope):
            result.lock_busy = True
            result.finished_at = result.started_at
            with self._stats_lock:
                self._passes_skipped += 1
            self.logger.debug("Aggregation pass skipped, lock held", scope=scope)
            return result

        with self._stats_lock:
            self._running_passes += 1

        try:
            since, until = lookback_window(self.lookback_hours, result.started_at)
            events = self.event_store.fetch_pending(
                since, until, None if scope == ALL_SYMBOLS else scope
            )
            result.fetched = len(events)

            deadline = None
            if self.max_pass_seconds is not None:
                deadline = self.monotonic() + self.max_pass_seconds

            for index, event in enumerate(events):
                if deadline is not None and self.monotonic() >= deadline:
                    result.deferred = len(events) - index
                    self.logger.warning(
                        "Aggregation pass deadline reached, deferring events",
                        scope=scope,
                        deferred=result.deferred,
                        max_pass_seconds=self.max_pass_seconds
                    )
                    break

                outcome = self.process_event(event)
                if outcome == ProcessingStatus.PROCESSED:
                    result.processed += 1
                elif outcome == ProcessingStatus.FAILED:
                    result.failed += 1
                else:
                    result.skipped += 1
        finally:
            self.pass_lock.release(scope)
            result.finished_at = self.clock()
            with self._stats_lock:
                self._running_passes -= 1
                self._passes_completed += 1
                self._last_result = result

        if result.fetched:
            self.logger.info("Aggregation pass complete", **result.to_dict())
        return result

    def process_event(self, event: ScoredEvent) -> Optional[ProcessingStatus]:
        """
        Fold one event into its symbol's latest snapshot and publish the result.

        Returns:
            The status recorded for the event, or None if it was no longer
            PENDING and was skipped
        """
        current = self.event_store.get(event.event_id) if event.event_id is not None else event
        if current is None or current.processing_status != ProcessingStatus.PENDING:
            self.logger.info(
                "Skipping event that is no longer pending",
                event_id=event.event_id,
                status=current.processing_status.value if current else None
            )
            return None

        try:
            latest = self.snapshot_store.get_latest(normalize_symbol(current.symbol))
            snapshot = self.aggregator.fold(current, latest)
            self.snapshot_store.save(snapshot)
            self.snapshot_store.advance_latest(snapshot.symbol, snapshot.version_id)
        except DataQualityError as e:
            self.logger.warning(
                "Event rejected during aggregation",
                event_id=current.event_id,
                symbol=current.symbol,
                error=str(e),
                error_type=type(e).__name__,
                context=e.context
            )
            return self._mark(current, ProcessingStatus.FAILED, str(e))
        except SystemFailureError as e:
            self.logger.error(
                "System failure during aggregation",
                event_id=current.event_id,
                symbol=current.symbol,
                error=str(e),
                error_type=type(e).__name__,
                context=e.context
            )
            return self._mark(current, ProcessingStatus.FAILED, str(e))
        except Exception as e:
            self.logger.error(
                "Unexpected error during aggregation",
                event_id=current.event_id,
                symbol=current.symbol,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True
            )
            return self._mark(current, ProcessingStatus.FAILED, str(e))

        return self._mark(current, ProcessingStatus.PROCESSED, "folded into snapshot")

    def _mark(self, event: ScoredEvent, status: ProcessingStatus, reason: str) -> ProcessingStatus:
        if event.event_id is not None:
            try:
                self.event_store.mark_status(event.event_id, status)
            except PersistenceError as e:
                self.logger.error(
                    "Failed to record event status",
                    event_id=event.event_id,
                    status=status.value,
                    error=str(e)
                )
        log_status_change(
            self.logger,
            event_id=event.event_id,
            from_status=event.processing_status.value,
            to_status=status.value,
            reason=reason
        )
        return status

    def prune_expired(self) -> int:
        """Delete snapshot versions older than the retention window."""
        if self.snapshot_retention_days is None:
            return 0
        cutoff = self.clock() - timedelta(days=self.snapshot_retention_days)
        return self.snapshot_store.prune_versions(cutoff)

    def start(self) -> None:
        """Start periodic passes on a background thread."""
        if self._background is not None and self._background.running:
            return

        scheduler = BackgroundScheduler(timezone="UTC")
        scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.tick_interval_seconds,
            id=PASS_JOB_ID,
            name="Bias Aggregation Pass",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        if self.snapshot_retention_days is not None:
            scheduler.add_job(
                self.prune_expired,
                "interval",
                hours=1,
                id=RETENTION_JOB_ID,
                name="Snapshot Retention",
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )
        scheduler.start()
        self._background = scheduler

        self.logger.info(
            "Aggregation scheduler started",
            tick_interval_seconds=self.tick_interval_seconds,
            lookback_hours=self.lookback_hours,
            lock=type(self.pass_lock).__name__
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop periodic passes; a pass in progress completes when ``wait`` is set."""
        if self._background is None:
            return
        if self._background.running:
            self._background.shutdown(wait=wait)
        self._background = None
        self.logger.info("Aggregation scheduler stopped")

    @property
    def is_started(self) -> bool:
        return self._background is not None and self._background.running

    def get_runtime_stats(self) -> dict[str, Any]:
        """Counters and the most recent pass result."""
        with self._stats_lock:
            last = self._last_result
            return {
                "state": (SchedulerState.RUNNING if self._running_passes else SchedulerState.IDLE).value,
                "started": self._background is not None and self._background.running,
                "passes_completed": self._passes_completed,
                "passes_skipped": self._passes_skipped,
                "last_pass": last.to_dict() if last else None,
            }
