"""
Aggregation scheduling module.

Periodic, lock-guarded passes that fold pending scored events into snapshots.
"""
from .locks import ALL_SYMBOLS, GlobalPassLock, PassLock, SymbolShardedPassLock, create_pass_lock
from .runner import AggregationScheduler, PassResult, SchedulerState

__all__ = [
    "ALL_SYMBOLS",
    "AggregationScheduler",
    "GlobalPassLock",
    "PassLock",
    "PassResult",
    "SchedulerState",
    "SymbolShardedPassLock",
    "create_pass_lock",
]
