"""
Snapshot aggregation module.

Folds scored events into the per-symbol composite score tree.
"""
from .aggregator import (
    SnapshotAggregator,
    recompute_group,
    recompute_indicator,
    recompute_snapshot,
)

__all__ = ["SnapshotAggregator", "recompute_group", "recompute_indicator", "recompute_snapshot"]
