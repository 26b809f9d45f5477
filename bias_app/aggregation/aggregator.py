"""
Hierarchical snapshot aggregation.

Folds one scored event into a symbol's snapshot tree. Each level is located by
its composite key (or created on first sight), the touched leaf is overwritten
from the event, and every ancestor on the path is recomputed from the full set
of its children. Nothing is updated incrementally, so repeated folds cannot
drift away from the exact sums.
"""

import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, TypeVar

from ..errors import InvalidEventError
from ..logging.config import get_aggregation_logger, log_fold_result
from ..models.events import CandleType, EventInterval, ScoredEvent, normalize_symbol
from ..models.snapshot import (
    CandleIntervalGroup,
    IndicatorScore,
    Snapshot,
    SubCategoryScore,
    frozen_children,
    group_key,
    indicator_key,
    sub_category_key,
)
from ..scoring.normalizer import ZERO, score_summary, to_decimal
from ..utils.time import ensure_utc, utc_now

aggregation_logger = get_aggregation_logger(__name__)

NodeT = TypeVar("NodeT", SubCategoryScore, IndicatorScore, CandleIntervalGroup, Snapshot)


def sum_children(children: Iterable[Any]) -> tuple[Decimal, Decimal, Decimal]:
    """Exact (score, min, max) totals over a collection of scored nodes."""
    score = min_score = max_score = ZERO
    for child in children:
        score += child.score
        min_score += child.min_score
        max_score += child.max_score
    return score, min_score, max_score


def _rescore(node: NodeT, children: Mapping[str, Any]) -> NodeT:
    score, min_score, max_score = sum_children(children.values())
    percentage, direction = score_summary(min_score, max_score, score)
    return replace(
        node,
        score=score,
        min_score=min_score,
        max_score=max_score,
        percentage=percentage,
        direction=direction,
    )


def recompute_indicator(indicator: IndicatorScore) -> IndicatorScore:
    """Recompute an indicator's totals from its sub-category scores."""
    return _rescore(indicator, indicator.sub_categories)


def recompute_group(group: CandleIntervalGroup) -> CandleIntervalGroup:
    """Recompute a candle/interval group's totals from its indicators."""
    return _rescore(group, group.indicators)


def recompute_snapshot(snapshot: Snapshot) -> Snapshot:
    """Recompute a snapshot's root totals from its groups."""
    return _rescore(snapshot, snapshot.groups)


def _with_child(children: Mapping[str, Any], key: str, child: Any) -> Mapping[str, Any]:
    # existing keys keep their position
    updated = dict(children)
    updated[key] = child
    return frozen_children(updated)


def _new_version_id() -> str:
    return str(uuid.uuid4())


class SnapshotAggregator:
    """Builds the next snapshot version from the current one and a scored event."""

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        version_factory: Callable[[], str] = _new_version_id
    ) -> None:
        self.clock = clock
        self.version_factory = version_factory
        self.logger = aggregation_logger

    def fold(self, event: ScoredEvent, current: Optional[Snapshot] = None) -> Snapshot:
        """
        Fold one scored event into ``current`` and return the new snapshot.

        ``current`` is None for the first event of a symbol. The input
        snapshot is never modified; untouched subtrees are shared with it.

        Raises:
            InvalidEventError: If the event lacks key fields, carries scores
                outside its bounds, or belongs to another symbol
            DegenerateRangeError: If a node's percentage cannot be computed
        """
        score, min_score, max_score = self._validate(event, current)

        now = self.clock()
        event_time = ensure_utc(event.event_time, fallback=now)
        symbol = normalize_symbol(event.symbol)
        candle_type = (event.candle_type or CandleType.CLASSIC.value).strip()
        interval = (event.interval or EventInterval.NA.value).strip()
        indicator_name = event.indicator_name.strip()
        sub_category = event.sub_category.strip()

        # Step 1: candle/interval group
        g_key = group_key(symbol, candle_type, interval)
        group = current.groups.get(g_key) if current is not None else None
        if group is None:
            group = CandleIntervalGroup(
                key=g_key,
                symbol=symbol,
                candle_type=candle_type,
                interval=interval,
            )

        # Step 2: indicator
        i_key = indicator_key(symbol, candle_type, interval, indicator_name)
        indicator = group.indicators.get(i_key)
        if indicator is None:
            indicator = IndicatorScore(
                key=i_key,
                symbol=symbol,
                candle_type=candle_type,
                interval=interval,
                name=indicator_name,
            )

        # Step 3: sub-category leaf, overwritten from the event
        s_key = sub_category_key(symbol, candle_type, interval, indicator_name, sub_category)
        leaf = indicator.sub_categories.get(s_key)
        if leaf is None:
            leaf = SubCategoryScore(
                key=s_key,
                symbol=symbol,
                candle_type=candle_type,
                interval=interval,
                indicator_name=indicator_name,
                name=sub_category,
            )
        percentage, direction = score_summary(min_score, max_score, score)
        leaf = replace(
            leaf,
            score=score,
            min_score=min_score,
            max_score=max_score,
            percentage=percentage,
            direction=direction,
            indicator_display_name=event.indicator_display_name or leaf.indicator_display_name,
            display_name=event.sub_category_display_name or leaf.display_name,
            last_message=event.raw_message,
            last_message_at=event_time,
            is_strategy=event.is_strategy,
            strategy_name=event.strategy_name,
            updated_at=now,
        )

        # Step 4: indicator totals
        indicator = recompute_indicator(replace(
            indicator,
            display_name=event.indicator_display_name or indicator.display_name,
            last_message=event.raw_message,
            updated_at=now,
            sub_categories=_with_child(indicator.sub_categories, s_key, leaf),
        ))

        # Step 5: group totals
        group = recompute_group(replace(
            group,
            last_message=event.raw_message,
            last_message_at=event_time,
            updated_at=now,
            indicators=_with_child(group.indicators, i_key, indicator),
        ))

        # Step 6: root totals and a fresh version
        snapshot = recompute_snapshot(Snapshot(
            version_id=self.version_factory(),
            symbol=symbol,
            created_at=now,
            previous_version_id=current.version_id if current is not None else None,
            groups=_with_child(current.groups if current is not None else {}, g_key, group),
        ))

        log_fold_result(
            self.logger,
            symbol=symbol,
            version_id=snapshot.version_id,
            previous_version_id=snapshot.previous_version_id,
            leaf_key=s_key,
            score=snapshot.score,
            percentage=snapshot.percentage,
            direction=snapshot.direction.value,
            context={"event_id": event.event_id, "leaf_direction": leaf.direction.value}
        )

        return snapshot

    @staticmethod
    def _validate(
        event: ScoredEvent,
        current: Optional[Snapshot]
    ) -> tuple[Decimal, Decimal, Decimal]:
        """Check key fields and score bounds; return the scores as Decimals."""
        missing = [
            name for name in ("symbol", "indicator_name", "sub_category")
            if not (getattr(event, name, None) or "").strip()
        ]
        if missing:
            raise InvalidEventError(
                f"Event is missing required fields: {', '.join(missing)}",
                missing_fields=missing,
                event_id=event.event_id
            )

        try:
            score = to_decimal(event.score)
            min_score = to_decimal(event.score_min)
            max_score = to_decimal(event.score_max)
        except ValueError as e:
            raise InvalidEventError(
                f"Event scores are not numeric: {e}",
                event_id=event.event_id
            ) from e

        if not (min_score <= ZERO <= max_score):
            raise InvalidEventError(
                f"Score bounds must straddle zero (min={min_score}, max={max_score})",
                event_id=event.event_id,
                context={"min_score": str(min_score), "max_score": str(max_score)}
            )

        if not (min_score <= score <= max_score):
            raise InvalidEventError(
                f"Score {score} outside bounds [{min_score}, {max_score}]",
                event_id=event.event_id,
                context={"score": str(score)}
            )

        if current is not None and current.symbol != normalize_symbol(event.symbol):
            raise InvalidEventError(
                f"Event for {event.symbol} cannot fold into snapshot of {current.symbol}",
                event_id=event.event_id
            )

        return score, min_score, max_score
