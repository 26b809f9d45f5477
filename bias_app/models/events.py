"""
Scored event model and construction from raw alerts.

A ScoredEvent is one alert firing on one symbol/candle type/interval for one
indicator sub-category, already resolved against the rule catalog. Events are
stored as PENDING and consumed exactly once by the aggregation pass.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from ..rules.catalog import RuleCatalog
from ..scoring.normalizer import ZERO, to_decimal
from ..utils.time import ensure_utc, format_time, parse_time

UNKNOWN = "UNKNOWN"


def normalize_symbol(symbol: Optional[str]) -> str:
    """Canonical symbol form used for keys, store lookups and lock scopes."""
    return (symbol or "").strip().upper()


class ProcessingStatus(str, Enum):
    """Aggregation status of a scored event."""
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"
    NOT_APPLICABLE = "NOT_APPLICABLE"         # Skip-scoring rule, never aggregated


class CandleType(str, Enum):
    """Candle representation an alert was computed on."""
    CLASSIC = "CLASSIC"
    HEIKIN_ASHI = "HEIKIN_ASHI"
    RENKO_8B = "RENKO_8B"
    RENKO_5B = "RENKO_5B"
    RENKO_4B = "RENKO_4B"
    RENKO_2B = "RENKO_2B"
    RENKO_1B = "RENKO_1B"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "CandleType":
        """Parse a candle type, defaulting blank or unknown values to CLASSIC."""
        normalized = (value or "").strip().upper()
        for candle_type in cls:
            if candle_type.value == normalized:
                return candle_type
        return cls.CLASSIC


class EventInterval(str, Enum):
    """Chart timeframe an alert fired on."""
    S1 = "1s"
    S30 = "30s"
    M1 = "1m"
    M2 = "2m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    H7 = "7h"
    D1 = "1d"
    W1 = "1w"
    NA = "NA"
    ANY = "ANY"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "EventInterval":
        """Parse an interval by value (``5m``) or name (``M5``); unknown -> NA."""
        normalized = (value or "").strip().lower()
        for interval in cls:
            if interval.value.lower() == normalized or interval.name.lower() == normalized:
                return interval
        return cls.NA


@dataclass(frozen=True)
class ScoredEvent:
    """One scored indicator alert awaiting (or past) aggregation."""

    # Tree coordinates
    symbol: str
    candle_type: str
    interval: str
    indicator_name: str
    sub_category: str

    # Score and its bounds
    score: Decimal
    score_min: Decimal
    score_max: Decimal

    # Alert details
    raw_message: str = ""
    indicator_display_name: Optional[str] = None
    sub_category_display_name: Optional[str] = None
    is_strategy: bool = False
    strategy_name: Optional[str] = None
    is_alertable: bool = False
    event_time: Optional[datetime] = None

    # Store bookkeeping
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    event_id: Optional[int] = None

    def with_status(self, status: ProcessingStatus) -> "ScoredEvent":
        """Copy of this event with a new processing status."""
        return replace(self, processing_status=status)

    def with_id(self, event_id: int) -> "ScoredEvent":
        """Copy of this event with its store id assigned."""
        return replace(self, event_id=event_id)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation."""
        return {
            "event_id": self.event_id,
            "symbol": self.symbol,
            "candle_type": self.candle_type,
            "interval": self.interval,
            "indicator_name": self.indicator_name,
            "indicator_display_name": self.indicator_display_name,
            "sub_category": self.sub_category,
            "sub_category_display_name": self.sub_category_display_name,
            "raw_message": self.raw_message,
            "score": str(self.score),
            "score_min": str(self.score_min),
            "score_max": str(self.score_max),
            "is_strategy": self.is_strategy,
            "strategy_name": self.strategy_name,
            "is_alertable": self.is_alertable,
            "event_time": format_time(self.event_time) if self.event_time else None,
            "processing_status": self.processing_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoredEvent":
        """Rebuild an event from ``to_dict`` output."""
        return cls(
            event_id=data.get("event_id"),
            symbol=data["symbol"],
            candle_type=data["candle_type"],
            interval=data["interval"],
            indicator_name=data["indicator_name"],
            indicator_display_name=data.get("indicator_display_name"),
            sub_category=data["sub_category"],
            sub_category_display_name=data.get("sub_category_display_name"),
            raw_message=data.get("raw_message") or "",
            score=to_decimal(data["score"]),
            score_min=to_decimal(data["score_min"]),
            score_max=to_decimal(data["score_max"]),
            is_strategy=bool(data.get("is_strategy", False)),
            strategy_name=data.get("strategy_name"),
            is_alertable=bool(data.get("is_alertable", False)),
            event_time=parse_time(data["event_time"]) if data.get("event_time") else None,
            processing_status=ProcessingStatus(data.get("processing_status", ProcessingStatus.PENDING.value)),
        )


def build_scored_event(
    catalog: RuleCatalog,
    symbol: str,
    indicator_name: str,
    message: str,
    candle_type: Optional[str] = None,
    interval: Optional[str] = None,
    strategy_name: Optional[str] = None,
    event_time: Optional[datetime] = None
) -> ScoredEvent:
    """
    Resolve a raw alert through the rule catalog into a ScoredEvent.

    Events matched by a skip-scoring rule are returned as NOT_APPLICABLE with
    a zero score; everything else is PENDING and carries the rule's score and
    its sub-category range.

    Raises:
        NoMatchingRuleError: If the alert cannot be scored; such alerts must
            not be enqueued for aggregation
    """
    matched = catalog.match(indicator_name, message)
    rule = matched.rule

    scored = not matched.skip_scoring and matched.score_range is not None
    strategy = (strategy_name or "").strip() or None

    return ScoredEvent(
        symbol=normalize_symbol(symbol),
        candle_type=CandleType.from_value(candle_type).value,
        interval=EventInterval.from_value(interval).value,
        indicator_name=rule.indicator_name,
        indicator_display_name=rule.indicator_display_name or UNKNOWN,
        sub_category=rule.sub_category or UNKNOWN,
        sub_category_display_name=rule.sub_category_display_name or UNKNOWN,
        raw_message=message,
        score=matched.score if scored else ZERO,
        score_min=matched.min_score if scored else ZERO,
        score_max=matched.max_score if scored else ZERO,
        is_strategy=strategy is not None,
        strategy_name=strategy,
        is_alertable=rule.is_alertable,
        event_time=ensure_utc(event_time),
        processing_status=ProcessingStatus.PENDING if scored else ProcessingStatus.NOT_APPLICABLE,
    )
