"""
Composite score tree models.

A Snapshot is the full per-symbol score tree at one point in time:

    Snapshot (symbol)
      -> CandleIntervalGroup (candle type, interval)
        -> IndicatorScore (indicator)
          -> SubCategoryScore (sub-category)

Every node is a frozen dataclass and every child collection is a read-only
mapping keyed by the child's composite key, so a published snapshot can never
be edited in place. New versions are built by copying only the path from the
changed leaf up to the root.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Optional

from ..scoring.normalizer import ZERO, Direction, to_decimal
from ..utils.time import format_time, parse_time

EMPTY_CHILDREN: Mapping = MappingProxyType({})


def _join_key(*parts: Optional[str]) -> str:
    return "_".join(part or "" for part in parts).upper()


def group_key(symbol: str, candle_type: str, interval: str) -> str:
    """Key of a candle/interval group, e.g. ``NQ_CLASSIC_5M``."""
    return _join_key(symbol, candle_type, interval)


def indicator_key(symbol: str, candle_type: str, interval: str, indicator_name: str) -> str:
    """Key of an indicator node, e.g. ``NQ_CLASSIC_5M_RSI``."""
    return _join_key(symbol, candle_type, interval, indicator_name)


def sub_category_key(
    symbol: str,
    candle_type: str,
    interval: str,
    indicator_name: str,
    sub_category: str
) -> str:
    """Key of a sub-category leaf, e.g. ``NQ_CLASSIC_5M_RSI_OVERBOUGHT``."""
    return _join_key(symbol, candle_type, interval, indicator_name, sub_category)


def frozen_children(children: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy of a child mapping."""
    return MappingProxyType(dict(children))


def _opt_time(value: Optional[datetime]) -> Optional[str]:
    return format_time(value) if value else None


def _read_time(value: Optional[str]) -> Optional[datetime]:
    return parse_time(value) if value else None


def _score_dict(node: Any) -> dict[str, Any]:
    return {
        "score": str(node.score),
        "min_score": str(node.min_score),
        "max_score": str(node.max_score),
        "percentage": str(node.percentage),
        "direction": node.direction.value,
    }


def _score_kwargs(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "score": to_decimal(data["score"]),
        "min_score": to_decimal(data["min_score"]),
        "max_score": to_decimal(data["max_score"]),
        "percentage": to_decimal(data["percentage"]),
        "direction": Direction(data["direction"]),
    }


@dataclass(frozen=True)
class SubCategoryScore:
    """Leaf score for one indicator sub-condition."""

    key: str
    symbol: str
    candle_type: str
    interval: str
    indicator_name: str
    name: str

    score: Decimal = ZERO
    min_score: Decimal = ZERO
    max_score: Decimal = ZERO
    percentage: Decimal = ZERO
    direction: Direction = Direction.NEUTRAL

    indicator_display_name: Optional[str] = None
    display_name: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    is_strategy: bool = False
    strategy_name: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "symbol": self.symbol,
            "candle_type": self.candle_type,
            "interval": self.interval,
            "indicator_name": self.indicator_name,
            "name": self.name,
            **_score_dict(self),
            "indicator_display_name": self.indicator_display_name,
            "display_name": self.display_name,
            "last_message": self.last_message,
            "last_message_at": _opt_time(self.last_message_at),
            "is_strategy": self.is_strategy,
            "strategy_name": self.strategy_name,
            "updated_at": _opt_time(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubCategoryScore":
        return cls(
            key=data["key"],
            symbol=data["symbol"],
            candle_type=data["candle_type"],
            interval=data["interval"],
            indicator_name=data["indicator_name"],
            name=data["name"],
            **_score_kwargs(data),
            indicator_display_name=data.get("indicator_display_name"),
            display_name=data.get("display_name"),
            last_message=data.get("last_message"),
            last_message_at=_read_time(data.get("last_message_at")),
            is_strategy=bool(data.get("is_strategy", False)),
            strategy_name=data.get("strategy_name"),
            updated_at=_read_time(data.get("updated_at")),
        )


@dataclass(frozen=True)
class IndicatorScore:
    """Sum of one indicator's sub-category scores."""

    key: str
    symbol: str
    candle_type: str
    interval: str
    name: str

    score: Decimal = ZERO
    min_score: Decimal = ZERO
    max_score: Decimal = ZERO
    percentage: Decimal = ZERO
    direction: Direction = Direction.NEUTRAL

    display_name: Optional[str] = None
    last_message: Optional[str] = None
    updated_at: Optional[datetime] = None
    sub_categories: Mapping[str, SubCategoryScore] = field(default_factory=lambda: EMPTY_CHILDREN)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "symbol": self.symbol,
            "candle_type": self.candle_type,
            "interval": self.interval,
            "name": self.name,
            **_score_dict(self),
            "display_name": self.display_name,
            "last_message": self.last_message,
            "updated_at": _opt_time(self.updated_at),
            "sub_categories": [leaf.to_dict() for leaf in self.sub_categories.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndicatorScore":
        leaves = [SubCategoryScore.from_dict(item) for item in data.get("sub_categories", [])]
        return cls(
            key=data["key"],
            symbol=data["symbol"],
            candle_type=data["candle_type"],
            interval=data["interval"],
            name=data["name"],
            **_score_kwargs(data),
            display_name=data.get("display_name"),
            last_message=data.get("last_message"),
            updated_at=_read_time(data.get("updated_at")),
            sub_categories=frozen_children({leaf.key: leaf for leaf in leaves}),
        )


@dataclass(frozen=True)
class CandleIntervalGroup:
    """Sum of all indicator scores for one candle type and interval."""

    key: str
    symbol: str
    candle_type: str
    interval: str

    score: Decimal = ZERO
    min_score: Decimal = ZERO
    max_score: Decimal = ZERO
    percentage: Decimal = ZERO
    direction: Direction = Direction.NEUTRAL

    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    indicators: Mapping[str, IndicatorScore] = field(default_factory=lambda: EMPTY_CHILDREN)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "symbol": self.symbol,
            "candle_type": self.candle_type,
            "interval": self.interval,
            **_score_dict(self),
            "last_message": self.last_message,
            "last_message_at": _opt_time(self.last_message_at),
            "updated_at": _opt_time(self.updated_at),
            "indicators": [indicator.to_dict() for indicator in self.indicators.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CandleIntervalGroup":
        indicators = [IndicatorScore.from_dict(item) for item in data.get("indicators", [])]
        return cls(
            key=data["key"],
            symbol=data["symbol"],
            candle_type=data["candle_type"],
            interval=data["interval"],
            **_score_kwargs(data),
            last_message=data.get("last_message"),
            last_message_at=_read_time(data.get("last_message_at")),
            updated_at=_read_time(data.get("updated_at")),
            indicators=frozen_children({indicator.key: indicator for indicator in indicators}),
        )


@dataclass(frozen=True)
class Snapshot:
    """Versioned composite score tree for one symbol."""

    version_id: str
    symbol: str
    created_at: datetime

    score: Decimal = ZERO
    min_score: Decimal = ZERO
    max_score: Decimal = ZERO
    percentage: Decimal = ZERO
    direction: Direction = Direction.NEUTRAL

    previous_version_id: Optional[str] = None
    groups: Mapping[str, CandleIntervalGroup] = field(default_factory=lambda: EMPTY_CHILDREN)

    def iter_leaves(self):
        """Yield every SubCategoryScore in the tree."""
        for group in self.groups.values():
            for indicator in group.indicators.values():
                yield from indicator.sub_categories.values()

    def find_leaf(
        self,
        candle_type: str,
        interval: str,
        indicator_name: str,
        sub_category: str
    ) -> Optional[SubCategoryScore]:
        """Look up one leaf by its coordinates."""
        group = self.groups.get(group_key(self.symbol, candle_type, interval))
        if group is None:
            return None
        indicator = group.indicators.get(
            indicator_key(self.symbol, candle_type, interval, indicator_name)
        )
        if indicator is None:
            return None
        return indicator.sub_categories.get(
            sub_category_key(self.symbol, candle_type, interval, indicator_name, sub_category)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version_id": self.version_id,
            "symbol": self.symbol,
            "created_at": format_time(self.created_at),
            **_score_dict(self),
            "previous_version_id": self.previous_version_id,
            "groups": [group.to_dict() for group in self.groups.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        groups = [CandleIntervalGroup.from_dict(item) for item in data.get("groups", [])]
        return cls(
            version_id=data["version_id"],
            symbol=data["symbol"],
            created_at=parse_time(data["created_at"]),
            **_score_kwargs(data),
            previous_version_id=data.get("previous_version_id"),
            groups=frozen_children({group.key: group for group in groups}),
        )
