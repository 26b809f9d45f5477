"""
Indicator rule catalog loading and alert matching.

The catalog is loaded once from a tabular rule sheet (CSV). Loading validates
every row, compiles regex patterns and derives the score range of each
(indicator, sub-category) pair, so that any misconfiguration stops startup
instead of surfacing while events are being scored.
"""

import csv
import io
import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Optional, TextIO, Union

import structlog

from ..errors import CatalogConfigurationError, InvalidMatchTypeError, NoMatchingRuleError
from ..scoring.normalizer import ZERO, to_decimal
from .matching import rule_matches
from .models import MatchedRule, MatchType, Rule, ScoreRange, range_key

logger = structlog.get_logger(__name__)

RULE_COLUMNS = (
    "indicator_name",
    "indicator_display_name",
    "description",
    "match_type",
    "alert_pattern",
    "interval",
    "sub_category",
    "sub_category_display_name",
    "skip_scoring",
    "score",
    "is_alertable",
)

HEADER_MARKERS = {"param_indicator_name", "indicator_name", "indicatorname"}
COMMENT_MARKER = "#"
INTERVAL_SEPARATORS = re.compile(r"[,|;]")

RuleSource = Union[str, Path, TextIO, Iterable[Sequence[str]]]


def _cell(row: Sequence[str], index: int) -> Optional[str]:
    """Trimmed cell value, None when blank or absent."""
    if index >= len(row) or row[index] is None:
        return None
    value = str(row[index]).strip()
    return value or None


def _is_true(value: Optional[str]) -> bool:
    return value is not None and value.lower() == "true"


class RuleCatalog:
    """Ordered, immutable collection of indicator rules and their score ranges."""

    def __init__(self, rules: Sequence[Rule], source: Optional[str] = None) -> None:
        self._rules: tuple[Rule, ...] = tuple(rules)
        self.source = source
        self._ranges: Mapping[str, ScoreRange] = MappingProxyType(
            self._compute_ranges(self._rules)
        )

        logger.info(
            "Rule catalog loaded",
            source=source,
            rule_count=len(self._rules),
            range_count=len(self._ranges)
        )

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "RuleCatalog":
        """Load a catalog from a CSV rule sheet on disk."""
        path = Path(path)
        with open(path, newline="", encoding="utf-8") as f:
            return cls.from_rows(csv.reader(f), source=str(path))

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[str]], source: Optional[str] = None) -> "RuleCatalog":
        """
        Build a catalog from raw rows in sheet column order.

        Comment rows (first cell starting with ``#``), header rows and blank
        rows are ignored. Rows without an indicator name or alert pattern are
        logged and skipped.

        Raises:
            InvalidMatchTypeError: If a row declares an unknown match type
            CatalogConfigurationError: If a row has a bad score or regex
        """
        rules: list[Rule] = []
        for row_number, row in enumerate(rows, start=1):
            rule = cls._parse_row(row, row_number, len(rules), source)
            if rule is not None:
                rules.append(rule)
        return cls(rules, source=source)

    @staticmethod
    def _parse_row(
        row: Sequence[str],
        row_number: int,
        position: int,
        source: Optional[str]
    ) -> Optional[Rule]:
        first = _cell(row, 0)
        if not row or all(_cell(row, i) is None for i in range(len(row))):
            return None
        if first is not None and (first.startswith(COMMENT_MARKER) or first.lower() in HEADER_MARKERS):
            return None

        values = {name: _cell(row, i) for i, name in enumerate(RULE_COLUMNS)}
        indicator_name = values["indicator_name"]
        alert_pattern = values["alert_pattern"]

        if indicator_name is None or alert_pattern is None:
            logger.error(
                "Indicator name or alert pattern missing, skipping row",
                row_number=row_number,
                source=source
            )
            return None

        try:
            match_type = MatchType.parse(values["match_type"])
        except InvalidMatchTypeError as e:
            e.row_number = row_number
            e.source = source
            e.context.update({"indicator_name": indicator_name, "alert_pattern": alert_pattern})
            raise

        compiled = None
        if match_type is MatchType.REGEX:
            try:
                compiled = re.compile(alert_pattern)
            except re.error as e:
                raise CatalogConfigurationError(
                    f"Invalid regex pattern {alert_pattern!r}: {e}",
                    indicator_name=indicator_name,
                    sub_category=values["sub_category"],
                    row_number=row_number,
                    source=source
                ) from e

        raw_score: Optional[Decimal] = None
        if values["score"] is not None:
            try:
                raw_score = to_decimal(values["score"])
            except ValueError as e:
                raise CatalogConfigurationError(
                    f"Score {values['score']!r} is not numeric",
                    indicator_name=indicator_name,
                    sub_category=values["sub_category"],
                    row_number=row_number,
                    source=source
                ) from e

        intervals = values["interval"]
        applicable_intervals = tuple(
            part.strip() for part in INTERVAL_SEPARATORS.split(intervals) if part.strip()
        ) if intervals else ()

        return Rule(
            indicator_name=indicator_name,
            sub_category=values["sub_category"],
            position=position,
            match_type=match_type,
            alert_pattern=alert_pattern,
            compiled_pattern=compiled,
            raw_score=raw_score,
            skip_scoring=_is_true(values["skip_scoring"]),
            indicator_display_name=values["indicator_display_name"],
            sub_category_display_name=values["sub_category_display_name"],
            description=values["description"],
            applicable_intervals=applicable_intervals,
            is_alertable=_is_true(values["is_alertable"]),
        )

    @staticmethod
    def _compute_ranges(rules: Sequence[Rule]) -> dict[str, ScoreRange]:
        """Min/max raw score per (indicator, sub-category), widened to include zero."""
        ranges: dict[str, ScoreRange] = {}
        for rule in rules:
            if rule.skip_scoring:
                continue

            if rule.raw_score is None:
                raise CatalogConfigurationError(
                    f"Score is missing for indicator {rule.indicator_name} "
                    f"sub category {rule.sub_category}",
                    indicator_name=rule.indicator_name,
                    sub_category=rule.sub_category,
                    row_number=None
                )

            existing = ranges.get(rule.range_key)
            if existing is None:
                existing = ScoreRange(
                    indicator_name=rule.indicator_name,
                    sub_category=rule.sub_category,
                    min_score=ZERO,
                    max_score=ZERO,
                )
            ranges[rule.range_key] = existing.widened(rule.raw_score)
        return ranges

    def match(self, indicator_name: str, message: str) -> MatchedRule:
        """
        Return the first rule, in catalog order, matching the alert message.

        Raises:
            NoMatchingRuleError: If no rule for the indicator matches
        """
        matched = self.try_match(indicator_name, message)
        if matched is None:
            raise NoMatchingRuleError(
                f"No matching rule found for indicator: {indicator_name} and message: {message}",
                indicator_name=indicator_name,
                alert_message=message
            )
        return matched

    def try_match(self, indicator_name: str, message: str) -> Optional[MatchedRule]:
        """Like ``match`` but returns None instead of raising."""
        for rule in self._rules:
            if rule_matches(rule, indicator_name, message):
                return MatchedRule(rule=rule, score_range=self._ranges.get(rule.range_key))
        return None

    def score_range(self, indicator_name: str, sub_category: Optional[str]) -> Optional[ScoreRange]:
        """Precomputed score range for an (indicator, sub-category) pair."""
        return self._ranges.get(range_key(indicator_name, sub_category))

    def rules_for(self, indicator_name: str) -> list[Rule]:
        """All rules of one indicator, in catalog order."""
        wanted = indicator_name.strip().lower()
        return [rule for rule in self._rules if rule.indicator_name.lower() == wanted]

    @property
    def ranges(self) -> Mapping[str, ScoreRange]:
        return self._ranges

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)


def load_rules(source: RuleSource) -> RuleCatalog:
    """
    Load a rule catalog from a CSV path, an open text stream or raw rows.

    Args:
        source: Path to a CSV file, a readable text stream, or an iterable
            of rows in sheet column order

    Returns:
        Loaded and validated RuleCatalog
    """
    if isinstance(source, (str, Path)):
        return RuleCatalog.from_csv(source)
    if isinstance(source, io.IOBase) or hasattr(source, "read"):
        return RuleCatalog.from_rows(csv.reader(source), source=getattr(source, "name", None))
    return RuleCatalog.from_rows(source)
