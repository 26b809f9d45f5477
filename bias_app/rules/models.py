"""
Rule catalog data models.

Immutable rule definitions loaded from the indicator rule sheet, the closed
set of match types, and per-(indicator, sub-category) score ranges.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from ..errors import InvalidMatchTypeError


class MatchType(str, Enum):
    """How a rule's alert pattern is compared against an alert message."""
    PREFIX = "PREFIX"
    EXACT = "EXACT"
    REGEX = "REGEX"
    CONTAINS = "CONTAINS"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MatchType":
        """
        Parse a match type cell, accepting the legacy sheet spellings.

        Raises:
            InvalidMatchTypeError: If the value is blank or unrecognized
        """
        normalized = (value or "").strip().upper()
        if not normalized:
            raise InvalidMatchTypeError("Match type is missing", match_type=value)

        normalized = MATCH_TYPE_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidMatchTypeError(
                f"Invalid match type: {value}",
                match_type=value
            ) from None


MATCH_TYPE_ALIASES = {
    "STARTS_WITH": "PREFIX",
    "FULL_MATCH": "EXACT",
    "JAVA_REGEX": "REGEX",
}


def range_key(indicator_name: str, sub_category: Optional[str]) -> str:
    """Case-insensitive key for an (indicator, sub-category) pair."""
    return f"{indicator_name}_{sub_category or ''}".upper()


@dataclass(frozen=True)
class ScoreRange:
    """Score bounds shared by all scored rules of one sub-category."""
    indicator_name: str
    sub_category: Optional[str]
    min_score: Decimal
    max_score: Decimal

    @property
    def key(self) -> str:
        return range_key(self.indicator_name, self.sub_category)

    def widened(self, score: Decimal) -> "ScoreRange":
        """Return a range that also covers ``score``."""
        return ScoreRange(
            indicator_name=self.indicator_name,
            sub_category=self.sub_category,
            min_score=min(self.min_score, score),
            max_score=max(self.max_score, score),
        )


@dataclass(frozen=True)
class Rule:
    """One row of the indicator rule catalog."""

    # Identity
    indicator_name: str
    sub_category: Optional[str]
    position: int                                  # Catalog load order

    # Matching
    match_type: MatchType
    alert_pattern: str
    compiled_pattern: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    # Scoring
    raw_score: Optional[Decimal] = None
    skip_scoring: bool = False

    # Presentation
    indicator_display_name: Optional[str] = None
    sub_category_display_name: Optional[str] = None
    description: Optional[str] = None
    applicable_intervals: tuple[str, ...] = ()
    is_alertable: bool = False

    @property
    def range_key(self) -> str:
        return range_key(self.indicator_name, self.sub_category)


@dataclass(frozen=True)
class MatchedRule:
    """A rule returned by the matcher, decorated with its score range."""
    rule: Rule
    score_range: Optional[ScoreRange]

    @property
    def score(self) -> Optional[Decimal]:
        return self.rule.raw_score

    @property
    def min_score(self) -> Optional[Decimal]:
        return self.score_range.min_score if self.score_range else None

    @property
    def max_score(self) -> Optional[Decimal]:
        return self.score_range.max_score if self.score_range else None

    @property
    def skip_scoring(self) -> bool:
        return self.rule.skip_scoring
