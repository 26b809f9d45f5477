"""Pytest configuration and shared fixtures."""

import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

import pytest

from bias_app.models.events import ScoredEvent
from bias_app.rules.catalog import RuleCatalog

FIXED_NOW = datetime(2024, 3, 1, 15, 30, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at FIXED_NOW until advanced."""
    return FakeClock()


@pytest.fixture
def version_ids() -> Callable[[], str]:
    """Deterministic version id factory: v1, v2, ..."""
    counter = itertools.count(1)
    return lambda: f"v{next(counter)}"


@pytest.fixture
def sample_rule_rows() -> list[list[str]]:
    """Rule sheet rows in column order, including header and comment rows."""
    return [
        ["param_indicator_name", "param_indicator_display_name", "param_description",
         "param_match_type", "param_alert_pattern", "param_interval", "param_sub_category",
         "param_sub_category_display_name", "param_skip_scoring", "param_score",
         "param_is_alertable"],
        ["# scored rows", "", "", "", "", "", "", "", "", "", ""],
        ["IND1", "Indicator One", "up move", "PREFIX", "UP", "5m", "SUB1", "Sub One",
         "false", "1", "true"],
        ["IND1", "Indicator One", "down move", "PREFIX", "DOWN", "5m", "SUB1", "Sub One",
         "false", "-1", "true"],
        ["IND2", "Indicator Two", "cross", "EXACT", "CROSS UP", "ANY", "SUBX", "Sub X",
         "false", "1", "false"],
        ["IND2", "Indicator Two", "cross", "EXACT", "CROSS DOWN", "ANY", "SUBX", "Sub X",
         "false", "-1", "false"],
        ["IND3", "Indicator Three", "regex", "REGEX", r"RSI (\d+) HIGH", "ANY", "RSI",
         "RSI Level", "false", "2", "false"],
        ["IND3", "Indicator Three", "contains", "CONTAINS", "oversold", "ANY", "RSI",
         "RSI Level", "false", "-2", "false"],
        ["INFO", "Info", "notice", "CONTAINS", "session", "NA", "NOTE", "Note",
         "true", "", "false"],
    ]


@pytest.fixture
def sample_catalog(sample_rule_rows: list[list[str]]) -> RuleCatalog:
    """Catalog built from sample_rule_rows."""
    return RuleCatalog.from_rows(sample_rule_rows, source="sample")


def make_event(**overrides: Any) -> ScoredEvent:
    """ScoredEvent with Scenario B defaults, overridable per field."""
    values: dict[str, Any] = {
        "symbol": "NQ",
        "candle_type": "CLASSIC",
        "interval": "5m",
        "indicator_name": "IND1",
        "sub_category": "SUB1",
        "score": Decimal("1"),
        "score_min": Decimal("-1"),
        "score_max": Decimal("1"),
        "raw_message": "UP BREAK",
        "event_time": FIXED_NOW,
    }
    values.update(overrides)
    return ScoredEvent(**values)


@pytest.fixture
def event_factory() -> Callable[..., ScoredEvent]:
    """Factory for ScoredEvent instances."""
    return make_event
