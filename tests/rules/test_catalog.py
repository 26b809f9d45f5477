"""Tests for rule catalog loading and alert matching."""

import io
import os
import shutil
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

from bias_app.errors import (
    CatalogConfigurationError,
    CatalogError,
    InvalidMatchTypeError,
    NoMatchingRuleError,
    SystemFailureError,
)
from bias_app.rules import MatchType, RuleCatalog, load_rules


def _row(indicator, match_type, pattern, sub, score, skip="false", interval="ANY"):
    return [indicator, f"{indicator} display", "", match_type, pattern, interval, sub,
            f"{sub} display", skip, score, "false"]


class TestCatalogLoading:
    """Test building catalogs from rule sheet rows."""

    def test_score_range_from_opposite_rules(self, sample_catalog):
        """Test that two opposite rules give a symmetric range."""
        score_range = sample_catalog.score_range("IND1", "SUB1")

        assert score_range.min_score == Decimal("-1")
        assert score_range.max_score == Decimal("1")

    def test_header_and_comment_rows_ignored(self, sample_catalog):
        """Test that header, comment and skip rows are handled."""
        assert len(sample_catalog) == 7
        assert all(not rule.indicator_name.startswith("#") for rule in sample_catalog)
        assert all(rule.indicator_name != "param_indicator_name" for rule in sample_catalog)

    def test_rules_for_keeps_catalog_order(self, sample_catalog):
        """Test that rules_for returns one indicator's rules in sheet order."""
        rules = sample_catalog.rules_for(" ind3 ")

        assert [rule.match_type for rule in rules] == [MatchType.REGEX, MatchType.CONTAINS]
        assert sample_catalog.rules_for("MISSING") == []

    def test_skip_scoring_rows_excluded_from_ranges(self, sample_catalog):
        """Test that skip-scoring rows never contribute a range."""
        assert sample_catalog.score_range("INFO", "NOTE") is None
        assert "INFO_NOTE" not in sample_catalog.ranges

    def test_range_widened_to_include_zero(self):
        """Test that one-sided score sets still produce a range straddling zero."""
        catalog = RuleCatalog.from_rows([
            _row("ADX", "PREFIX", "STRONG", "TREND", "3"),
            _row("ADX", "PREFIX", "WEAK", "TREND", "1"),
        ])

        score_range = catalog.score_range("ADX", "TREND")
        assert score_range.min_score == Decimal("0")
        assert score_range.max_score == Decimal("3")

    def test_blank_name_or_pattern_rows_skipped(self):
        """Test that rows without indicator name or pattern are skipped."""
        catalog = RuleCatalog.from_rows([
            _row("", "PREFIX", "UP", "SUB1", "1"),
            _row("IND1", "PREFIX", "", "SUB1", "1"),
            _row("IND1", "PREFIX", "UP", "SUB1", "1"),
            [],
        ])

        assert len(catalog) == 1

    def test_match_type_aliases(self):
        """Test legacy match type spellings."""
        catalog = RuleCatalog.from_rows([
            _row("A", "STARTS_WITH", "X", "S", "1"),
            _row("A", "full_match", "Y", "S", "-1"),
            _row("A", "JAVA_REGEX", "Z+", "S", "1"),
        ])

        assert [rule.match_type for rule in catalog] == [
            MatchType.PREFIX, MatchType.EXACT, MatchType.REGEX
        ]

    def test_interval_list_parsed(self):
        """Test that multi-interval cells are split."""
        catalog = RuleCatalog.from_rows([
            _row("A", "PREFIX", "X", "S", "1", interval="5m, 15m|1h"),
        ])

        assert next(iter(catalog)).applicable_intervals == ("5m", "15m", "1h")

    def test_rules_for_indicator_in_order(self, sample_catalog):
        """Test inspection of one indicator's rules."""
        rules = sample_catalog.rules_for("ind2")

        assert [rule.alert_pattern for rule in rules] == ["CROSS UP", "CROSS DOWN"]
        assert rules[0].position < rules[1].position


class TestCatalogConfigurationErrors:
    """Test fatal rule sheet problems."""

    def test_invalid_match_type(self):
        """Test that an unknown match type stops loading."""
        with pytest.raises(InvalidMatchTypeError) as exc_info:
            RuleCatalog.from_rows([
                _row("IND1", "PREFIX", "UP", "SUB1", "1"),
                _row("IND1", "FUZZY", "DOWN", "SUB1", "-1"),
            ], source="sheet.csv")

        error = exc_info.value
        assert isinstance(error, CatalogError)
        assert isinstance(error, SystemFailureError)
        assert error.recoverable is False
        assert error.row_number == 2
        assert error.source == "sheet.csv"
        assert error.match_type == "FUZZY"

    def test_blank_match_type(self):
        """Test that a blank match type is invalid."""
        with pytest.raises(InvalidMatchTypeError):
            RuleCatalog.from_rows([_row("IND1", "", "UP", "SUB1", "1")])

    def test_missing_score_on_scored_rule(self):
        """Test that a non-skip rule without score is a configuration error."""
        with pytest.raises(CatalogConfigurationError) as exc_info:
            RuleCatalog.from_rows([_row("IND1", "PREFIX", "UP", "SUB1", "")])

        assert exc_info.value.indicator_name == "IND1"
        assert exc_info.value.sub_category == "SUB1"

    def test_non_numeric_score(self):
        """Test that a non-numeric score is rejected."""
        with pytest.raises(CatalogConfigurationError):
            RuleCatalog.from_rows([_row("IND1", "PREFIX", "UP", "SUB1", "high")])

    @pytest.mark.parametrize("score", ["Infinity", "-Infinity", "NaN"])
    def test_non_finite_score(self, score):
        """Test that non-finite scores fail the load with the offending row."""
        with pytest.raises(CatalogConfigurationError) as exc_info:
            RuleCatalog.from_rows([
                _row("IND1", "PREFIX", "DOWN", "SUB1", "-1"),
                _row("IND1", "PREFIX", "UP", "SUB1", score),
            ])

        assert exc_info.value.row_number == 2

    def test_invalid_regex(self):
        """Test that an uncompilable regex is rejected at load."""
        with pytest.raises(CatalogConfigurationError) as exc_info:
            RuleCatalog.from_rows([_row("IND1", "REGEX", "([unclosed", "SUB1", "1")], source="s")

        assert exc_info.value.row_number == 1


class TestMatching:
    """Test alert matching semantics."""

    def test_first_matching_rule_returned_with_range(self, sample_catalog):
        """Test matching a message returns the first rule and its range."""
        matched = sample_catalog.match("IND1", "UP BREAK")

        assert matched.rule.alert_pattern == "UP"
        assert matched.score == Decimal("1")
        assert matched.min_score == Decimal("-1")
        assert matched.max_score == Decimal("1")

    def test_first_match_wins(self):
        """Test that catalog order decides between overlapping rules."""
        catalog = RuleCatalog.from_rows([
            _row("IND1", "PREFIX", "UP", "SUB1", "1"),
            _row("IND1", "PREFIX", "UP BIG", "SUB1", "2"),
        ])

        assert catalog.match("IND1", "UP BIG MOVE").score == Decimal("1")

    def test_prefix_is_trimmed_and_case_insensitive(self, sample_catalog):
        """Test prefix matching normalization."""
        assert sample_catalog.match("ind1", "   up break").rule.alert_pattern == "UP"

    def test_exact_is_trimmed_and_case_insensitive(self, sample_catalog):
        """Test exact matching normalization."""
        assert sample_catalog.match("IND2", " cross up ").score == Decimal("1")
        with pytest.raises(NoMatchingRuleError):
            sample_catalog.match("IND2", "CROSS UP NOW")

    def test_regex_requires_full_match(self, sample_catalog):
        """Test regex rules match the whole untrimmed message."""
        assert sample_catalog.match("IND3", "RSI 75 HIGH").score == Decimal("2")
        assert sample_catalog.try_match("IND3", "RSI 75 HIGH ") is None
        assert sample_catalog.try_match("IND3", "ALERT RSI 75 HIGH") is None

    def test_contains_is_case_insensitive(self, sample_catalog):
        """Test substring matching."""
        assert sample_catalog.match("IND3", "Now OVERSOLD on 5m").score == Decimal("-2")

    def test_indicator_must_match(self, sample_catalog):
        """Test rules of other indicators never match."""
        with pytest.raises(NoMatchingRuleError) as exc_info:
            sample_catalog.match("IND9", "UP BREAK")

        assert exc_info.value.indicator_name == "IND9"
        assert exc_info.value.alert_message == "UP BREAK"
        assert exc_info.value.recoverable is True

    def test_skip_rule_matches_without_range(self, sample_catalog):
        """Test skip-scoring rules still participate in matching."""
        matched = sample_catalog.match("INFO", "NY session open")

        assert matched.skip_scoring is True
        assert matched.score_range is None


class TestLoadRules:
    """Test load_rules source handling."""

    def setup_method(self):
        """Setup temp directory."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Cleanup temp directory."""
        shutil.rmtree(self.temp_dir)

    def test_load_from_csv_path(self):
        """Test loading a CSV file from disk."""
        path = Path(self.temp_dir) / "rules.csv"
        path.write_text(
            "param_indicator_name,a,b,match,pattern,interval,sub,subd,skip,score,alert\n"
            "# comment,,,,,,,,,,\n"
            "IND1,,,PREFIX,UP,5m,SUB1,,false,1,true\n"
            "IND1,,,PREFIX,DOWN,5m,SUB1,,false,-1,true\n",
            encoding="utf-8"
        )

        catalog = load_rules(path)

        assert len(catalog) == 2
        assert catalog.source == str(path)
        assert catalog.match("IND1", "DOWN").score == Decimal("-1")

    def test_load_from_string_path(self):
        """Test loading with a str path."""
        path = os.path.join(self.temp_dir, "rules.csv")
        with open(path, "w", encoding="utf-8") as f:
            f.write("IND1,,,EXACT,PING,,SUB1,,false,1,false\n")

        assert len(load_rules(path)) == 1

    def test_load_from_stream(self):
        """Test loading from a text stream."""
        stream = io.StringIO("IND1,,,CONTAINS,spike,,SUB1,,false,-1,false\n")

        catalog = load_rules(stream)

        assert catalog.match("IND1", "volume SPIKE").score == Decimal("-1")

    def test_load_from_rows(self, sample_rule_rows):
        """Test loading from in-memory rows."""
        assert len(load_rules(sample_rule_rows)) == 7

    def test_shipped_rule_sheet_loads(self):
        """Test that the default rule sheet is valid."""
        path = Path(__file__).parent.parent.parent / "config" / "indicator_rules.csv"

        catalog = load_rules(path)

        assert len(catalog) > 0
        for score_range in catalog.ranges.values():
            assert score_range.min_score <= 0 <= score_range.max_score
