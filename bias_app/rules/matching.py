"""Per-match-type evaluators for alert messages."""

from typing import Callable

from .models import MatchType, Rule


def _matches_prefix(rule: Rule, message: str) -> bool:
    return message.strip().lower().startswith(rule.alert_pattern.strip().lower())


def _matches_exact(rule: Rule, message: str) -> bool:
    return message.strip().lower() == rule.alert_pattern.strip().lower()


def _matches_regex(rule: Rule, message: str) -> bool:
    # whole-message match on the untrimmed text
    return rule.compiled_pattern is not None and rule.compiled_pattern.fullmatch(message) is not None


def _matches_contains(rule: Rule, message: str) -> bool:
    return rule.alert_pattern.lower() in message.lower()


MATCHERS: dict[MatchType, Callable[[Rule, str], bool]] = {
    MatchType.PREFIX: _matches_prefix,
    MatchType.EXACT: _matches_exact,
    MatchType.REGEX: _matches_regex,
    MatchType.CONTAINS: _matches_contains,
}


def rule_matches(rule: Rule, indicator_name: str, message: str) -> bool:
    """Check whether ``rule`` applies to this indicator and alert message."""
    if rule.indicator_name.lower() != indicator_name.strip().lower():
        return False
    return MATCHERS[rule.match_type](rule, message)
