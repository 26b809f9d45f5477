"""
Indicator rule catalog module.

Loads the alert-message rule sheet, derives per-sub-category score ranges and
matches raw alert messages to rules.
"""
from .catalog import RuleCatalog, load_rules
from .models import MatchedRule, MatchType, Rule, ScoreRange

__all__ = ["RuleCatalog", "load_rules", "MatchedRule", "MatchType", "Rule", "ScoreRange"]
