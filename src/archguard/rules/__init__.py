"""Rule domain: matcher language, rule kinds, loader and evaluator."""

from archguard.rules.engine import Violation, evaluate_rules, matching_entities, rules_matching
from archguard.rules.kinds import RULE_KINDS, Check, ConfigError, Rule, Severity
from archguard.rules.loader import load_rules, parse_matcher, parse_rules
from archguard.rules.matcher import Matcher, evaluate

__all__ = [
    "RULE_KINDS",
    "Check",
    "ConfigError",
    "Matcher",
    "Rule",
    "Severity",
    "Violation",
    "evaluate",
    "evaluate_rules",
    "load_rules",
    "matching_entities",
    "parse_matcher",
    "parse_rules",
    "rules_matching",
]
