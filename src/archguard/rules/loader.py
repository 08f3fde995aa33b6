"""Rule set loader: parse archguard.yml into validated Rule objects."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import yaml

from archguard.model.entities import VALID_ITEM_KINDS, EntityKind
from archguard.rules.kinds import (
    RULE_KINDS,
    Check,
    ConfigError,
    DeniedItems,
    MaxLength,
    MustBeNamed,
    MustNotBeNamed,
    RestrictImports,
    Rule,
    RuleKind,
    Severity,
)
from archguard.rules.matcher import (
    HasAttribute,
    ImplementsTrait,
    InModule,
    IsAsync,
    Matcher,
    ModulePath,
    Name,
    NameEquals,
    Not,
    ReturnPattern,
    ReturnsType,
    all_of,
    any_of,
    compile_pattern,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})
VALID_ENTITY_KINDS: frozenset[str] = frozenset(k.value for k in EntityKind)
VALID_SEVERITIES: frozenset[str] = frozenset(s.value for s in Severity)

_PATTERN_ATOMS: dict[str, type[Name | ModulePath | InModule | ImplementsTrait | HasAttribute]] = {
    "name": Name,
    "module": ModulePath,
    "in_module": InModule,
    "implements_trait": ImplementsTrait,
    "has_attribute": HasAttribute,
}
_COMBINATORS: frozenset[str] = frozenset({"and", "or", "not"})
_MATCHER_KEYS: frozenset[str] = frozenset(
    {*_PATTERN_ATOMS, *_COMBINATORS, "name_equals", "is_async", "returns"}
)
_RULE_KIND_KEYS: dict[str, type[RuleKind]] = {kind.key: kind for kind in RULE_KINDS}
_RULE_KEYS: frozenset[str] = frozenset(
    {"name", "kind", "description", "matches", "checks"}
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validated_pattern(value: object, context: str) -> str:
    if not isinstance(value, str) or not value:
        msg = f"{context}: pattern must be a non-empty string"
        raise ConfigError(msg)
    try:
        compile_pattern(value)
    except re.error as exc:
        msg = f"{context}: invalid regex '{value}': {exc}"
        raise ConfigError(msg) from exc
    return value


def _pattern_list(value: object, context: str) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        msg = f"{context}: must be a list of patterns"
        raise ConfigError(msg)
    return tuple(_validated_pattern(p, context) for p in value)


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------


def _parse_returns(value: object, context: str) -> ReturnsType:
    """Parse a ``returns`` atom.

    Accepts a keyword (``result``, ``option``, ``self``, ``self_ref``,
    ``self_mut_ref``, ``result_with_error_impl``) or a single-key mapping
    ``{named: Type}`` / ``{regex: pattern}``.
    """
    if isinstance(value, str):
        try:
            expected = ReturnPattern(value)
        except ValueError:
            expected = None
        if expected is None or expected in (ReturnPattern.NAMED, ReturnPattern.REGEX):
            msg = f"{context}: unknown return pattern '{value}'"
            raise ConfigError(msg)
        return ReturnsType(expected)

    if isinstance(value, dict) and len(value) == 1:
        key, arg = next(iter(value.items()))
        if key == "named":
            if not isinstance(arg, str) or not arg:
                msg = f"{context}: returns.named must be a type name"
                raise ConfigError(msg)
            return ReturnsType(ReturnPattern.NAMED, arg)
        if key == "regex":
            return ReturnsType(ReturnPattern.REGEX, _validated_pattern(arg, f"{context}.regex"))

    msg = f"{context}: returns must be a keyword or one of {{named: ...}}, {{regex: ...}}"
    raise ConfigError(msg)


def parse_matcher(data: object, context: str = "matches") -> Matcher:
    """Parse a matcher expression (a single-key mapping) into a Matcher tree."""
    if not isinstance(data, dict) or len(data) != 1:
        msg = f"{context}: matcher must be a mapping with exactly one key"
        raise ConfigError(msg)

    key, value = next(iter(data.items()))
    if key not in _MATCHER_KEYS:
        msg = f"{context}: unknown matcher '{key}', must be one of {sorted(_MATCHER_KEYS)}"
        raise ConfigError(msg)

    if key in ("and", "or"):
        if not isinstance(value, list) or len(value) < 2:
            msg = f"{context}.{key}: must be a list of at least two matchers"
            raise ConfigError(msg)
        children = [parse_matcher(item, f"{context}.{key}[{i}]") for i, item in enumerate(value)]
        return all_of(*children) if key == "and" else any_of(*children)
    if key == "not":
        return Not(parse_matcher(value, f"{context}.not"))
    if key == "name_equals":
        if not isinstance(value, str) or not value:
            msg = f"{context}.name_equals: must be a non-empty string"
            raise ConfigError(msg)
        return NameEquals(value)
    if key == "is_async":
        if value is not True:
            msg = f"{context}.is_async: only 'true' is supported, use 'not' to negate"
            raise ConfigError(msg)
        return IsAsync()
    if key == "returns":
        return _parse_returns(value, f"{context}.returns")

    atom = _PATTERN_ATOMS[key]
    return atom(_validated_pattern(value, f"{context}.{key}"))


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _parse_rule_kind(key: str, arg: object, context: str) -> RuleKind:
    kind_cls = _RULE_KIND_KEYS[key]

    if kind_cls in (MustBeNamed, MustNotBeNamed):
        return kind_cls(_validated_pattern(arg, context))

    if kind_cls is RestrictImports:
        if not isinstance(arg, dict):
            msg = f"{context}: must be a mapping with 'allowed_only' and/or 'denied'"
            raise ConfigError(msg)
        unknown = set(arg) - {"allowed_only", "denied"}
        if unknown:
            msg = f"{context}: unknown keys {sorted(unknown)}"
            raise ConfigError(msg)
        allowed_only = _pattern_list(arg.get("allowed_only"), f"{context}.allowed_only")
        denied = _pattern_list(arg.get("denied"), f"{context}.denied")
        if allowed_only is None and denied is None:
            msg = f"{context}: at least one of 'allowed_only' or 'denied' is required"
            raise ConfigError(msg)
        return RestrictImports(allowed_only=allowed_only, denied=denied)

    if kind_cls is DeniedItems:
        if isinstance(arg, str):
            arg = [arg]
        if not isinstance(arg, list) or not arg:
            msg = f"{context}: must be a non-empty list of item kinds"
            raise ConfigError(msg)
        items = [str(i) for i in arg]
        for item in items:
            if item not in VALID_ITEM_KINDS:
                msg = (
                    f"{context}: unknown item kind '{item}', "
                    f"must be one of {sorted(VALID_ITEM_KINDS)}"
                )
                raise ConfigError(msg)
        return DeniedItems(frozenset(items))

    if kind_cls is MaxLength:
        if isinstance(arg, bool) or not isinstance(arg, int) or arg < 0:
            msg = f"{context}: must be a non-negative integer"
            raise ConfigError(msg)
        return MaxLength(arg)

    # Flag kinds take no argument.
    if arg not in (None, True, {}):
        msg = f"{context}: takes no arguments"
        raise ConfigError(msg)
    return kind_cls()


def _parse_check(data: object, context: str, default_severity: Severity) -> Check:
    """Parse a check entry: a bare kind name or ``{kind: arg, severity: ...}``."""
    if isinstance(data, str):
        data = {data: None}
    if not isinstance(data, dict):
        msg = f"{context}: check must be a string or a mapping"
        raise ConfigError(msg)

    severity = default_severity
    if "severity" in data:
        severity = _parse_severity(data["severity"], context)

    kind_keys = [k for k in data if k != "severity"]
    if len(kind_keys) != 1:
        msg = f"{context}: check must name exactly one of {sorted(_RULE_KIND_KEYS)}"
        raise ConfigError(msg)
    key = str(kind_keys[0])
    if key not in _RULE_KIND_KEYS:
        msg = f"{context}: unknown check '{key}', must be one of {sorted(_RULE_KIND_KEYS)}"
        raise ConfigError(msg)

    return Check(_parse_rule_kind(key, data[key], f"{context}.{key}"), severity)


def _parse_severity(value: object, context: str) -> Severity:
    raw = str(value)
    if raw not in VALID_SEVERITIES:
        msg = f"{context}: invalid severity '{raw}', must be one of {sorted(VALID_SEVERITIES)}"
        raise ConfigError(msg)
    return Severity(raw)


# ---------------------------------------------------------------------------
# Rule set
# ---------------------------------------------------------------------------


def _parse_rule(data: dict[str, object], idx: int, default_severity: Severity) -> Rule:
    name = data.get("name")
    if name is None or not isinstance(name, str) or not name.strip():
        msg = f"rules: rule at index {idx} missing required 'name' field"
        raise ConfigError(msg)

    context = f"Rule '{name}'"
    unknown = set(data) - _RULE_KEYS
    if unknown:
        msg = f"{context}: unknown keys {sorted(unknown)}"
        raise ConfigError(msg)

    kind_raw = str(data.get("kind", ""))
    if kind_raw not in VALID_ENTITY_KINDS:
        msg = f"{context}: invalid kind '{kind_raw}', must be one of {sorted(VALID_ENTITY_KINDS)}"
        raise ConfigError(msg)

    if "matches" not in data:
        msg = f"{context}: missing required 'matches' field"
        raise ConfigError(msg)
    matches = parse_matcher(data["matches"], f"{context} matches")

    checks_raw = data.get("checks")
    if not isinstance(checks_raw, list) or not checks_raw:
        msg = f"{context}: 'checks' must be a non-empty list"
        raise ConfigError(msg)
    checks = tuple(
        _parse_check(c, f"{context} checks[{i}]", default_severity)
        for i, c in enumerate(checks_raw)
    )

    return Rule(
        name=name,
        entity_kind=EntityKind(kind_raw),
        matches=matches,
        checks=checks,
        description=str(data.get("description", "")),
    )


def parse_rules(data: object) -> list[Rule]:
    """Validate an already-decoded rule-set document and return its rules.

    Raises ``ConfigError`` on any schema problem; nothing is evaluated.
    """
    if not isinstance(data, dict):
        msg = "rule set must be a YAML mapping"
        raise ConfigError(msg)

    version = data.get("version")
    if version is None:
        msg = "rule set: missing required 'version' field"
        raise ConfigError(msg)
    if not isinstance(version, int) or version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        msg = f"rule set: unsupported version {version}, expected one of {expected}"
        raise ConfigError(msg)

    default_severity = _parse_severity(data.get("default_severity", "warn"), "default_severity")

    rules_data = data.get("rules", [])
    if not isinstance(rules_data, list):
        msg = "rule set: 'rules' must be a list"
        raise ConfigError(msg)

    seen_names: set[str] = set()
    rules: list[Rule] = []
    for idx, rule_data in enumerate(rules_data):
        if not isinstance(rule_data, dict):
            msg = f"rules: rule at index {idx} must be a mapping"
            raise ConfigError(msg)
        rule = _parse_rule(rule_data, idx, default_severity)
        if rule.name in seen_names:
            msg = f"rule set: duplicate rule name '{rule.name}'"
            raise ConfigError(msg)
        seen_names.add(rule.name)
        rules.append(rule)

    return rules


def load_rules(rules_path: Path) -> list[Rule]:
    """Parse a rule-set YAML file and return validated Rule objects.

    Raises ``ConfigError`` when the file is unreadable or invalid.
    """
    try:
        with rules_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        msg = f"Cannot read rule set {rules_path}: {exc}"
        raise ConfigError(msg) from exc
    except (UnicodeDecodeError, yaml.YAMLError) as exc:
        msg = f"Cannot parse rule set {rules_path}: {exc}"
        raise ConfigError(msg) from exc

    rules = parse_rules(data)
    logger.info("Loaded %d rules from %s", len(rules), rules_path)
    return rules

