"""Tests for archguard.rules.loader: rule-set parsing and schema validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from archguard.model.entities import EntityKind
from archguard.rules.kinds import (
    Check,
    ConfigError,
    DeniedItems,
    MaxLength,
    MustBeNamed,
    MustBePrivate,
    MustHaveEmptyModFile,
    RestrictImports,
    Rule,
    Severity,
)
from archguard.rules.loader import load_rules, parse_matcher, parse_rules
from archguard.rules.matcher import (
    And,
    ImplementsTrait,
    InModule,
    IsAsync,
    ModulePath,
    Name,
    NameEquals,
    Not,
    Or,
    ReturnPattern,
    ReturnsType,
)

if TYPE_CHECKING:
    from pathlib import Path


def _rule_set(*rules: dict[str, object], **extra: object) -> dict[str, object]:
    return {"version": 1, "rules": list(rules), **extra}


def _rule(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "name": "r",
        "kind": "module",
        "matches": {"module": ".*"},
        "checks": ["must_not_be_empty"],
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# TestParseMatcher
# ---------------------------------------------------------------------------


class TestParseMatcher:
    def test_atoms(self) -> None:
        assert parse_matcher({"name": "Impl$"}) == Name("Impl$")
        assert parse_matcher({"name_equals": "main"}) == NameEquals("main")
        assert parse_matcher({"module": "^app"}) == ModulePath("^app")
        assert parse_matcher({"in_module": "^app::db"}) == InModule("^app::db")
        assert parse_matcher({"implements_trait": "Repo"}) == ImplementsTrait("Repo")
        assert parse_matcher({"is_async": True}) == IsAsync()

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("result", ReturnsType(ReturnPattern.RESULT)),
            ("option", ReturnsType(ReturnPattern.OPTION)),
            ("self", ReturnsType(ReturnPattern.SELF_VALUE)),
            ("self_ref", ReturnsType(ReturnPattern.SELF_REF)),
            ("self_mut_ref", ReturnsType(ReturnPattern.SELF_MUT_REF)),
            ("result_with_error_impl", ReturnsType(ReturnPattern.RESULT_WITH_ERROR_IMPL)),
            ({"named": "String"}, ReturnsType(ReturnPattern.NAMED, "String")),
            ({"regex": "^Vec<"}, ReturnsType(ReturnPattern.REGEX, "^Vec<")),
        ],
    )
    def test_returns(self, value: object, expected: ReturnsType) -> None:
        assert parse_matcher({"returns": value}) == expected

    def test_combinators_fold_left(self) -> None:
        matcher = parse_matcher(
            {"and": [{"name": "a"}, {"not": {"name": "b"}}, {"or": [{"name": "c"}, {"name": "d"}]}]}
        )
        assert matcher == And(And(Name("a"), Not(Name("b"))), Or(Name("c"), Name("d")))

    def test_combinator_needs_two(self) -> None:
        with pytest.raises(ConfigError, match="at least two matchers"):
            parse_matcher({"and": [{"name": "a"}]})

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigError, match="unknown matcher 'named'"):
            parse_matcher({"named": "x"})

    def test_multiple_keys(self) -> None:
        with pytest.raises(ConfigError, match="exactly one key"):
            parse_matcher({"name": "a", "module": "b"})

    def test_invalid_regex(self) -> None:
        with pytest.raises(ConfigError, match="invalid regex"):
            parse_matcher({"not": {"name": "(unclosed"}})

    def test_unknown_return_pattern(self) -> None:
        with pytest.raises(ConfigError, match="unknown return pattern 'tuple'"):
            parse_matcher({"returns": "tuple"})

    def test_is_async_false_rejected(self) -> None:
        with pytest.raises(ConfigError, match="use 'not' to negate"):
            parse_matcher({"is_async": False})


# ---------------------------------------------------------------------------
# TestParseRules
# ---------------------------------------------------------------------------


class TestParseRules:
    def test_full_rule(self) -> None:
        rules = parse_rules(
            _rule_set(
                {
                    "name": "repos-private",
                    "kind": "struct",
                    "description": "Repositories stay private",
                    "matches": {"implements_trait": "::Repository$"},
                    "checks": [
                        {"must_be_named": "Impl$", "severity": "error"},
                        "must_be_private",
                    ],
                }
            )
        )
        assert rules == [
            Rule(
                name="repos-private",
                entity_kind=EntityKind.STRUCT,
                matches=ImplementsTrait("::Repository$"),
                checks=(
                    Check(MustBeNamed("Impl$"), Severity.ERROR),
                    Check(MustBePrivate(), Severity.WARN),
                ),
                description="Repositories stay private",
            )
        ]

    def test_default_severity_applies(self) -> None:
        rules = parse_rules(_rule_set(_rule(), default_severity="error"))
        assert rules[0].checks[0].severity is Severity.ERROR

    def test_flag_kind_as_mapping(self) -> None:
        rules = parse_rules(
            _rule_set(_rule(checks=[{"must_have_empty_mod_file": True, "severity": "error"}]))
        )
        assert rules[0].checks == (Check(MustHaveEmptyModFile(), Severity.ERROR),)

    def test_argument_kinds(self) -> None:
        rules = parse_rules(
            _rule_set(
                _rule(
                    checks=[
                        {"restrict_imports": {"allowed_only": ["^std::"], "denied": "sqlx"}},
                        {"denied_items": ["static", "const"]},
                    ]
                ),
                _rule(name="f", kind="function", checks=[{"max_length": 30}]),
            )
        )
        assert rules[0].checks[0].kind == RestrictImports(
            allowed_only=("^std::",), denied=("sqlx",)
        )
        assert rules[0].checks[1].kind == DeniedItems(frozenset({"static", "const"}))
        assert rules[1].checks[0].kind == MaxLength(30)

    def test_declaration_order_kept(self) -> None:
        rules = parse_rules(_rule_set(_rule(name="b"), _rule(name="a")))
        assert [r.name for r in rules] == ["b", "a"]

    def test_empty_rules(self) -> None:
        assert parse_rules({"version": 1}) == []

    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({"rules": []}, "missing required 'version'"),
            ({"version": 2, "rules": []}, "unsupported version 2"),
            ("rules", "must be a YAML mapping"),
            (_rule_set(_rule(), default_severity="fatal"), "invalid severity 'fatal'"),
            (_rule_set(_rule(name="dup"), _rule(name="dup")), "duplicate rule name 'dup'"),
            (_rule_set(_rule(kind="enum")), "invalid kind 'enum'"),
            (_rule_set(_rule(name=None)), "missing required 'name'"),
            (_rule_set(_rule(checks=[])), "'checks' must be a non-empty list"),
            (_rule_set(_rule(extra=1)), "unknown keys"),
            (_rule_set({"name": "r", "kind": "module", "checks": ["must_be_empty"]}), "'matches'"),
            (_rule_set(_rule(checks=["must_be_tidy"])), "unknown check 'must_be_tidy'"),
            (_rule_set(_rule(checks=[{"max_length": 3}])), "cannot be applied to module"),
            (
                _rule_set(_rule(kind="function", checks=["must_be_private"])),
                "cannot be applied to function",
            ),
            (_rule_set(_rule(checks=[{"denied_items": ["class"]}])), "unknown item kind 'class'"),
            (_rule_set(_rule(checks=[{"restrict_imports": {}}])), "at least one of"),
            (
                _rule_set(_rule(kind="function", checks=[{"max_length": -1}])),
                "non-negative integer",
            ),
            (_rule_set(_rule(checks=[{"must_be_named": "(bad"}])), "invalid regex"),
            (
                _rule_set(_rule(checks=[{"must_be_empty": True, "severity": "fatal"}])),
                "invalid severity",
            ),
            (_rule_set(_rule(checks=[{"must_be_empty": 3}])), "takes no arguments"),
        ],
    )
    def test_config_errors(self, data: object, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            parse_rules(data)

    def test_config_error_is_value_error(self) -> None:
        assert issubclass(ConfigError, ValueError)


# ---------------------------------------------------------------------------
# TestLoadRules: parsing archguard.yml
# ---------------------------------------------------------------------------


class TestLoadRules:
    def test_load_yaml(self, tmp_path: Path) -> None:
        rules_path = tmp_path / "archguard.yml"
        rules_path.write_text(
            "version: 1\n"
            "rules:\n"
            "  - name: repositories-are-private\n"
            "    kind: struct\n"
            '    description: "Repository implementations stay behind the trait"\n'
            "    matches:\n"
            "      and:\n"
            '        - implements_trait: "::Repository$"\n'
            '        - not: {name: "^Mock"}\n'
            "    checks:\n"
            '      - must_be_named: "Impl$"\n'
            "        severity: error\n"
            "      - must_be_private\n"
        )
        rules = load_rules(rules_path)
        assert len(rules) == 1
        rule = rules[0]
        assert rule.matches == And(ImplementsTrait("::Repository$"), Not(Name("^Mock")))
        assert [c.kind.key for c in rule.checks] == ["must_be_named", "must_be_private"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read rule set"):
            load_rules(tmp_path / "missing.yml")

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        rules_path = tmp_path / "archguard.yml"
        rules_path.write_text("version: 1\nrules: [\n")
        with pytest.raises(ConfigError, match="Cannot parse rule set"):
            load_rules(rules_path)

    def test_not_utf8(self, tmp_path: Path) -> None:
        rules_path = tmp_path / "archguard.yml"
        rules_path.write_bytes(b"\xff\xfeversion: 1\n")
        with pytest.raises(ConfigError, match="Cannot parse rule set"):
            load_rules(rules_path)
