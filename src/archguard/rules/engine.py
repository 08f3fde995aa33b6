"""Rule evaluator: apply each rule's checks to the entities it matches."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from archguard.model.entities import (
    AGGREGATOR_ITEM_KINDS,
    Function,
    Module,
    ReturnKind,
    Visibility,
)
from archguard.rules.kinds import (
    DeniedItems,
    MaxLength,
    MustBeEmpty,
    MustBeNamed,
    MustBePrivate,
    MustBePublic,
    MustHaveEmptyModFile,
    MustNotBeEmpty,
    MustNotBeNamed,
    MustNotExist,
    NoWildcardImports,
    RestrictImports,
    ResultErrorMustImplementError,
)
from archguard.rules.matcher import evaluate, pattern_matches

if TYPE_CHECKING:
    from archguard.model.entities import CodeModel, Entity, SourceLocation
    from archguard.rules.kinds import Check, Rule, RuleKind, Severity

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """A single rule violation."""

    rule_name: str
    entity_path: str
    location: SourceLocation
    severity: Severity
    message: str
    check: str  # key of the rule kind that produced it, e.g. "max_length"


# A finding is (message, location override) before it is bound to a rule.
_Finding = tuple[str, "SourceLocation | None"]


# ---------------------------------------------------------------------------
# Per-kind checks
# ---------------------------------------------------------------------------


def _check_naming(kind: MustBeNamed | MustNotBeNamed, entity: Entity) -> list[_Finding]:
    matched = pattern_matches(kind.pattern, entity.name)
    if isinstance(kind, MustBeNamed) and not matched:
        return [(f"Name '{entity.name}' must match pattern '{kind.pattern}'", None)]
    if isinstance(kind, MustNotBeNamed) and matched:
        return [(f"Name '{entity.name}' must not match pattern '{kind.pattern}'", None)]
    return []


def _check_visibility(kind: MustBePrivate | MustBePublic, entity: Entity) -> list[_Finding]:
    if isinstance(kind, MustBePrivate) and entity.visibility is Visibility.PUBLIC:
        return [(f"{entity.kind.value.capitalize()} '{entity.name}' must be private", None)]
    if isinstance(kind, MustBePublic) and entity.visibility is Visibility.PRIVATE:
        return [(f"{entity.kind.value.capitalize()} '{entity.name}' must be public", None)]
    return []


def _check_module_items(kind: RuleKind, module: Module) -> list[_Finding]:
    if isinstance(kind, MustNotBeEmpty):
        if not module.items:
            return [(f"Module '{module.path}' must not be empty", None)]
        return []

    if isinstance(kind, MustBeEmpty):
        return [
            (f"Module must be empty but contains {item.kind} '{item.name}'", item.location)
            for item in module.items
        ]

    if isinstance(kind, MustHaveEmptyModFile):
        if not module.is_aggregator_file:
            return []
        return [
            (
                f"Aggregator file for module '{module.path}' should only contain "
                f"module declarations and re-exports, found {item.kind} '{item.name}'",
                item.location,
            )
            for item in module.items
            if item.kind not in AGGREGATOR_ITEM_KINDS
        ]

    if isinstance(kind, DeniedItems):
        return [
            (f"{item.kind} '{item.name}' is not allowed in this module", item.location)
            for item in module.items
            if item.kind in kind.items
        ]
    return []


def _check_imports(kind: RestrictImports | NoWildcardImports, module: Module) -> list[_Finding]:
    findings: list[_Finding] = []
    for imp in module.imports:
        if isinstance(kind, NoWildcardImports):
            if imp.is_wildcard:
                findings.append((f"Wildcard import '{imp.path}' is not allowed", imp.location))
            continue

        if kind.allowed_only is not None and not any(
            pattern_matches(p, imp.path) for p in kind.allowed_only
        ):
            findings.append(
                (
                    f"Import '{imp.path}' is not in the allowed list "
                    f"[{', '.join(kind.allowed_only)}]",
                    imp.location,
                )
            )
        if kind.denied is not None:
            denied_by = [p for p in kind.denied if pattern_matches(p, imp.path)]
            if denied_by:
                findings.append(
                    (f"Import '{imp.path}' is denied by pattern '{denied_by[0]}'", imp.location)
                )
    return findings


def _check_function(
    kind: MaxLength | ResultErrorMustImplementError, func: Function, model: CodeModel
) -> list[_Finding]:
    if isinstance(kind, MaxLength):
        if func.body_lines > kind.limit:
            return [
                (
                    f"Function exceeds maximum length of {kind.limit} lines "
                    f"with {func.body_lines} lines",
                    None,
                )
            ]
        return []

    returns = func.returns
    if returns.kind is not ReturnKind.RESULT or returns.error is None:
        return []
    if model.implements_error(returns.error):
        return []
    return [
        (
            f"Error type '{returns.error}' in Result does not implement the Error trait",
            None,
        )
    ]


def apply_check(kind: RuleKind, entity: Entity, model: CodeModel) -> list[_Finding]:
    """Apply one rule kind to an entity already selected by a matcher."""
    if isinstance(kind, MustNotExist):
        return [(f"{entity.kind.value.capitalize()} '{entity.name}' must not exist", None)]
    if isinstance(kind, (MustBeNamed, MustNotBeNamed)):
        return _check_naming(kind, entity)
    if isinstance(kind, (MustBePrivate, MustBePublic)):
        return _check_visibility(kind, entity)
    if isinstance(kind, (MustNotBeEmpty, MustBeEmpty, MustHaveEmptyModFile, DeniedItems)):
        return _check_module_items(kind, entity) if isinstance(entity, Module) else []
    if isinstance(kind, (RestrictImports, NoWildcardImports)):
        return _check_imports(kind, entity) if isinstance(entity, Module) else []
    if isinstance(kind, (MaxLength, ResultErrorMustImplementError)):
        return _check_function(kind, entity, model) if isinstance(entity, Function) else []
    msg = f"Unknown rule kind: {kind!r}"
    raise TypeError(msg)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _violations_for(rule: Rule, check: Check, entity: Entity, model: CodeModel) -> list[Violation]:
    return [
        Violation(
            rule_name=rule.name,
            entity_path=entity.path,
            location=location or entity.location,
            severity=check.severity,
            message=message,
            check=check.kind.key,
        )
        for message, location in apply_check(check.kind, entity, model)
    ]


def matching_entities(rule: Rule, model: CodeModel) -> list[Entity]:
    """Return the entities of the rule's kind that its matcher selects, by path."""
    return [
        entity
        for entity in model.entities_of(rule.entity_kind)
        if evaluate(rule.matches, entity, model)
    ]


def evaluate_rules(rules: list[Rule], model: CodeModel) -> list[Violation]:
    """Evaluate every rule against the model.

    Rules run in declaration order over entities in ascending path order;
    every check of a matching rule is applied, and no rule suppresses
    another.  The result is unsorted; see ``archguard.report.aggregate``.
    """
    violations: list[Violation] = []
    for rule in rules:
        matched = matching_entities(rule, model)
        logger.debug("Rule '%s' matched %d %s(s)", rule.name, len(matched), rule.entity_kind.value)
        for entity in matched:
            for check in rule.checks:
                violations.extend(_violations_for(rule, check, entity, model))
    return violations


def rules_matching(rules: list[Rule], entity: Entity, model: CodeModel) -> list[str]:
    """Return names of the rules (for the entity's kind) whose matcher selects *entity*."""
    return [
        rule.name
        for rule in rules
        if rule.entity_kind is entity.kind and evaluate(rule.matches, entity, model)
    ]
