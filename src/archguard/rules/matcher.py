"""Matcher language: boolean combinators over entity predicates."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from archguard.model.entities import Function, ReturnKind, Struct

if TYPE_CHECKING:
    from archguard.model.entities import CodeModel, Entity

# Process-wide: pattern string -> compiled regex.
_REGEX_CACHE: dict[str, re.Pattern[str]] = {}


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile *pattern* once per process.

    Patterns are always regular expressions; a trailing ``*`` repeats the
    preceding character, it is not a glob wildcard.  Raises ``re.error``
    for an invalid pattern.
    """
    compiled = _REGEX_CACHE.get(pattern)
    if compiled is None:
        compiled = re.compile(pattern)
        _REGEX_CACHE[pattern] = compiled
    return compiled


def pattern_matches(pattern: str, subject: str) -> bool:
    """Return True if *pattern* is found anywhere in *subject*."""
    return compile_pattern(pattern).search(subject) is not None


# ---------------------------------------------------------------------------
# Atoms
# ---------------------------------------------------------------------------


class ReturnPattern(enum.Enum):
    """What a ``ReturnsType`` atom expects of a function's return type."""

    RESULT = "result"
    OPTION = "option"
    NAMED = "named"
    REGEX = "regex"
    SELF_VALUE = "self"
    SELF_REF = "self_ref"
    SELF_MUT_REF = "self_mut_ref"
    RESULT_WITH_ERROR_IMPL = "result_with_error_impl"


_DIRECT_RETURN_KINDS: dict[ReturnPattern, ReturnKind] = {
    ReturnPattern.RESULT: ReturnKind.RESULT,
    ReturnPattern.OPTION: ReturnKind.OPTION,
    ReturnPattern.SELF_VALUE: ReturnKind.SELF_VALUE,
    ReturnPattern.SELF_REF: ReturnKind.SELF_REF,
    ReturnPattern.SELF_MUT_REF: ReturnKind.SELF_MUT_REF,
}


@dataclass(frozen=True)
class Name:
    """Simple name matches a regex."""

    pattern: str


@dataclass(frozen=True)
class NameEquals:
    """Simple name equals a string exactly."""

    name: str


@dataclass(frozen=True)
class ModulePath:
    """The entity's own fully-qualified path matches a regex."""

    pattern: str


@dataclass(frozen=True)
class InModule:
    """The owning module's path matches a regex."""

    pattern: str


@dataclass(frozen=True)
class ImplementsTrait:
    """A struct implements a trait whose path matches a regex."""

    pattern: str


@dataclass(frozen=True)
class HasAttribute:
    """A struct carries an attribute matching a regex."""

    pattern: str


@dataclass(frozen=True)
class IsAsync:
    pass


@dataclass(frozen=True)
class ReturnsType:
    """A function's return type fits ``expected``.

    ``value`` holds the type name for ``NAMED`` and the regex for ``REGEX``.
    """

    expected: ReturnPattern
    value: str | None = None


# ---------------------------------------------------------------------------
# Combinators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class And:
    left: Matcher
    right: Matcher


@dataclass(frozen=True)
class Or:
    left: Matcher
    right: Matcher


@dataclass(frozen=True)
class Not:
    inner: Matcher


Matcher = (
    Name
    | NameEquals
    | ModulePath
    | InModule
    | ImplementsTrait
    | HasAttribute
    | IsAsync
    | ReturnsType
    | And
    | Or
    | Not
)


def all_of(*matchers: Matcher) -> Matcher:
    """Fold two or more matchers left-to-right into nested ``And`` nodes."""
    result = matchers[0]
    for matcher in matchers[1:]:
        result = And(result, matcher)
    return result


def any_of(*matchers: Matcher) -> Matcher:
    """Fold two or more matchers left-to-right into nested ``Or`` nodes."""
    result = matchers[0]
    for matcher in matchers[1:]:
        result = Or(result, matcher)
    return result


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _returns_type(atom: ReturnsType, func: Function, model: CodeModel) -> bool:
    returns = func.returns
    direct = _DIRECT_RETURN_KINDS.get(atom.expected)
    if direct is not None:
        return returns.kind is direct
    if atom.expected is ReturnPattern.NAMED:
        return returns.kind is ReturnKind.NAMED and returns.text == atom.value
    if atom.expected is ReturnPattern.REGEX:
        return atom.value is not None and pattern_matches(atom.value, returns.text)
    # RESULT_WITH_ERROR_IMPL
    return (
        returns.kind is ReturnKind.RESULT
        and returns.error is not None
        and model.implements_error(returns.error)
    )


def evaluate(matcher: Matcher, entity: Entity, model: CodeModel) -> bool:
    """Return True if *matcher* selects *entity*.

    Atoms that do not apply to the entity's kind evaluate to False, so
    ``Not`` of such an atom is True.  ``And``/``Or`` short-circuit left to
    right.
    """
    if isinstance(matcher, And):
        return evaluate(matcher.left, entity, model) and evaluate(matcher.right, entity, model)
    if isinstance(matcher, Or):
        return evaluate(matcher.left, entity, model) or evaluate(matcher.right, entity, model)
    if isinstance(matcher, Not):
        return not evaluate(matcher.inner, entity, model)
    if isinstance(matcher, Name):
        return pattern_matches(matcher.pattern, entity.name)
    if isinstance(matcher, NameEquals):
        return entity.name == matcher.name
    if isinstance(matcher, ModulePath):
        return pattern_matches(matcher.pattern, entity.path)
    if isinstance(matcher, InModule):
        owner = entity.owner
        return owner is not None and pattern_matches(matcher.pattern, owner)
    if isinstance(matcher, ImplementsTrait):
        if not isinstance(entity, Struct):
            return False
        return any(pattern_matches(matcher.pattern, t) for t in sorted(entity.traits))
    if isinstance(matcher, HasAttribute):
        if not isinstance(entity, Struct):
            return False
        return any(pattern_matches(matcher.pattern, a) for a in entity.attributes)
    if isinstance(matcher, IsAsync):
        return isinstance(entity, Function) and entity.is_async
    if isinstance(matcher, ReturnsType):
        return isinstance(entity, Function) and _returns_type(matcher, entity, model)
    msg = f"Unknown matcher node: {matcher!r}"
    raise TypeError(msg)
