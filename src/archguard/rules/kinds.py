"""Rule set types: severities, rule kinds, checks and rules."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from archguard.model.entities import EntityKind

if TYPE_CHECKING:
    from archguard.rules.matcher import Matcher

_ALL_KINDS: frozenset[EntityKind] = frozenset(EntityKind)
_NAMED_KINDS: frozenset[EntityKind] = _ALL_KINDS
_VISIBLE_KINDS: frozenset[EntityKind] = frozenset({EntityKind.MODULE, EntityKind.STRUCT})
_MODULE_ONLY: frozenset[EntityKind] = frozenset({EntityKind.MODULE})
_FUNCTION_ONLY: frozenset[EntityKind] = frozenset({EntityKind.FUNCTION})


class ConfigError(ValueError):
    """Raised when a rule set is malformed or inconsistent."""


class Severity(enum.Enum):
    """How a violation affects the overall outcome."""

    WARN = "warn"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Rule kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MustBeNamed:
    """The simple name must match ``pattern``."""

    key: ClassVar[str] = "must_be_named"
    applies_to: ClassVar[frozenset[EntityKind]] = _NAMED_KINDS

    pattern: str


@dataclass(frozen=True)
class MustNotBeNamed:
    """The simple name must not match ``pattern``."""

    key: ClassVar[str] = "must_not_be_named"
    applies_to: ClassVar[frozenset[EntityKind]] = _NAMED_KINDS

    pattern: str


@dataclass(frozen=True)
class MustBePrivate:
    key: ClassVar[str] = "must_be_private"
    applies_to: ClassVar[frozenset[EntityKind]] = _VISIBLE_KINDS


@dataclass(frozen=True)
class MustBePublic:
    key: ClassVar[str] = "must_be_public"
    applies_to: ClassVar[frozenset[EntityKind]] = _VISIBLE_KINDS


@dataclass(frozen=True)
class MustNotBeEmpty:
    key: ClassVar[str] = "must_not_be_empty"
    applies_to: ClassVar[frozenset[EntityKind]] = _MODULE_ONLY


@dataclass(frozen=True)
class MustBeEmpty:
    """Every child item of the module is a violation."""

    key: ClassVar[str] = "must_be_empty"
    applies_to: ClassVar[frozenset[EntityKind]] = _MODULE_ONLY


@dataclass(frozen=True)
class MustHaveEmptyModFile:
    """Aggregator files may only declare sub-modules and re-exports."""

    key: ClassVar[str] = "must_have_empty_mod_file"
    applies_to: ClassVar[frozenset[EntityKind]] = _MODULE_ONLY


@dataclass(frozen=True)
class RestrictImports:
    """Restrict imports to an allow-list, a deny-list, or both.

    The two lists are checked independently; at least one must be set.
    """

    key: ClassVar[str] = "restrict_imports"
    applies_to: ClassVar[frozenset[EntityKind]] = _MODULE_ONLY

    allowed_only: tuple[str, ...] | None = None
    denied: tuple[str, ...] | None = None


@dataclass(frozen=True)
class NoWildcardImports:
    key: ClassVar[str] = "no_wildcard_imports"
    applies_to: ClassVar[frozenset[EntityKind]] = _MODULE_ONLY


@dataclass(frozen=True)
class DeniedItems:
    """Child items whose kind is listed in ``items`` are forbidden."""

    key: ClassVar[str] = "denied_items"
    applies_to: ClassVar[frozenset[EntityKind]] = _MODULE_ONLY

    items: frozenset[str]


@dataclass(frozen=True)
class MaxLength:
    """Function bodies may not exceed ``limit`` lines."""

    key: ClassVar[str] = "max_length"
    applies_to: ClassVar[frozenset[EntityKind]] = _FUNCTION_ONLY

    limit: int


@dataclass(frozen=True)
class ResultErrorMustImplementError:
    key: ClassVar[str] = "result_error_must_implement_error"
    applies_to: ClassVar[frozenset[EntityKind]] = _FUNCTION_ONLY


@dataclass(frozen=True)
class MustNotExist:
    """Every matched entity is a violation."""

    key: ClassVar[str] = "must_not_exist"
    applies_to: ClassVar[frozenset[EntityKind]] = _ALL_KINDS


RuleKind = (
    MustBeNamed
    | MustNotBeNamed
    | MustBePrivate
    | MustBePublic
    | MustNotBeEmpty
    | MustBeEmpty
    | MustHaveEmptyModFile
    | RestrictImports
    | NoWildcardImports
    | DeniedItems
    | MaxLength
    | ResultErrorMustImplementError
    | MustNotExist
)

RULE_KINDS: tuple[type[RuleKind], ...] = (
    MustBeNamed,
    MustNotBeNamed,
    MustBePrivate,
    MustBePublic,
    MustNotBeEmpty,
    MustBeEmpty,
    MustHaveEmptyModFile,
    RestrictImports,
    NoWildcardImports,
    DeniedItems,
    MaxLength,
    ResultErrorMustImplementError,
    MustNotExist,
)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Check:
    """A rule kind paired with the severity of its violations."""

    kind: RuleKind
    severity: Severity = Severity.WARN


@dataclass(frozen=True)
class Rule:
    """A named binding of a matcher to one or more checks.

    Construction fails with ``ConfigError`` when a check's rule kind does
    not apply to ``entity_kind``.
    """

    name: str
    entity_kind: EntityKind
    matches: Matcher
    checks: tuple[Check, ...]
    description: str = ""

    def __post_init__(self) -> None:
        if not self.checks:
            msg = f"Rule '{self.name}': at least one check is required"
            raise ConfigError(msg)
        for check in self.checks:
            if self.entity_kind not in check.kind.applies_to:
                allowed = sorted(k.value for k in check.kind.applies_to)
                msg = (
                    f"Rule '{self.name}': '{check.kind.key}' cannot be applied to "
                    f"{self.entity_kind.value} rules (valid for: {', '.join(allowed)})"
                )
                raise ConfigError(msg)
            kind = check.kind
            if (
                isinstance(kind, RestrictImports)
                and kind.allowed_only is None
                and kind.denied is None
            ):
                msg = f"Rule '{self.name}': restrict_imports needs 'allowed_only' or 'denied'"
                raise ConfigError(msg)
