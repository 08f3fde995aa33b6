"""Entity model: modules, functions and structs as an immutable fact base."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_ITEM_KINDS: frozenset[str] = frozenset(
    {
        "struct",
        "enum",
        "union",
        "trait",
        "impl",
        "trait_impl",
        "function",
        "const",
        "static",
        "type_alias",
        "module",
        "use",
        "extern_crate",
        "declarative_macro",
        "proc_macro",
        "proc_macro_attribute",
        "proc_macro_derive",
    }
)

# Items an aggregator file (mod.rs, __init__.py) may hold: sub-module
# declarations and re-exports.
AGGREGATOR_ITEM_KINDS: frozenset[str] = frozenset({"module", "use"})

DEFAULT_ERROR_TRAITS: tuple[str, ...] = ("std::error::Error", "core::error::Error")

# Standard library types known to implement the Error trait without the
# provider having to list them.
WELL_KNOWN_ERROR_TYPES: frozenset[str] = frozenset(
    {
        "std::io::Error",
        "std::fmt::Error",
        "core::fmt::Error",
        "std::num::ParseIntError",
        "std::num::ParseFloatError",
        "std::num::TryFromIntError",
        "std::str::Utf8Error",
        "std::str::ParseBoolError",
        "std::string::FromUtf8Error",
        "std::string::FromUtf16Error",
        "std::char::ParseCharError",
        "std::env::VarError",
        "std::time::SystemTimeError",
        "std::net::AddrParseError",
        "std::array::TryFromSliceError",
        "std::sync::mpsc::RecvError",
    }
)

PRIMITIVE_TYPES: frozenset[str] = frozenset(
    {
        "()",
        "bool",
        "char",
        "str",
        "&str",
        "String",
        "i8",
        "i16",
        "i32",
        "i64",
        "i128",
        "isize",
        "u8",
        "u16",
        "u32",
        "u64",
        "u128",
        "usize",
        "f32",
        "f64",
    }
)

_BOXED_DYN_RE = re.compile(r"^(?:std::boxed::)?Box<\s*dyn\s+([\w:]+)[^>]*>$")


def _is_well_known_error(type_name: str) -> bool:
    """Return True if *type_name* names a standard error type.

    Partially qualified spellings (``io::Error``, ``ParseIntError``) count
    when they are a path suffix of a well-known type.  A bare name shared
    by several well-known types (``Error``) is ambiguous and may be a local
    type, so it does not count.
    """
    if type_name in WELL_KNOWN_ERROR_TYPES:
        return True
    suffix = "::" + type_name
    matches = [t for t in WELL_KNOWN_ERROR_TYPES if t.endswith(suffix)]
    if "::" not in type_name:
        return len(matches) == 1
    return bool(matches)


class ModelError(ValueError):
    """Raised when a code model is structurally invalid."""


class Visibility(enum.Enum):
    """Visibility of an entity outside its owning module."""

    PUBLIC = "public"
    PRIVATE = "private"


class EntityKind(enum.Enum):
    """The three kinds of entity rules can target."""

    MODULE = "module"
    FUNCTION = "function"
    STRUCT = "struct"


class ReturnKind(enum.Enum):
    """Classification of a function's return type."""

    NO_RETURN = "no_return"
    RESULT = "result"
    OPTION = "option"
    NAMED = "named"
    SELF_VALUE = "self_value"
    SELF_REF = "self_ref"
    SELF_MUT_REF = "self_mut_ref"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def path_separator(path: str) -> str:
    """Return ``::`` for Rust-style paths and ``.`` for dotted ones."""
    return "::" if "::" in path else "."


def split_path(path: str) -> list[str]:
    """Split a fully-qualified path into its segments."""
    return path.split(path_separator(path))


def simple_name(path: str) -> str:
    """Return the last segment of a path."""
    return split_path(path)[-1]


def parent_path(path: str) -> str | None:
    """Return the path of the owning module, or ``None`` for a root path."""
    sep = path_separator(path)
    if sep not in path:
        return None
    return path.rsplit(sep, 1)[0]


def canonical_type_name(type_name: str) -> str:
    """Strip generic parameters: ``Vec<String>`` becomes ``Vec``."""
    return type_name.split("<", 1)[0].strip()


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class SourceLocation:
    """Where an entity or item lives in source."""

    file: str
    line: int
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class ChildItem:
    """An immediate child item of a module, tagged with its item kind."""

    name: str
    kind: str
    location: SourceLocation | None = None


@dataclass(frozen=True)
class ImportSpec:
    """A single import (``use``) declared by a module."""

    path: str
    is_wildcard: bool = False
    location: SourceLocation | None = None


@dataclass(frozen=True)
class ReturnType:
    """Classified return type of a function.

    ``text`` is the rendered type as the provider saw it; ``ok``/``error``
    are set for results and ``inner`` for options.
    """

    kind: ReturnKind
    text: str = ""
    ok: str | None = None
    error: str | None = None
    inner: str | None = None


@dataclass(frozen=True)
class Module:
    """A module (namespace) and its immediate contents."""

    kind: ClassVar[EntityKind] = EntityKind.MODULE

    path: str
    visibility: Visibility
    location: SourceLocation
    items: tuple[ChildItem, ...] = ()
    imports: tuple[ImportSpec, ...] = ()
    is_aggregator_file: bool = False

    @property
    def name(self) -> str:
        return simple_name(self.path)

    @property
    def owner(self) -> str | None:
        return parent_path(self.path)


@dataclass(frozen=True)
class Function:
    """A free function or method."""

    kind: ClassVar[EntityKind] = EntityKind.FUNCTION

    path: str
    visibility: Visibility
    location: SourceLocation
    body_lines: int
    returns: ReturnType
    is_async: bool = False

    @property
    def name(self) -> str:
        return simple_name(self.path)

    @property
    def owner(self) -> str | None:
        return parent_path(self.path)


@dataclass(frozen=True)
class Struct:
    """A struct (record type) and the traits it implements."""

    kind: ClassVar[EntityKind] = EntityKind.STRUCT

    path: str
    visibility: Visibility
    location: SourceLocation
    traits: frozenset[str] = field(default_factory=frozenset)
    attributes: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return simple_name(self.path)

    @property
    def owner(self) -> str | None:
        return parent_path(self.path)


Entity = Module | Function | Struct


# ---------------------------------------------------------------------------
# Code model
# ---------------------------------------------------------------------------


class CodeModel:
    """Read-only snapshot of every entity in one compilation unit.

    Entities are stored sorted by path so that evaluation order is stable.
    The Error-capability query is memoized per model so that every caller
    observes the same answer for the same type.
    """

    def __init__(
        self,
        modules: Iterable[Module] = (),
        functions: Iterable[Function] = (),
        structs: Iterable[Struct] = (),
        *,
        trait_impls: dict[str, Iterable[str]] | None = None,
        error_traits: Iterable[str] = DEFAULT_ERROR_TRAITS,
        root: str | None = None,
    ) -> None:
        self._modules: tuple[Module, ...] = tuple(sorted(modules, key=lambda m: m.path))
        self._functions: tuple[Function, ...] = tuple(sorted(functions, key=lambda f: f.path))
        self._structs: tuple[Struct, ...] = tuple(sorted(structs, key=lambda s: s.path))
        self._trait_impls: dict[str, tuple[str, ...]] = {
            trait: tuple(sorted(set(impls))) for trait, impls in (trait_impls or {}).items()
        }
        self._error_traits: tuple[str, ...] = tuple(error_traits)
        self._error_cache: dict[str, bool] = {}
        self.root = root

        for entities in (self._modules, self._functions, self._structs):
            seen: set[str] = set()
            for entity in entities:
                if entity.path in seen:
                    msg = f"Duplicate {entity.kind.value} path '{entity.path}'"
                    raise ModelError(msg)
                seen.add(entity.path)

    @property
    def modules(self) -> tuple[Module, ...]:
        return self._modules

    @property
    def functions(self) -> tuple[Function, ...]:
        return self._functions

    @property
    def structs(self) -> tuple[Struct, ...]:
        return self._structs

    @property
    def error_traits(self) -> tuple[str, ...]:
        return self._error_traits

    def entities_of(self, kind: EntityKind) -> tuple[Entity, ...]:
        """Return all entities of *kind*, sorted by path."""
        if kind is EntityKind.MODULE:
            return self._modules
        if kind is EntityKind.FUNCTION:
            return self._functions
        return self._structs

    def traits(self) -> dict[str, tuple[str, ...]]:
        """Return every known trait path mapped to its implementors.

        Traits named only by struct records are included alongside the
        provider's explicit implementation table.
        """
        table: dict[str, set[str]] = {t: set(impls) for t, impls in self._trait_impls.items()}
        for struct in self._structs:
            for trait in struct.traits:
                table.setdefault(trait, set()).add(struct.path)
        return {trait: tuple(sorted(table[trait])) for trait in sorted(table)}

    def root_modules(self) -> list[str]:
        """Return paths of modules with no owning module in the model."""
        if self.root is not None:
            return [self.root]
        known = {m.path for m in self._modules}
        return [m.path for m in self._modules if m.owner is None or m.owner not in known]

    def implements_error(self, type_name: str) -> bool:
        """Return True if *type_name* implements one of the error traits.

        Unknown types are treated as not implementing the trait.
        """
        key = type_name.strip()
        cached = self._error_cache.get(key)
        if cached is None:
            cached = self._check_error_capability(key)
            self._error_cache[key] = cached
        return cached

    def _check_error_capability(self, type_name: str) -> bool:
        if type_name in PRIMITIVE_TYPES:
            return False

        canonical = canonical_type_name(type_name)
        if _is_well_known_error(canonical):
            return True

        # Box<dyn Error + Send + Sync> and friends.
        boxed = _BOXED_DYN_RE.match(type_name)
        if boxed is not None:
            trait = boxed.group(1).strip()
            return any(
                trait == t or simple_name(t) == simple_name(trait) for t in self._error_traits
            )

        implementors: set[str] = set()
        for trait in self._error_traits:
            implementors.update(self._trait_impls.get(trait, ()))
        for struct in self._structs:
            if any(trait in struct.traits for trait in self._error_traits):
                implementors.add(struct.path)

        if canonical in implementors:
            return True

        # An unqualified type name resolves against the implementors' last segment.
        if path_separator(canonical) not in canonical:
            if any(simple_name(impl) == canonical for impl in implementors):
                return True

        logger.debug("No error trait implementation found for '%s'", type_name)
        return False
