"""Code model provider: read a JSON/YAML facts snapshot into a CodeModel."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

import yaml

from archguard.model.entities import (
    DEFAULT_ERROR_TRAITS,
    VALID_ITEM_KINDS,
    ChildItem,
    CodeModel,
    Function,
    ImportSpec,
    Module,
    ModelError,
    ReturnKind,
    ReturnType,
    SourceLocation,
    Struct,
    Visibility,
    canonical_type_name,
    simple_name,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_REF_RE = re.compile(r"^&\s*(?:'\w+\s+)?(mut\s+)?(.+)$")

_OPEN = "<([{"
_CLOSE = ">)]}"


# ---------------------------------------------------------------------------
# Return type classification
# ---------------------------------------------------------------------------


def _is_balanced(text: str) -> bool:
    stack: list[str] = []
    for ch in text:
        if ch in _OPEN:
            stack.append(ch)
        elif ch in _CLOSE:
            if not stack or _OPEN.index(stack.pop()) != _CLOSE.index(ch):
                return False
    return not stack


def split_generic_args(text: str) -> list[str]:
    """Split the top-level generic arguments of ``Name<A, B<C, D>>``.

    Returns ``["A", "B<C, D>"]``; an empty list when there are no generics.
    """
    start = text.find("<")
    if start == -1 or not text.endswith(">"):
        return []
    inner = text[start + 1 : -1]
    args: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in inner:
        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth -= 1
        if ch == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        args.append(tail)
    return args


def classify_return_type(text: str | None, self_type: str | None = None) -> ReturnType:
    """Classify a rendered return type.

    ``self_type`` is the type of the enclosing impl block for methods, so
    that returning it by value (or by reference) counts as returning
    ``Self``.
    """
    rendered = (text or "").strip()
    if rendered in ("", "()"):
        return ReturnType(ReturnKind.NO_RETURN, "()")
    if not _is_balanced(rendered):
        logger.debug("Cannot classify return type '%s'", rendered)
        return ReturnType(ReturnKind.UNKNOWN, rendered)

    self_names = {"Self"}
    if self_type:
        self_names.add(self_type.strip())

    if rendered in self_names:
        return ReturnType(ReturnKind.SELF_VALUE, rendered)

    ref = _REF_RE.match(rendered)
    if ref is not None:
        target = ref.group(2).strip()
        if target in self_names:
            kind = ReturnKind.SELF_MUT_REF if ref.group(1) else ReturnKind.SELF_REF
            return ReturnType(kind, rendered)
        return ReturnType(ReturnKind.NAMED, rendered)

    base = canonical_type_name(rendered)
    last = simple_name(base)
    args = split_generic_args(rendered)

    if last == "Result":
        if len(args) == 2:
            return ReturnType(ReturnKind.RESULT, rendered, ok=args[0], error=args[1])
        # Module-level aliases with a fixed error type.
        if base in ("io::Result", "std::io::Result") and len(args) == 1:
            return ReturnType(ReturnKind.RESULT, rendered, ok=args[0], error="std::io::Error")
        if base in ("fmt::Result", "std::fmt::Result", "core::fmt::Result") and not args:
            return ReturnType(ReturnKind.RESULT, rendered, ok="()", error="std::fmt::Error")
    if last == "Option" and len(args) == 1:
        return ReturnType(ReturnKind.OPTION, rendered, inner=args[0])

    return ReturnType(ReturnKind.NAMED, rendered)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _require_str(data: dict[str, Any], key: str, context: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        msg = f"{context}: missing required '{key}' field"
        raise ModelError(msg)
    return value.strip()


def _parse_visibility(data: dict[str, Any], context: str) -> Visibility:
    raw = str(data.get("visibility", "private")).lower()
    try:
        return Visibility(raw)
    except ValueError:
        msg = f"{context}: invalid visibility '{raw}', must be 'public' or 'private'"
        raise ModelError(msg) from None


def _parse_location(
    data: dict[str, Any], context: str, *, default_file: str | None = None
) -> SourceLocation | None:
    file = data.get("file", default_file)
    line = data.get("line")
    if file is None or line is None:
        return None
    try:
        return SourceLocation(str(file), int(line), int(data.get("column", 0)))
    except (TypeError, ValueError):
        msg = f"{context}: line and column must be integers"
        raise ModelError(msg) from None


def _entity_location(data: dict[str, Any], context: str) -> SourceLocation:
    location = _parse_location(data, context)
    if location is None:
        msg = f"{context}: 'file' and 'line' are required"
        raise ModelError(msg)
    return location


def _parse_module(data: dict[str, Any], idx: int) -> Module:
    context = f"modules[{idx}]"
    path = _require_str(data, "path", context)
    context = f"module '{path}'"
    location = _entity_location(data, context)

    items: list[ChildItem] = []
    for item_idx, item_data in enumerate(data.get("items") or []):
        item_context = f"{context} items[{item_idx}]"
        if not isinstance(item_data, dict):
            msg = f"{item_context}: must be a mapping"
            raise ModelError(msg)
        kind = _require_str(item_data, "kind", item_context)
        if kind not in VALID_ITEM_KINDS:
            msg = (
                f"{item_context}: invalid item kind '{kind}', "
                f"must be one of {sorted(VALID_ITEM_KINDS)}"
            )
            raise ModelError(msg)
        items.append(
            ChildItem(
                name=str(item_data.get("name", "")),
                kind=kind,
                location=_parse_location(item_data, item_context, default_file=location.file),
            )
        )

    imports: list[ImportSpec] = []
    for imp_idx, imp_data in enumerate(data.get("imports") or []):
        imp_context = f"{context} imports[{imp_idx}]"
        if isinstance(imp_data, str):
            imp_data = {"path": imp_data}
        if not isinstance(imp_data, dict):
            msg = f"{imp_context}: must be a string or a mapping"
            raise ModelError(msg)
        imp_path = _require_str(imp_data, "path", imp_context)
        wildcard = bool(imp_data.get("wildcard", imp_path.endswith("*")))
        imports.append(
            ImportSpec(
                path=imp_path,
                is_wildcard=wildcard,
                location=_parse_location(imp_data, imp_context, default_file=location.file),
            )
        )

    return Module(
        path=path,
        visibility=_parse_visibility(data, context),
        location=location,
        items=tuple(items),
        imports=tuple(imports),
        is_aggregator_file=bool(data.get("aggregator", False)),
    )


def _parse_body_lines(data: dict[str, Any], context: str) -> int:
    if "body_lines" in data:
        try:
            count = int(data["body_lines"])
        except (TypeError, ValueError):
            msg = f"{context}: body_lines must be an integer"
            raise ModelError(msg) from None
    elif "body" in data:
        span = data["body"]
        if not isinstance(span, list) or len(span) != 2:
            msg = f"{context}: body must be a [start_line, end_line] pair"
            raise ModelError(msg)
        try:
            count = int(span[1]) - int(span[0]) + 1
        except (TypeError, ValueError):
            msg = f"{context}: body lines must be integers"
            raise ModelError(msg) from None
    else:
        count = 0
    if count < 0:
        msg = f"{context}: body line count must be non-negative"
        raise ModelError(msg)
    return count


def _parse_function(data: dict[str, Any], idx: int) -> Function:
    context = f"functions[{idx}]"
    path = _require_str(data, "path", context)
    context = f"function '{path}'"
    self_type = data.get("self_type")
    return Function(
        path=path,
        visibility=_parse_visibility(data, context),
        location=_entity_location(data, context),
        body_lines=_parse_body_lines(data, context),
        returns=classify_return_type(
            data.get("returns"), str(self_type) if self_type is not None else None
        ),
        is_async=bool(data.get("async", False)),
    )


def _parse_struct(data: dict[str, Any], idx: int) -> Struct:
    context = f"structs[{idx}]"
    path = _require_str(data, "path", context)
    context = f"struct '{path}'"
    traits_raw = data.get("traits") or []
    attributes_raw = data.get("attributes") or []
    if not isinstance(traits_raw, list) or not isinstance(attributes_raw, list):
        msg = f"{context}: 'traits' and 'attributes' must be lists"
        raise ModelError(msg)
    return Struct(
        path=path,
        visibility=_parse_visibility(data, context),
        location=_entity_location(data, context),
        traits=frozenset(str(t) for t in traits_raw),
        attributes=tuple(str(a) for a in attributes_raw),
    )


def _entries(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    raw = data.get(key) or []
    if not isinstance(raw, list):
        msg = f"code model: '{key}' must be a list"
        raise ModelError(msg)
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            msg = f"{key}[{idx}]: must be a mapping"
            raise ModelError(msg)
    return raw


def parse_model(data: object) -> CodeModel:
    """Build a CodeModel from an already-decoded facts document."""
    if not isinstance(data, dict):
        msg = "code model must be a mapping"
        raise ModelError(msg)

    modules = [_parse_module(m, i) for i, m in enumerate(_entries(data, "modules"))]
    functions = [_parse_function(f, i) for i, f in enumerate(_entries(data, "functions"))]
    structs = [_parse_struct(s, i) for i, s in enumerate(_entries(data, "structs"))]

    traits_raw = data.get("traits") or {}
    if not isinstance(traits_raw, dict):
        msg = "code model: 'traits' must map trait paths to implementor lists"
        raise ModelError(msg)
    trait_impls: dict[str, list[str]] = {}
    for trait, impls in traits_raw.items():
        if not isinstance(impls, list):
            msg = f"code model: implementors of '{trait}' must be a list"
            raise ModelError(msg)
        trait_impls[str(trait)] = [str(i) for i in impls]

    error_traits_raw = data.get("error_traits")
    error_traits: tuple[str, ...] = DEFAULT_ERROR_TRAITS
    if error_traits_raw is not None:
        if not isinstance(error_traits_raw, list):
            msg = "code model: 'error_traits' must be a list"
            raise ModelError(msg)
        error_traits = tuple(str(t) for t in error_traits_raw)

    root = data.get("root")
    return CodeModel(
        modules,
        functions,
        structs,
        trait_impls=trait_impls,
        error_traits=error_traits,
        root=str(root) if root is not None else None,
    )


def load_model(model_path: Path, *, error_traits: tuple[str, ...] | None = None) -> CodeModel:
    """Read a code model from *model_path* (JSON for ``.json``, YAML otherwise).

    *error_traits*, when given, replaces the error traits named by the file.

    Raises ``ModelError`` when the file cannot be read or is malformed.
    """
    try:
        with model_path.open("r", encoding="utf-8") as fh:
            if model_path.suffix == ".json":
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except OSError as exc:
        msg = f"Cannot read code model {model_path}: {exc}"
        raise ModelError(msg) from exc
    except (UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as exc:
        msg = f"Cannot parse code model {model_path}: {exc}"
        raise ModelError(msg) from exc

    if error_traits is not None and isinstance(data, dict):
        data = {**data, "error_traits": list(error_traits)}

    model = parse_model(data)
    logger.info(
        "Loaded code model %s: %d modules, %d functions, %d structs",
        model_path,
        len(model.modules),
        len(model.functions),
        len(model.structs),
    )
    return model
