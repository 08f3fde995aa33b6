"""Code model domain: entity records and the facts-file provider."""

from archguard.model.entities import (
    AGGREGATOR_ITEM_KINDS,
    VALID_ITEM_KINDS,
    ChildItem,
    CodeModel,
    Entity,
    EntityKind,
    Function,
    ImportSpec,
    Module,
    ModelError,
    ReturnKind,
    ReturnType,
    SourceLocation,
    Struct,
    Visibility,
)
from archguard.model.loader import classify_return_type, load_model, parse_model

__all__ = [
    "AGGREGATOR_ITEM_KINDS",
    "VALID_ITEM_KINDS",
    "ChildItem",
    "CodeModel",
    "Entity",
    "EntityKind",
    "Function",
    "ImportSpec",
    "ModelError",
    "Module",
    "ReturnKind",
    "ReturnType",
    "SourceLocation",
    "Struct",
    "Visibility",
    "classify_return_type",
    "load_model",
    "parse_model",
]
