"""Shared test fixtures for Archguard."""

from __future__ import annotations

import copy
import json
from typing import TYPE_CHECKING, Any

import pytest

from archguard.model.loader import parse_model

if TYPE_CHECKING:
    from pathlib import Path

    from archguard.model.entities import CodeModel


SAMPLE_MODEL: dict[str, Any] = {
    "traits": {
        "std::error::Error": ["app::errors::AppError"],
        "app::Repository": ["app::db::PgRepo", "app::db::MockRepo"],
    },
    "modules": [
        {
            "path": "app",
            "visibility": "public",
            "file": "src/lib.rs",
            "line": 1,
            "aggregator": True,
            "items": [
                {"name": "api", "kind": "module", "line": 1},
                {"name": "db", "kind": "module", "line": 2},
                {"name": "errors", "kind": "module", "line": 3},
                {"name": "empty", "kind": "module", "line": 4},
            ],
        },
        {
            "path": "app::api",
            "visibility": "public",
            "file": "src/api/mod.rs",
            "line": 1,
            "aggregator": True,
            "items": [
                {"name": "handlers", "kind": "module", "line": 3},
                {"name": "helper", "kind": "function", "line": 5},
            ],
            "imports": [
                {"path": "std::io", "line": 1},
                {"path": "sqlx::Pool", "line": 2},
            ],
        },
        {
            "path": "app::api::handlers",
            "visibility": "public",
            "file": "src/api/handlers.rs",
            "line": 1,
            "items": [
                {"name": "handle", "kind": "function", "line": 10},
                {"name": "parse", "kind": "function", "line": 30},
            ],
            "imports": [{"path": "app::db::*", "line": 2}],
        },
        {
            "path": "app::db",
            "visibility": "private",
            "file": "src/db.rs",
            "line": 1,
            "items": [
                {"name": "PgRepo", "kind": "struct", "line": 4},
                {"name": "MockRepo", "kind": "struct", "line": 20},
            ],
            "imports": [{"path": "sqlx::Pool", "line": 1}],
        },
        {
            "path": "app::errors",
            "visibility": "public",
            "file": "src/errors.rs",
            "line": 1,
            "items": [
                {"name": "AppError", "kind": "struct", "line": 3},
                {"name": "Display for AppError", "kind": "trait_impl", "line": 8},
            ],
        },
        {
            "path": "app::empty",
            "visibility": "private",
            "file": "src/empty.rs",
            "line": 1,
        },
    ],
    "functions": [
        {
            "path": "app::api::handlers::handle",
            "visibility": "public",
            "file": "src/api/handlers.rs",
            "line": 10,
            "body_lines": 8,
            "returns": "Result<(), AppError>",
        },
        {
            "path": "app::api::handlers::parse",
            "visibility": "private",
            "file": "src/api/handlers.rs",
            "line": 30,
            "body": [30, 33],
            "returns": "Result<u32, i32>",
        },
        {
            "path": "app::db::PgRepo::new",
            "visibility": "public",
            "file": "src/db.rs",
            "line": 6,
            "body_lines": 3,
            "returns": "Self",
            "self_type": "PgRepo",
        },
        {
            "path": "app::db::PgRepo::find",
            "visibility": "public",
            "file": "src/db.rs",
            "line": 12,
            "body_lines": 5,
            "returns": "Option<String>",
            "async": True,
        },
    ],
    "structs": [
        {
            "path": "app::db::PgRepo",
            "visibility": "public",
            "file": "src/db.rs",
            "line": 4,
            "traits": ["app::Repository"],
            "attributes": ["derive(Debug)"],
        },
        {
            "path": "app::db::MockRepo",
            "visibility": "private",
            "file": "src/db.rs",
            "line": 20,
            "traits": ["app::Repository"],
        },
        {
            "path": "app::errors::AppError",
            "visibility": "public",
            "file": "src/errors.rs",
            "line": 3,
            "traits": ["std::fmt::Display"],
            "attributes": ["derive(Debug)"],
        },
    ],
}


@pytest.fixture()
def model_data() -> dict[str, Any]:
    """A fresh copy of the sample code-model document."""
    return copy.deepcopy(SAMPLE_MODEL)


@pytest.fixture()
def code_model(model_data: dict[str, Any]) -> CodeModel:
    return parse_model(model_data)


@pytest.fixture()
def tmp_project(tmp_path: Path, model_data: dict[str, Any]) -> Path:
    """Create a project with ``.archguard/model.json``; tests add ``archguard.yml``."""
    archguard_dir = tmp_path / ".archguard"
    archguard_dir.mkdir()
    (archguard_dir / "model.json").write_text(json.dumps(model_data), encoding="utf-8")
    return tmp_path


SAMPLE_RULES = (
    "version: 1\n"
    "rules:\n"
    "  - name: empty-mod\n"
    "    kind: module\n"
    '    matches: {module: ".*"}\n'
    "    checks:\n"
    "      - must_have_empty_mod_file:\n"
    "        severity: error\n"
    "  - name: short-functions\n"
    "    kind: function\n"
    '    matches: {in_module: "^app"}\n'
    "    checks:\n"
    "      - max_length: 5\n"
)

WARN_ONLY_RULES = (
    "version: 1\n"
    "rules:\n"
    "  - name: short-functions\n"
    "    kind: function\n"
    '    matches: {in_module: "^app"}\n'
    "    checks:\n"
    "      - max_length: 5\n"
)


@pytest.fixture()
def project_with_rules(tmp_project: Path) -> Path:
    """``tmp_project`` plus an ``archguard.yml`` yielding one error and one warning."""
    (tmp_project / "archguard.yml").write_text(SAMPLE_RULES, encoding="utf-8")
    return tmp_project


@pytest.fixture()
def warn_only_project(tmp_project: Path) -> Path:
    """``tmp_project`` plus an ``archguard.yml`` yielding a single warning."""
    (tmp_project / "archguard.yml").write_text(WARN_ONLY_RULES, encoding="utf-8")
    return tmp_project
