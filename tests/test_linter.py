"""Tests for archguard.linter: load, evaluate, format."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from archguard.linter import (
    LintError,
    LintResult,
    format_json,
    format_porcelain,
    format_rich,
    lint,
    run,
)
from archguard.model.entities import SourceLocation
from archguard.report import Outcome, aggregate
from archguard.rules.engine import Violation
from archguard.rules.kinds import Severity
from archguard.rules.loader import parse_rules

if TYPE_CHECKING:
    from pathlib import Path

    from archguard.model.entities import CodeModel


def _paths(project: Path) -> tuple[Path, Path]:
    return project / "archguard.yml", project / ".archguard" / "model.json"


def _result(*violations: Violation, rules: int = 2) -> LintResult:
    return LintResult(
        report=aggregate(violations), rules_evaluated=rules, entities_scanned=13, elapsed_ms=1.0
    )


def _violation(severity: Severity = Severity.ERROR) -> Violation:
    return Violation(
        rule_name="short-functions",
        entity_path="app::api::handlers::handle",
        location=SourceLocation("src/api/handlers.rs", 10),
        severity=severity,
        message="Function exceeds maximum length of 5 lines with 8 lines",
        check="max_length",
    )


# ---------------------------------------------------------------------------
# lint()
# ---------------------------------------------------------------------------


class TestLint:
    def test_lint_with_violations(self, project_with_rules: Path) -> None:
        result = lint(*_paths(project_with_rules))
        assert result.rules_evaluated == 2
        assert result.entities_scanned == 13
        report = result.report
        assert report.outcome is Outcome.FAIL
        assert report.error_count == 1
        assert report.warning_count == 1
        assert [v.rule_name for v in report.violations] == ["short-functions", "empty-mod"]
        assert result.passed is False
        assert result.elapsed_ms >= 0

    def test_lint_warnings_only_passes(self, warn_only_project: Path) -> None:
        result = lint(*_paths(warn_only_project))
        assert result.passed is True
        assert result.report.warning_count == 1

    def test_lint_invalid_rules_raises_lint_error(self, tmp_project: Path) -> None:
        (tmp_project / "archguard.yml").write_text(
            "version: 1\n"
            "rules:\n"
            "  - name: bad\n"
            "    kind: module\n"
            '    matches: {name: "x"}\n'
            "    checks:\n"
            "      - max_length: 5\n"
        )
        with pytest.raises(LintError, match="Invalid rules configuration"):
            lint(*_paths(tmp_project))

    def test_lint_missing_rules_raises_lint_error(self, tmp_project: Path) -> None:
        with pytest.raises(LintError, match="Cannot read rule set"):
            lint(*_paths(tmp_project))

    def test_lint_invalid_model_raises_lint_error(self, project_with_rules: Path) -> None:
        (project_with_rules / ".archguard" / "model.json").write_text('{"modules": 3}')
        with pytest.raises(LintError, match="Invalid code model"):
            lint(*_paths(project_with_rules))

    def test_lint_error_traits_override(self, project_with_rules: Path) -> None:
        rules_path, model_path = _paths(project_with_rules)
        rules_path.write_text(
            "version: 1\n"
            "rules:\n"
            "  - name: errors\n"
            "    kind: function\n"
            '    matches: {name: "."}\n'
            "    checks:\n"
            "      - result_error_must_implement_error\n"
        )
        default = lint(rules_path, model_path)
        custom = lint(rules_path, model_path, error_traits=("app::Fault",))
        # parse() returns i32 either way; handle() returns AppError.
        assert len(default.report.violations) == 1
        assert len(custom.report.violations) == 2

    def test_run_is_deterministic(self, code_model: CodeModel) -> None:
        rules = parse_rules(
            {
                "version": 1,
                "rules": [
                    {
                        "name": "empty",
                        "kind": "module",
                        "matches": {"module": ".*"},
                        "checks": ["must_be_empty", "no_wildcard_imports"],
                    }
                ],
            }
        )
        first = run(rules, code_model)
        second = run(rules, code_model)
        assert first.report == second.report
        first.elapsed_ms = second.elapsed_ms = 0.0
        assert format_json(first) == format_json(second)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class TestFormatRich:
    def test_format_with_violations(self) -> None:
        output = format_rich(_result(_violation()))
        assert "Rules: 2 loaded" in output
        assert "✗ short-functions [error]" in output
        assert "src/api/handlers.rs:10 app::api::handlers::handle" in output
        assert "maximum length of 5 lines with 8 lines" in output
        assert "FAIL: 1 error, 0 warnings (2 rules evaluated" in output

    def test_warning_marker(self) -> None:
        output = format_rich(_result(_violation(Severity.WARN)))
        assert "⚠ short-functions [warn]" in output
        assert "PASS: 0 errors, 1 warning" in output

    def test_format_no_violations(self) -> None:
        output = format_rich(_result())
        assert "✓ No violations found (2 rules evaluated" in output


class TestFormatJson:
    def test_valid_json_output(self) -> None:
        data = json.loads(format_json(_result(_violation())))
        assert data["violations"] == [
            {
                "rule_name": "short-functions",
                "check": "max_length",
                "severity": "error",
                "entity_path": "app::api::handlers::handle",
                "file_path": "src/api/handlers.rs",
                "line_number": 10,
                "column": 0,
                "message": "Function exceeds maximum length of 5 lines with 8 lines",
            }
        ]

    def test_summary_fields_correct(self) -> None:
        data = json.loads(format_json(_result(_violation(), _violation(Severity.WARN))))
        assert data["summary"] == {
            "outcome": "fail",
            "rules_evaluated": 2,
            "entities_scanned": 13,
            "violations_count": 2,
            "errors": 1,
            "warnings": 1,
            "elapsed_ms": 1.0,
        }


class TestFormatPorcelain:
    def test_correct_format(self) -> None:
        output = format_porcelain(_result(_violation()))
        assert output == (
            "short-functions:error:src/api/handlers.rs:10:app::api::handlers::handle:"
            "Function exceeds maximum length of 5 lines with 8 lines"
        )

    def test_one_line_per_violation(self) -> None:
        output = format_porcelain(_result(_violation(), _violation(Severity.WARN)))
        assert len(output.splitlines()) == 2

    def test_empty_result(self) -> None:
        assert format_porcelain(_result()) == ""
