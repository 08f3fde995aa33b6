"""Linter orchestrator: load model and rules, evaluate, format results."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from archguard.model.loader import load_model
from archguard.report import Report, aggregate
from archguard.rules.engine import evaluate_rules
from archguard.rules.kinds import ConfigError, Severity
from archguard.rules.loader import load_rules

if TYPE_CHECKING:
    from pathlib import Path

    from archguard.model.entities import CodeModel
    from archguard.rules.kinds import Rule


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LintError(Exception):
    """Raised when lint encounters a configuration or code-model error."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class LintResult:
    """Result of a lint run."""

    report: Report = field(default_factory=lambda: aggregate([]))
    rules_evaluated: int = 0
    entities_scanned: int = 0
    elapsed_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return self.report.passed


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run(rules: list[Rule], model: CodeModel) -> LintResult:
    """Evaluate already-loaded *rules* against *model*."""
    start = time.monotonic()
    report = aggregate(evaluate_rules(rules, model))
    elapsed = (time.monotonic() - start) * 1000
    return LintResult(
        report=report,
        rules_evaluated=len(rules),
        entities_scanned=len(model.modules) + len(model.functions) + len(model.structs),
        elapsed_ms=elapsed,
    )


def lint(
    rules_path: Path,
    model_path: Path,
    *,
    error_traits: tuple[str, ...] | None = None,
) -> LintResult:
    """Load the rule set and the code model, evaluate, and return results.

    Parameters
    ----------
    rules_path:
        Path to the YAML rule set (``archguard.yml``).
    model_path:
        Path to the code-model snapshot (JSON or YAML).
    error_traits:
        Trait paths that count as the Error capability; when *None* the
        model file's own list (or the built-in default) is used.

    Returns
    -------
    LintResult
        Sorted report, counts, and timing.

    Raises
    ------
    LintError
        When the rule set or the code model is invalid.  Nothing is
        evaluated in that case.
    """
    start = time.monotonic()

    try:
        rules = load_rules(rules_path)
    except ConfigError as exc:
        msg = f"Invalid rules configuration: {exc}"
        raise LintError(msg) from exc

    # ModelError is a ValueError as well.
    try:
        model = load_model(model_path, error_traits=error_traits)
    except ValueError as exc:
        msg = f"Invalid code model: {exc}"
        raise LintError(msg) from exc

    result = run(rules, model)
    result.elapsed_ms = (time.monotonic() - start) * 1000
    return result


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def _marker(severity: Severity) -> str:
    return "✗" if severity is Severity.ERROR else "⚠"


def format_rich(result: LintResult) -> str:
    """Format a LintResult as human-readable text.

    Example output with violations::

        Rules: 2 loaded
        Entities: 14 scanned

        ✗ func-length [error]
          src/api/handlers.rs:10 app::api::handle
          Function exceeds maximum length of 5 lines with 8 lines

        FAIL: 1 error, 0 warnings (2 rules evaluated, 0.0s)
    """
    report = result.report
    lines: list[str] = [
        f"Rules: {result.rules_evaluated} loaded",
        f"Entities: {result.entities_scanned} scanned",
        "",
    ]

    elapsed_str = f"{result.elapsed_ms / 1000:.1f}s"

    for v in report.violations:
        lines.append(f"{_marker(v.severity)} {v.rule_name} [{v.severity.value}]")
        lines.append(f"  {v.location} {v.entity_path}")
        lines.append(f"  {v.message}")
        lines.append("")

    if report.violations:
        errors = "error" if report.error_count == 1 else "errors"
        warnings = "warning" if report.warning_count == 1 else "warnings"
        lines.append(
            f"{report.outcome.value.upper()}: {report.error_count} {errors}, "
            f"{report.warning_count} {warnings} "
            f"({result.rules_evaluated} rules evaluated, {elapsed_str})"
        )
    else:
        lines.append(
            f"✓ No violations found ({result.rules_evaluated} rules evaluated, {elapsed_str})"
        )

    return "\n".join(lines)


def format_json(result: LintResult) -> str:
    """Format a LintResult as structured JSON.

    Returns a JSON string with ``violations`` array and ``summary`` object.
    """
    report = result.report
    violations_list: list[dict[str, object]] = [
        {
            "rule_name": v.rule_name,
            "check": v.check,
            "severity": v.severity.value,
            "entity_path": v.entity_path,
            "file_path": v.location.file,
            "line_number": v.location.line,
            "column": v.location.column,
            "message": v.message,
        }
        for v in report.violations
    ]

    output: dict[str, object] = {
        "violations": violations_list,
        "summary": {
            "outcome": report.outcome.value,
            "rules_evaluated": result.rules_evaluated,
            "entities_scanned": result.entities_scanned,
            "violations_count": len(report.violations),
            "errors": report.error_count,
            "warnings": report.warning_count,
            "elapsed_ms": result.elapsed_ms,
        },
    }

    return json.dumps(output, indent=2)


def format_porcelain(result: LintResult) -> str:
    """Format a LintResult as machine-readable one-line-per-violation output.

    Format: ``rule_name:severity:file_path:line:entity_path:message``

    Returns empty string when there are no violations.
    """
    return "\n".join(
        f"{v.rule_name}:{v.severity.value}:{v.location.file}:{v.location.line}:"
        f"{v.entity_path}:{v.message}"
        for v in result.report.violations
    )
