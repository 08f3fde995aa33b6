"""Violation aggregator: canonical ordering, outcome and severity counts."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from archguard.rules.kinds import Severity

if TYPE_CHECKING:
    from collections.abc import Iterable

    from archguard.rules.engine import Violation


class Outcome(enum.Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class Report:
    """Sorted violations of one evaluation run."""

    violations: tuple[Violation, ...]
    outcome: Outcome
    error_count: int
    warning_count: int

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASS


def _sort_key(v: Violation) -> tuple[str, int, int, str, str, str]:
    loc = v.location
    return (loc.file, loc.line, loc.column, v.rule_name, v.message, v.entity_path)


def aggregate(violations: Iterable[Violation]) -> Report:
    """Sort *violations* and derive the outcome.

    Order is source location (file, line, column), then rule name, then
    message, then entity path.  The outcome is ``FAIL`` iff at least one
    violation has ``error`` severity.
    """
    ordered = tuple(sorted(violations, key=_sort_key))
    errors = sum(1 for v in ordered if v.severity is Severity.ERROR)
    return Report(
        violations=ordered,
        outcome=Outcome.FAIL if errors else Outcome.PASS,
        error_count=errors,
        warning_count=len(ordered) - errors,
    )
