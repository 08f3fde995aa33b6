"""Sample rule-set generation from a code model."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import yaml

from archguard.rules.loader import parse_rules

if TYPE_CHECKING:
    from pathlib import Path

    from archguard.model.entities import CodeModel

logger = logging.getLogger(__name__)

_HEADER = (
    "# archguard rule set\n"
    "# Generated from the code model; edit freely.\n"
)


def sample_rules(model: CodeModel) -> dict[str, object]:
    """Build a starter rule-set document for *model*.

    One global module rule keeps aggregator files empty; each root module
    gets a function rule limiting body length and requiring Result error
    types to implement the Error trait.
    """
    rules: list[dict[str, object]] = [
        {
            "name": "empty_mod_rule",
            "kind": "module",
            "description": "Aggregator files only declare sub-modules and re-exports",
            "matches": {"module": ".*"},
            "checks": [{"must_have_empty_mod_file": True, "severity": "error"}],
        }
    ]
    for root in model.root_modules():
        rules.append(
            {
                "name": f"func_rules_for_{root}",
                "kind": "function",
                "description": f"Function hygiene for {root}",
                "matches": {"in_module": f"^{re.escape(root)}(::|$)"},
                "checks": [
                    {"max_length": 50, "severity": "warn"},
                    {"result_error_must_implement_error": True, "severity": "warn"},
                ],
            }
        )

    data: dict[str, object] = {"version": 1, "default_severity": "warn", "rules": rules}
    # Never emit something the loader would reject.
    parse_rules(data)
    return data


def render_rules(data: dict[str, object]) -> str:
    return _HEADER + yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def write_sample_config(model: CodeModel, output: Path, *, force: bool = False) -> int:
    """Write a sample rule set to *output* and return the number of rules.

    Raises ``FileExistsError`` when *output* exists and *force* is False.
    """
    if output.exists() and not force:
        msg = f"{output} already exists (use --force to overwrite)"
        raise FileExistsError(msg)

    data = sample_rules(model)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_rules(data), encoding="utf-8")
    count = len(data["rules"])  # type: ignore[arg-type]
    logger.info("Wrote %d sample rules to %s", count, output)
    return count
