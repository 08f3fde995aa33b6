"""Archguard CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from archguard import __version__

if TYPE_CHECKING:
    from archguard.config import ArchguardConfig
    from archguard.model.entities import CodeModel
    from archguard.rules.kinds import Rule

_PROJECT_OPTION = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
_MODEL_OPTION = click.option(
    "--model",
    "model_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Code model file (default: from config.yml or '.archguard/model.json').",
)
_RULES_OPTION = click.option(
    "--rules",
    "rules_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Rule set file (default: from config.yml or 'archguard.yml').",
)


@click.group()
@click.version_option(version=__version__, prog_name="archguard")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Archguard - architectural rules for structural code models."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _project_config(project: Path | None) -> tuple[Path, ArchguardConfig]:
    from archguard.config import load_config

    project_root = project or Path.cwd()
    return project_root, load_config(project_root)


def _load_model_or_exit(path: Path, config: ArchguardConfig) -> CodeModel:
    from archguard.model.loader import load_model

    try:
        return load_model(path, error_traits=config.error_traits)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


def _load_rules_or_exit(path: Path) -> list[Rule]:
    from archguard.rules.loader import load_rules

    try:
        return load_rules(path)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: config.yml, else rich if TTY, porcelain if piped).",
)
@_RULES_OPTION
@_MODEL_OPTION
@_PROJECT_OPTION
def check(
    *,
    fmt: str | None,
    rules_path: Path | None,
    model_path: Path | None,
    project: Path | None,
) -> None:
    """Evaluate the rule set against the code model.

    Exit codes: 0 = no error-severity violations, 1 = at least one
    error-severity violation, 2 = configuration or code-model error.
    """
    from archguard.linter import LintError
    from archguard.linter import format_json as _format_json
    from archguard.linter import format_porcelain as _format_porcelain
    from archguard.linter import format_rich as _format_rich
    from archguard.linter import lint as run_lint

    project_root, config = _project_config(project)

    # Resolve output format: explicit flag > config.yml > TTY detection.
    if fmt is None:
        fmt = config.format
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        result = run_lint(
            rules_path or config.rules_path(project_root),
            model_path or config.model_path(project_root),
            error_traits=config.error_traits,
        )
    except LintError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    formatters = {
        "rich": _format_rich,
        "json": _format_json,
        "porcelain": _format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)

    if not result.passed:
        sys.exit(1)


@main.command("print-modules")
@click.option("--json", "as_json", is_flag=True, help="JSON output.")
@_RULES_OPTION
@_MODEL_OPTION
@_PROJECT_OPTION
def print_modules(
    *,
    as_json: bool,
    rules_path: Path | None,
    model_path: Path | None,
    project: Path | None,
) -> None:
    """List modules in the code model and the module rules that select each.

    A missing rule set is not an error; modules are listed without rules.
    """
    from archguard.model.entities import parent_path
    from archguard.rules.engine import rules_matching

    project_root, config = _project_config(project)
    model = _load_model_or_exit(model_path or config.model_path(project_root), config)

    resolved_rules = rules_path or config.rules_path(project_root)
    rules = _load_rules_or_exit(resolved_rules) if resolved_rules.is_file() else []

    listing = {m.path: rules_matching(rules, m, model) for m in model.modules}

    if as_json:
        click.echo(json.dumps({"modules": listing}, ensure_ascii=False, indent=2))
        return

    from rich.console import Console
    from rich.tree import Tree

    console = Console()
    if not listing:
        console.print("No modules in code model.")
        return

    # Nest each module under its nearest listed ancestor.
    root = Tree(f"[bold]Modules[/] ({len(listing)})")
    branches: dict[str, Tree] = {}
    for module in model.modules:
        parent = root
        owner = module.owner
        while owner is not None:
            if owner in branches:
                parent = branches[owner]
                break
            owner = parent_path(owner)
        label = f"[cyan]{module.path}[/]"
        matched = listing[module.path]
        if matched:
            label += f"  [dim]{', '.join(matched)}[/]"
        branches[module.path] = parent.add(label)
    console.print(root)


@main.command("print-traits")
@click.option("--json", "as_json", is_flag=True, help="JSON output.")
@_MODEL_OPTION
@_PROJECT_OPTION
def print_traits(*, as_json: bool, model_path: Path | None, project: Path | None) -> None:
    """List every trait in the code model with its implementors."""
    project_root, config = _project_config(project)
    model = _load_model_or_exit(model_path or config.model_path(project_root), config)
    traits = model.traits()

    if as_json:
        payload = {trait: list(impls) for trait, impls in traits.items()}
        click.echo(json.dumps({"traits": payload}, ensure_ascii=False, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    console = Console()
    if not traits:
        console.print("No traits in code model.")
        return

    table = Table(title="Traits")
    table.add_column("Trait", style="cyan")
    table.add_column("Implementors")
    for trait, impls in traits.items():
        table.add_row(trait, "\n".join(impls))
    console.print(table)


@main.command("generate-config")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the rule set (default: the configured rules path).",
)
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file.")
@_MODEL_OPTION
@_PROJECT_OPTION
def generate_config(
    *,
    output: Path | None,
    force: bool,
    model_path: Path | None,
    project: Path | None,
) -> None:
    """Write a starter rule set derived from the code model."""
    from archguard.generate import write_sample_config

    project_root, config = _project_config(project)
    model = _load_model_or_exit(model_path or config.model_path(project_root), config)
    target = output or config.rules_path(project_root)

    try:
        count = write_sample_config(model, target, force=force)
    except FileExistsError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Wrote {count} rules to {target}")
