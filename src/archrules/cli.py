"""archrules CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from archrules import __version__


@click.group()
@click.version_option(version=__version__, prog_name="archrules")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """archrules - architecture conformance checks over a codebase model."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


_project_option = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
_rules_option = click.option(
    "--rules",
    "rules_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to rules.yml (default: .archrules/rules.yml).",
)


@main.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--model",
    "model_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the model snapshot (default: .archrules/model.yml).",
)
@click.option(
    "--rule",
    "rule_names",
    multiple=True,
    help="Only evaluate this rule (repeatable).",
)
@click.option(
    "--workers",
    type=int,
    default=None,
    help="Evaluate rules on this many threads (default: engine.max_workers).",
)
@click.option(
    "--show-passed",
    is_flag=True,
    default=False,
    help="Also list passing rules in rich output.",
)
@_rules_option
@_project_option
def check(
    *,
    fmt: str | None,
    model_path: Path | None,
    rule_names: tuple[str, ...],
    workers: int | None,
    show_passed: bool,
    rules_path: Path | None,
    project: Path | None,
) -> None:
    """Evaluate architecture rules against the project's model.

    Exit codes: 0 = no enforced rule failed, 1 = an enforced rule failed or
    errored, 2 = configuration error.
    """
    from archrules.engine.report import format_json, format_porcelain, format_rich
    from archrules.errors import CheckError
    from archrules.runner import check as run_check

    project_root = project or Path.cwd()

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        result = run_check(
            project_root,
            rules_path=rules_path,
            model_path=model_path,
            rule_names=rule_names or None,
            max_workers=workers,
        )
    except CheckError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if fmt == "rich":
        output = format_rich(result.report, show_passed=show_passed)
    elif fmt == "json":
        output = format_json(result.report)
    else:
        output = format_porcelain(result.report)
    if output:
        click.echo(output)

    if result.exit_code:
        sys.exit(result.exit_code)


@main.command("rules")
@_rules_option
@_project_option
def rules_cmd(*, rules_path: Path | None, project: Path | None) -> None:
    """List the configured rules."""
    from rich.console import Console
    from rich.table import Table

    from archrules.errors import CheckError
    from archrules.runner import load_project_rules

    project_root = project or Path.cwd()
    try:
        rules = load_project_rules(project_root, rules_path=rules_path)
    except CheckError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    table = Table(title=f"Rules ({len(rules)})", box=None, padding=(0, 1))
    table.add_column("Name", style="bold")
    table.add_column("Quantifier")
    table.add_column("Target")
    table.add_column("Enforcement")
    table.add_column("Description")
    for rule in rules:
        quantifier = rule.quantifier
        if rule.count is not None:
            quantifier += f"({rule.count})"
        table.add_row(
            rule.name,
            quantifier,
            rule.scope.target,
            rule.enforcement,
            rule.description or rule.message,
        )

    Console(width=120).print(table)
