"""
QueryLens CLI - SQL anti-pattern detector for BI and reporting queries.

Usage:
    querylens analyze report.sql
    querylens analyze report.sql --plan plan.json --format markdown
    querylens detectors
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from querylens import __version__
from querylens.analyzer import Analyzer, Severity
from querylens.analyzer.registry import get_registry
from querylens.config import get_config
from querylens.exceptions import QueryLensError
from querylens.output import OutputFormat, render
from querylens.plan import create_mock_plan, load_plan_file


class FailOn(str, Enum):
    """Severity that makes `analyze` exit non-zero."""
    critical = "critical"
    warning = "warning"
    never = "never"


app = typer.Typer(
    name="querylens",
    help="SQL anti-pattern detector for BI and reporting queries",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

FAIL_EXIT_CODE = 2

_SEVERITY_STYLES = {
    Severity.CRITICAL: "red bold",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"QueryLens version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """QueryLens - SQL anti-pattern detector for BI queries."""
    pass


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    package_logger = logging.getLogger("querylens")
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(console=error_console, show_path=False, markup=False)
        )
    package_logger.setLevel(logging.DEBUG)


def _split_ids(value: str | None) -> set[str] | None:
    if not value:
        return None
    return {part.strip().upper() for part in value.split(",") if part.strip()}


def _print_summary_table(result) -> None:
    table = Table(title="Ranked findings")
    table.add_column("#", justify="right")
    table.add_column("Severity")
    table.add_column("Issue", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Cost %", justify="right")

    for i, b in enumerate(result.bottlenecks, 1):
        style = _SEVERITY_STYLES[b.severity]
        line = b.line_number if b.line_number is not None else b.start_line
        table.add_row(
            str(i),
            f"[{style}]{b.severity.value}[/{style}]",
            b.issue_type_description,
            str(line) if line is not None else "-",
            f"{b.cost_percentage:.1f}",
        )

    console.print(table)
    console.print()


def _should_fail(result, fail_on: FailOn) -> bool:
    if fail_on == FailOn.critical:
        return result.has_critical
    if fail_on == FailOn.warning:
        return result.has_critical or result.has_warnings
    return False


@app.command()
def analyze(
    sql_file: Annotated[
        Path,
        typer.Argument(help="Path to the SQL query to analyze"),
    ],
    plan_file: Annotated[
        Optional[Path],
        typer.Option(
            "--plan",
            "-p",
            help="Execution plan JSON (a heuristic plan is used if omitted)",
        ),
    ] = None,
    output_format: Annotated[
        OutputFormat,
        typer.Option(
            "--format",
            "-f",
            help="Output format",
        ),
    ] = OutputFormat.TEXT,
    detectors: Annotated[
        Optional[str],
        typer.Option(
            "--detectors",
            "-d",
            help="Comma-separated detector IDs to run",
        ),
    ] = None,
    exclude: Annotated[
        Optional[str],
        typer.Option(
            "--exclude",
            "-x",
            help="Comma-separated detector IDs to skip",
        ),
    ] = None,
    fail_on: Annotated[
        FailOn,
        typer.Option(
            "--fail-on",
            help="Exit with code 2 when a finding of this severity or worse exists",
        ),
    ] = FailOn.never,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log detector activity to stderr"),
    ] = False,
) -> None:
    """
    Analyze a SQL query for BI performance anti-patterns.

    Examples:

        # Heuristic plan, one-page text report
        $ querylens analyze monthly_giving.sql

        # Real plan, JSON for CI
        $ querylens analyze monthly_giving.sql --plan plan.json --format json --fail-on critical
    """
    _configure_logging(verbose)
    config = get_config()

    try:
        try:
            sql = sql_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            error_console.print(f"[red]Error:[/red] Cannot read SQL file: {sql_file}")
            error_console.print(f"\n[dim]{escape(str(e))}[/dim]")
            raise typer.Exit(code=1)

        if plan_file is not None:
            plan = load_plan_file(plan_file)
        elif config.use_mock_plan:
            plan = create_mock_plan(sql)
            if output_format == OutputFormat.TEXT:
                console.print(
                    "[dim]No execution plan supplied, using a heuristic plan. "
                    "Pass --plan for measured costs.[/dim]\n"
                )
        else:
            plan = None

        analyzer = Analyzer(
            include=_split_ids(detectors),
            exclude=_split_ids(exclude),
            config=config,
        )
        result = analyzer.analyze(sql, plan)

    except QueryLensError as e:
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        detail = getattr(e, "detail", None)
        if detail:
            error_console.print(f"\n[dim]{escape(detail)}[/dim]")
        raise typer.Exit(code=1)

    if output_format == OutputFormat.JSON:
        console.print_json(render(result, OutputFormat.JSON))
    elif output_format == OutputFormat.MARKDOWN:
        console.print(render(result, OutputFormat.MARKDOWN), markup=False, highlight=False, soft_wrap=True)
    elif not result.bottlenecks:
        console.print(Panel(
            "[green]No performance anti-patterns found![/green]\n\n"
            f"Ran {len(result.detector_runs)} detector(s).",
            title="QueryLens",
            border_style="green",
        ))
    else:
        _print_summary_table(result)
        report = render(
            result,
            OutputFormat.TEXT,
            sql,
            width=config.report_width,
            breakdown_min_percent=config.cost_breakdown_min_percent,
        )
        console.print(report, markup=False, highlight=False, soft_wrap=True)

    for run in result.detector_runs:
        if run.error_summary:
            error_console.print(
                f"[yellow]Warning:[/yellow] detector {run.detector_id} failed: {escape(run.error_summary)}"
            )

    if _should_fail(result, fail_on):
        raise typer.Exit(code=FAIL_EXIT_CODE)


@app.command()
def detectors() -> None:
    """
    List all registered detectors.

    Shows detector IDs, versions, and descriptions.
    """
    config = get_config()
    registry = get_registry()

    table = Table()
    table.add_column("Detector ID", style="cyan", no_wrap=True)
    table.add_column("Version")
    table.add_column("Enabled")
    table.add_column("Description")

    for detector_cls in registry.all():
        enabled = config.is_detector_enabled(detector_cls.detector_id)
        table.add_row(
            detector_cls.detector_id,
            detector_cls.version,
            "[green]yes[/green]" if enabled else "[dim]no[/dim]",
            detector_cls.description,
        )

    console.print(table)


if __name__ == "__main__":
    app()
