"""Main entry point for the Toolwise CLI.

This module provides the command-line interface using Click: recording
experiences, asking for tool recommendations, inspecting tool statistics,
and mining error patterns. Output is rendered with Rich.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from toolwise import __version__
from toolwise.config import get_settings
from toolwise.engine import LearningEngine
from toolwise.learning import (
    ErrorPattern,
    Experience,
    LearningError,
    NoToolAvailableError,
    ToolRecommendation,
)
from toolwise.logging import setup_logging


def get_console(no_color: bool = False) -> Console:
    """Console for command output (logs go to stderr)."""
    return Console(no_color=no_color, highlight=False)


def _configure_logging(verbose: bool, debug: bool, no_color: bool) -> None:
    settings = get_settings()
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = settings.toolwise_log_level if settings.toolwise_log_level != "INFO" else "WARNING"
    setup_logging(level=level, log_file=settings.toolwise_log_file, colors=not no_color)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode (very detailed logging)")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, no_color: bool):
    """Toolwise - adaptive tool selection and experience learning."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["no_color"] = no_color
    _configure_logging(verbose, debug, no_color)


@cli.command()
@click.argument("query")
@click.option("--intent", "-i", required=True, help="Detected intent, e.g. 'calculation'")
@click.option("--exploration-rate", type=float, default=None, help="Override the exploration rate")
@click.pass_context
def recommend(ctx: click.Context, query: str, intent: str, exploration_rate: float | None):
    """Recommend a tool for QUERY."""
    asyncio.run(run_recommend(query, intent, exploration_rate, no_color=ctx.obj["no_color"]))


@cli.command()
@click.argument("tool")
@click.option("--intent", "-i", required=True, help="Intent to aggregate over")
@click.pass_context
def stats(ctx: click.Context, tool: str, intent: str):
    """Show recorded statistics for TOOL."""
    asyncio.run(run_stats(tool, intent, no_color=ctx.obj["no_color"]))


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def record(ctx: click.Context, path: Path):
    """Import experiences from a JSON-lines file at PATH."""
    asyncio.run(run_record(path, no_color=ctx.obj["no_color"]))


@cli.command()
@click.argument("tool")
@click.option("--query", "-q", required=True, help="The request the tool serves")
@click.option("--intent", "-i", required=True, help="Detected intent")
@click.option("--arg", "-a", "args", multiple=True, help="Tool argument as key=value (repeatable)")
@click.pass_context
def run(ctx: click.Context, tool: str, query: str, intent: str, args: tuple[str, ...]):
    """Run TOOL and record the outcome as an experience."""
    try:
        arguments = _parse_arguments(args)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--arg") from e
    asyncio.run(run_tool(tool, arguments, query, intent, no_color=ctx.obj["no_color"]))


@cli.command()
@click.option("--all", "include_all", is_flag=True, help="Include low-confidence patterns")
@click.pass_context
def patterns(ctx: click.Context, include_all: bool):
    """Detect and list recurring error patterns."""
    asyncio.run(run_patterns(include_all, no_color=ctx.obj["no_color"]))


@cli.command()
@click.argument("query")
@click.argument("error")
@click.pass_context
def diagnose(ctx: click.Context, query: str, error: str):
    """Suggest a correction for a failed QUERY that raised ERROR."""
    asyncio.run(run_diagnose(query, error, no_color=ctx.obj["no_color"]))


@cli.command()
@click.pass_context
def config(ctx: click.Context):
    """Show current configuration."""
    console = get_console(ctx.obj["no_color"])
    table = Table(title="Configuration", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in get_settings().model_dump_safe().items():
        table.add_row(key, str(value))
    console.print(table)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"Toolwise version {__version__}")


# =============================================================================
# Command implementations
# =============================================================================


def _parse_arguments(pairs: tuple[str, ...]) -> dict[str, Any]:
    """Parse key=value pairs; values are JSON when they parse as JSON."""
    arguments: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got '{pair}'")
        try:
            arguments[key] = json.loads(raw)
        except json.JSONDecodeError:
            arguments[key] = raw
    return arguments


async def _open_engine(console: Console) -> LearningEngine:
    try:
        return await LearningEngine.create()
    except Exception as e:
        console.print(f"[red]✗ Could not start learning engine:[/red] {escape(str(e))}")
        sys.exit(1)


async def run_recommend(
    query: str,
    intent: str,
    exploration_rate: float | None = None,
    no_color: bool = False,
) -> None:
    """Print a tool recommendation."""
    console = get_console(no_color)
    engine = await _open_engine(console)

    try:
        if exploration_rate is not None:
            engine.selector.set_exploration_rate(exploration_rate)
        recommendation = await engine.selector.recommend_tool(query, intent)
    except NoToolAvailableError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(1)
    finally:
        await engine.close()

    console.print(_recommendation_panel(recommendation))


def _recommendation_panel(rec: ToolRecommendation) -> Panel:
    lines = [
        f"[bold]Tool:[/bold] {rec.tool_name}",
        f"[bold]Strategy:[/bold] {rec.decision_strategy}",
        f"[bold]Confidence:[/bold] {rec.confidence:.2f}",
        f"[bold]Reasoning:[/bold] {escape(rec.reasoning)}",
    ]
    if rec.sample_size:
        lines.append(
            f"[dim]Success rate {rec.success_rate:.0%} over {rec.sample_size} samples, "
            f"avg latency {rec.avg_latency_ms}ms[/dim]"
        )
    if rec.alternative_tools:
        lines.append(f"[dim]Alternatives: {', '.join(rec.alternative_tools)}[/dim]")
    return Panel("\n".join(lines), title="Recommendation", border_style="green")


async def run_stats(tool: str, intent: str, no_color: bool = False) -> None:
    """Print aggregated statistics for one tool."""
    console = get_console(no_color)
    engine = await _open_engine(console)

    try:
        tool_stats = await engine.selector.get_tool_stats(tool, intent)
    finally:
        await engine.close()

    table = Table(title=f"{tool} ({intent})", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total calls", str(tool_stats.total_calls))
    table.add_row("Successes", str(tool_stats.successes))
    table.add_row("Failures", str(tool_stats.failures))
    table.add_row("Success rate", f"{tool_stats.success_rate:.0%}")
    table.add_row("Avg latency", f"{tool_stats.avg_latency_ms}ms")
    console.print(table)


async def run_record(path: Path, no_color: bool = False) -> None:
    """Import experiences from a JSON-lines file."""
    console = get_console(no_color)
    engine = await _open_engine(console)

    recorded = 0
    skipped = 0
    try:
        for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                if not data.get("id"):
                    experience = Experience.new(**data)
                else:
                    experience = Experience.model_validate(data)
                await engine.experiences.record(experience)
                recorded += 1
            except (
                json.JSONDecodeError,
                ValidationError,
                LearningError,
                AttributeError,
                TypeError,
            ) as e:
                skipped += 1
                console.print(f"[yellow]⚠ Line {line_no} skipped:[/yellow] {escape(str(e))}")
    finally:
        await engine.close()

    console.print(f"[green]✓ Recorded {recorded} experiences[/green] ({skipped} skipped)")


async def run_tool(
    tool: str,
    arguments: dict[str, Any],
    query: str,
    intent: str,
    no_color: bool = False,
) -> None:
    """Run a catalog tool through the recorder."""
    console = get_console(no_color)
    engine = await _open_engine(console)

    try:
        result, experience = await engine.recorder.run_tool(tool, arguments, query, intent)
    finally:
        await engine.close()

    if result.success:
        console.print(f"[green]✓ {tool}:[/green] {escape(str(result.data))}")
    else:
        console.print(f"[red]✗ {tool} ({result.error_kind}):[/red] {escape(result.error or '')}")
    console.print(f"[dim]Recorded experience {experience.id} ({experience.latency_ms}ms)[/dim]")


async def run_patterns(include_all: bool = False, no_color: bool = False) -> None:
    """Run pattern detection and list the patterns."""
    console = get_console(no_color)
    engine = await _open_engine(console)

    try:
        await engine.analyzer.detect_patterns()
        found = engine.analyzer.get_patterns(include_low_confidence=include_all)
    finally:
        await engine.close()

    if not found:
        console.print("[dim]No error patterns detected.[/dim]")
        return

    table = Table(title="Error patterns", box=box.ROUNDED)
    table.add_column("ID", style="dim")
    table.add_column("Label", style="cyan")
    table.add_column("Seen", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Description")
    for pattern in found:
        table.add_row(
            pattern.id,
            pattern.label,
            str(pattern.frequency),
            f"{pattern.confidence:.2f}",
            escape(pattern.description),
        )
    console.print(table)


async def run_diagnose(query: str, error: str, no_color: bool = False) -> None:
    """Suggest a correction for a failure."""
    console = get_console(no_color)
    engine = await _open_engine(console)

    try:
        suggestion = await engine.analyzer.suggest_correction(query, error)
    finally:
        await engine.close()

    console.print(_pattern_panel(suggestion))


def _pattern_panel(pattern: ErrorPattern) -> Panel:
    title = "Ad-hoc suggestion" if pattern.is_adhoc else f"Pattern {pattern.id}"
    lines = [
        f"[bold]Label:[/bold] {escape(pattern.label)}",
        f"[bold]Confidence:[/bold] {pattern.confidence:.2f}",
        f"[bold]Correction:[/bold] {escape(pattern.correction)}",
    ]
    if pattern.description:
        lines.insert(1, f"[bold]Description:[/bold] {escape(pattern.description)}")
    if pattern.prevention:
        lines.append(f"[bold]Prevention:[/bold] {escape(pattern.prevention)}")
    border = "yellow" if pattern.is_adhoc else "green"
    return Panel("\n".join(lines), title=title, border_style=border)


def main() -> NoReturn:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
