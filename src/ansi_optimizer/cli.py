"""Command line interface."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import BinaryIO, Iterable, NamedTuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ansi_optimizer import __version__
from ansi_optimizer.diagnostics import (
    Diagnostic,
    DiagnosticKind,
    DiagnosticsCounter,
    DiagnosticsHandler,
    log_diagnostic,
)
from ansi_optimizer.optimizer import Optimizer, OptimizerStats
from ansi_optimizer.paths import get_settings_path
from ansi_optimizer.process import run_command
from ansi_optimizer.rewriter import RewriterOptions
from ansi_optimizer.settings import (
    Schema,
    Setting,
    Settings,
    SettingsError,
    load_settings,
    write_settings,
)
from ansi_optimizer.settings_schema import SCHEMA

log = logging.getLogger("ansi_optimizer")

# stdout carries the optimized stream, so messages go to stderr
console = Console(stderr=True)


class AppContext(NamedTuple):
    """State shared by the commands."""

    settings: Settings
    settings_path: Path


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def get_options(settings: Settings) -> RewriterOptions:
    """Build rewriter options from settings."""
    return RewriterOptions(
        fold_cursor=settings.get("optimizer.fold_cursor", bool),
        collapse_erase=settings.get("optimizer.collapse_erase", bool),
        max_sgr_parameters=settings.get("optimizer.max_sgr_parameters", int),
    )


def get_diagnostics_handler(settings: Settings) -> DiagnosticsHandler:
    """Get a diagnostics handler that honors the settings."""
    if settings.get("diagnostics.report_unrecognized", bool):
        return log_diagnostic

    def log_malformed(diagnostic: Diagnostic) -> None:
        if diagnostic.kind == "malformed_sequence":
            log_diagnostic(diagnostic)

    return log_malformed


def build_stats_table(
    stats: OptimizerStats, diagnostics: Counter[DiagnosticKind]
) -> Table:
    """Build a table summarizing an optimized stream."""
    table = Table(title="Optimizer statistics", show_header=False)
    table.add_column("Statistic", style="cyan")
    table.add_column("Value", justify="right")
    rewriter = stats.rewriter
    rows: Iterable[tuple[str, str]] = [
        ("Bytes in", f"{stats.bytes_in:,}"),
        ("Bytes out", f"{stats.bytes_out:,}"),
        ("Saved", f"{stats.saved:,} ({1 - stats.ratio:.1%})"),
        ("Tokens", f"{stats.tokens:,}"),
        ("Control runs", f"{rewriter.runs:,}"),
        ("Runs kept verbatim", f"{rewriter.verbatim_runs:,}"),
        ("Control events in", f"{rewriter.events_in:,}"),
        ("Control events out", f"{rewriter.events_out:,}"),
        ("Redundant events", f"{rewriter.redundant:,}"),
        ("Malformed sequences", f"{diagnostics['malformed_sequence']:,}"),
        ("Unrecognized sequences", f"{diagnostics['unrecognized_sequence']:,}"),
    ]
    for label, value in rows:
        table.add_row(label, value)
    return table


def iter_settings_rows(
    settings: Settings, form_settings: Iterable[Setting]
) -> Iterable[tuple[str, str, str]]:
    for setting in form_settings:
        if setting.children is not None:
            yield from iter_settings_rows(settings, setting.children)
        else:
            yield setting.key, repr(settings.get(setting.key)), setting.help


@click.group()
@click.version_option(version=__version__, prog_name="ansi-optimizer")
@click.option("-v", "--verbose", is_flag=True, help="Log diagnostics.")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (defaults to the user config directory).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, settings_path: Path | None) -> None:
    """Remove redundant escape sequences from terminal output."""
    setup_logging(verbose)
    if settings_path is None:
        settings_path = get_settings_path()
    try:
        settings = load_settings(Schema(SCHEMA), settings_path)
    except SettingsError as error:
        raise click.ClickException(str(error)) from None
    ctx.obj = AppContext(settings, settings_path)


@cli.command("optimize")
@click.argument("input_file", type=click.File("rb"), default="-")
@click.option(
    "-o", "--output", type=click.File("wb"), default="-", help="Output file."
)
@click.option("--stats", is_flag=True, help="Print statistics to stderr.")
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=None,
    help="Bytes to read at a time.",
)
@click.pass_obj
def optimize_cmd(
    app: AppContext,
    input_file: BinaryIO,
    output: BinaryIO,
    stats: bool,
    chunk_size: int | None,
) -> None:
    """Optimize a file (or stdin), writing to stdout."""
    settings = app.settings
    if chunk_size is None:
        chunk_size = settings.get("input.chunk_size", int)
    options = get_options(settings)
    log.debug("optimizing with %r", options)
    counter = DiagnosticsCounter(get_diagnostics_handler(settings))
    optimizer = Optimizer(options, counter)
    try:
        while chunk := input_file.read(chunk_size):
            output.write(optimizer.feed(chunk))
        output.write(optimizer.finish())
        output.flush()
    except OSError as error:
        raise click.ClickException(f"Unable to write output; {error}") from None
    if stats:
        console.print(build_stats_table(optimizer.stats, counter.counts))


@cli.command("run", context_settings={"ignore_unknown_options": True})
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run_cmd(ctx: click.Context, command: tuple[str, ...]) -> None:
    """Run COMMAND in a pseudo-terminal, and optimize its output."""
    settings = ctx.obj.settings
    stdout = click.get_binary_stream("stdout")

    def write(data: bytes) -> None:
        stdout.write(data)
        stdout.flush()

    optimizer = Optimizer(get_options(settings), get_diagnostics_handler(settings))
    buffer_duration = settings.get("input.buffer_duration", int) / 1000
    try:
        return_code = run_command(command, write, optimizer, buffer_duration)
    except OSError as error:
        raise click.ClickException(f"Unable to run {command[0]!r}; {error}") from None
    ctx.exit(return_code)


@cli.command("settings")
@click.option("--write", is_flag=True, help="Write the settings file.")
@click.pass_obj
def settings_cmd(app: AppContext, write: bool) -> None:
    """Show the current settings."""
    settings = app.settings
    if write:
        try:
            write_settings(settings, app.settings_path)
        except OSError as error:
            raise click.ClickException(
                f"Unable to write {str(app.settings_path)!r}; {error}"
            ) from None
        console.print(f"Wrote settings to [cyan]{app.settings_path}[/cyan]")
        return

    table = Table(title=str(app.settings_path))
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_column("Description", style="dim")
    form_settings = settings.schema.get_form_settings(settings.data)
    for row in iter_settings_rows(settings, form_settings):
        table.add_row(*row)
    console.print(table)
