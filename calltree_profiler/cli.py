"""CLI entry point for the Call-Tree Profiler."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from calltree_profiler.analyzer import (
    DEFAULT_SCHEMA_VERSION,
    AnalysisResult,
    load_and_analyze,
    result_to_dict
)
from calltree_profiler.errors import ProfilerError
from calltree_profiler.render import render_report

app = typer.Typer(
    help="Call-Tree Profiler - Rebuild call trees and cycle costs from subroutine traces",
    no_args_is_help=True
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True
    )


@app.callback(invoke_without_command=True)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Call-Tree Profiler - Rebuild call trees and cycle costs from subroutine traces."""
    _configure_logging(verbose)


def _check_trace(trace: Path) -> None:
    if not trace.exists():
        console.print(f"[red]Error:[/red] Trace file not found: {trace}")
        raise typer.Exit(code=1)

    if not trace.is_file():
        console.print(f"[red]Error:[/red] Path is not a file: {trace}")
        raise typer.Exit(code=1)


def _load(trace: Path, symbols: Optional[Path]) -> AnalysisResult:
    try:
        return load_and_analyze(trace, symbols)
    except ProfilerError as e:
        console.print(f"[red]Error during analysis:[/red] {e}")
        raise typer.Exit(code=1)


def _warn_diagnostics(result: AnalysisResult) -> None:
    for diag in result.diagnostics:
        console.print(f"[yellow]Warning:[/yellow] {diag.kind}: {diag.message}")


@app.command()
def analyze(
    trace: Path = typer.Option(..., "--trace", help="Path to trace-event JSON file"),
    symbols: Optional[Path] = typer.Option(
        None, "--symbols", envvar="CALLTREE_SYMBOLS", help="Path to assembler symbol file"
    ),
    out: Path = typer.Option("analysis.json", "--out", help="Output JSON file path"),
    schema_version: str = typer.Option(DEFAULT_SCHEMA_VERSION, "--schema-version", help="Schema version to emit in JSON"),
):
    """Analyze a trace and write the call tree and function table as JSON."""
    _check_trace(trace)

    console.print(f"[blue]Analyzing trace:[/blue] {trace}")
    console.print(f"[blue]Symbols:[/blue] {symbols}")
    console.print(f"[blue]Output file:[/blue] {out}")
    console.print(f"[blue]Schema version:[/blue] {schema_version}")

    result = _load(trace, symbols)
    document = result_to_dict(
        result,
        trace_path=str(trace),
        symbols_path=str(symbols) if symbols is not None else None,
        schema_version=schema_version
    )

    try:
        with open(out, "w") as f:
            json.dump(document, f, indent=2)
    except OSError as e:
        console.print(f"[red]Error writing output:[/red] {e}")
        raise typer.Exit(code=1)

    _warn_diagnostics(result)
    console.print(f"[green]✓[/green] Analysis complete: {out}")
    console.print(
        f"[green]✓[/green] {result.total_cycles:,} cycles across "
        f"{document['function_count']} invocation(s)"
    )


@app.command()
def report(
    trace: Path = typer.Option(..., "--trace", help="Path to trace-event JSON file"),
    symbols: Optional[Path] = typer.Option(
        None, "--symbols", envvar="CALLTREE_SYMBOLS", help="Path to assembler symbol file"
    ),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=0, help="Deepest call level to show"),
    top_n: int = typer.Option(10, "--top-n", min=1, help="Number of functions to list"),
    min_pct: float = typer.Option(0.0, "--min-pct", min=0.0, help="Hide calls below this share of total cycles"),
    instructions: bool = typer.Option(True, "--instructions/--no-instructions", help="Show per-instruction tables"),
):
    """Print the call tree and function table to the terminal."""
    _check_trace(trace)

    result = _load(trace, symbols)
    _warn_diagnostics(result)
    render_report(
        result,
        console,
        max_depth=max_depth,
        top_n=top_n,
        min_pct=min_pct,
        show_instructions=instructions
    )


if __name__ == "__main__":
    app()
