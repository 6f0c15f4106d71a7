"""CLI entry point for pluton."""

import logging
import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor

import click
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pluton import __version__
from pluton.config import AnalyzerConfig, detect_anchor_version, detect_overflow_checks
from pluton.detectors.base import SEVERITY_ORDER, SEVERITY_RANK
from pluton.engine import AnalysisEngine
from pluton.errors import InvalidInputSet, PlutonError
from pluton.github_client import GitHubClient, is_github_url
from pluton.registry import DetectorRegistry
from pluton.report import render
from pluton.walker import iter_sources

console = Console()
err_console = Console(stderr=True)

BANNER = """[bold purple]
  ___ _      _
 | _ \\ |_  _| |_ ___ _ _
 |  _/ | || |  _/ _ \\ ' \\
 |_| |_|\\_,_|\\__\\___/_||_|
[/bold purple]
[dim]Static analyzer for Solana / Anchor programs[/dim]
"""

SEVERITY_STYLES = {
    "Critical": "bold red",
    "High": "red",
    "Medium": "yellow",
    "Low": "green",
    "Warning": "yellow",
    "Info": "blue",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="pluton")
def cli():
    """pluton: static analyzer for Solana / Anchor programs."""
    pass


@cli.command()
@click.argument("target")
@click.option("--format", "output_format", type=click.Choice(["terminal", "json", "markdown"]),
              default="terminal", help="Output format")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file path")
@click.option("--workers", "-w", type=click.IntRange(min=1), help="Files analyzed in parallel")
@click.option("--overflow-checks/--no-overflow-checks", default=None,
              help="Override overflow-checks detection from Cargo.toml")
@click.option("--fail-on", type=click.Choice(list(SEVERITY_ORDER), case_sensitive=False),
              help="Exit with code 2 when a finding of this severity or worse exists")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def scan(target, output_format, output, workers, overflow_checks, fail_on, verbose):
    """Analyze an Anchor program for vulnerability patterns.

    TARGET can be a local directory, a single .rs file or a GitHub repository URL.
    """
    _configure_logging(verbose)
    err_console.print(BANNER)

    config = AnalyzerConfig.from_env()
    if workers:
        config.workers = workers

    try:
        sources, anchor_version, detected_overflow = _load_sources(target, config)
        config.overflow_checks = detected_overflow if overflow_checks is None else overflow_checks
        engine = AnalysisEngine(config)
        report = _run(engine, sources, target, anchor_version)
    except PlutonError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    _output_report(report, output_format, output)

    if fail_on:
        threshold = SEVERITY_RANK[fail_on.capitalize()]
        if any(SEVERITY_RANK[f.severity] <= threshold for f in report.findings):
            sys.exit(2)


@cli.command()
def detectors():
    """List the registered detectors."""
    table = Table(title="Registered Detectors", box=box.ROUNDED, title_style="bold purple")
    table.add_column("ID", style="bold", no_wrap=True)
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Applies to", style="dim")
    table.add_column("Name")

    for detector in DetectorRegistry():
        style = SEVERITY_STYLES.get(detector.default_severity, "white")
        table.add_row(
            detector.id,
            detector.category,
            f"[{style}]{detector.default_severity}[/{style}]",
            ", ".join(sorted(detector.applies_to)),
            detector.name,
        )
    console.print(table)


def _load_sources(target: str, config: AnalyzerConfig):
    """Return ``(sources, anchor_version, overflow_checks)`` for a target."""
    if is_github_url(target):
        err_console.print(f"[bold]Analyzing GitHub repository:[/bold] {target}")
        with err_console.status("[bold purple]Fetching source files...[/bold purple]"):
            files = GitHubClient().fetch_repo_files(target, config)
        if not files:
            raise InvalidInputSet("No Rust files found in repository.")
        err_console.print(f"[dim]Fetched {len(files)} Rust files[/dim]")
        return sorted(files.items()), None, False

    target_path = os.path.abspath(target)
    if not os.path.exists(target_path):
        raise InvalidInputSet(f"Path not found: {target_path}")
    err_console.print(f"[bold]Analyzing local path:[/bold] {target_path}")
    sources = list(iter_sources(target_path, config))
    if not sources:
        raise InvalidInputSet(f"No Rust files found under {target_path}")
    return sources, detect_anchor_version(target_path), detect_overflow_checks(target_path)


def _run(engine: AnalysisEngine, sources, target: str, anchor_version):
    """Run the engine off the main thread so Ctrl-C cancels cleanly."""
    cancel = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as runner:
        future = runner.submit(engine.analyze, sources, cancel, target, anchor_version)
        try:
            return future.result()
        except KeyboardInterrupt:
            cancel.set()
            err_console.print("[yellow]Cancelling: waiting for files in progress...[/yellow]")
            return future.result()


def _output_report(report, output_format: str, output_path):
    """Output the analysis report in the specified format."""
    result = render(report, output_format)

    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(result)
        err_console.print(f"[green]Report saved to {output_path}[/green]")
    else:
        click.echo(result)


def main():
    cli()


if __name__ == "__main__":
    main()
