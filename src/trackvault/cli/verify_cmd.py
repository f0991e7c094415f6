"""CLI command for checking library integrity.

Usage:
    trackvault verify
    trackvault verify --library-dir static/gpx --json
    trackvault verify --prune --grace-seconds 60
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import typer

from trackvault.config import settings
from trackvault.core.errors import StorageFailure
from trackvault.library import IntegrityReport, LibraryManager
from trackvault.library.manager import DEFAULT_PRUNE_GRACE_SECONDS
from trackvault.observability import LogContext, configure_logging

if TYPE_CHECKING:
    from rich.console import Console

app = typer.Typer(help="Check the library document against the blob directories")


@app.callback(invoke_without_command=True)
def verify(
    library_dir: Path | None = typer.Option(
        None,
        "--library-dir",
        "-d",
        help="Library directory (defaults to the configured one)",
    ),
    prune: bool = typer.Option(
        False,
        "--prune",
        help="Delete orphaned blobs older than the grace period",
    ),
    grace_seconds: float = typer.Option(
        DEFAULT_PRUNE_GRACE_SECONDS,
        "--grace-seconds",
        help="Minimum age of an orphan before --prune deletes it",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the report as JSON",
    ),
) -> None:
    """Report records whose blobs are missing and blobs no record references.

    Exits with code 1 when the library is inconsistent or the document
    cannot be read.
    """
    import orjson
    from rich.console import Console

    console = Console()
    configure_logging(json_format=settings.env != "dev", level=settings.log_level)

    config = settings.model_copy(update={"library_dir": library_dir}) if library_dir else settings
    manager = LibraryManager.from_settings(config)

    try:
        with LogContext(request_id="cli-verify"):
            report = asyncio.run(manager.verify(prune=prune, grace_seconds=grace_seconds))
    except StorageFailure as e:
        console.print(f"[red]Cannot verify library:[/red] {e.text}")
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(orjson.dumps(report.to_dict(), option=orjson.OPT_INDENT_2).decode())
    else:
        _print_report(report, config.library_dir, console)

    if not report.ok:
        raise typer.Exit(code=1)


def _print_report(report: IntegrityReport, library_dir: Path, console: Console) -> None:
    console.print(f"[blue]Library:[/blue] {library_dir} ({report.records} records)")

    for record_id, filename in report.missing_tracks:
        console.print(f"  [red]Missing track:[/red] {filename} (record {record_id})")
    for record_id, image in report.missing_images:
        console.print(f"  [red]Missing image:[/red] {image} (record {record_id})")
    for name in report.orphan_tracks:
        console.print(f"  [yellow]Orphan track:[/yellow] {name}")
    for name in report.orphan_images:
        console.print(f"  [yellow]Orphan image:[/yellow] {name}")
    for name in report.pruned_tracks:
        console.print(f"  [green]Pruned track:[/green] {name}")
    for name in report.pruned_images:
        console.print(f"  [green]Pruned image:[/green] {name}")

    console.print()
    if report.ok:
        console.print("[green]Library is consistent[/green]")
    else:
        console.print("[bold]Summary:[/bold]")
        console.print(f"  Missing: {len(report.missing_tracks) + len(report.missing_images)}")
        console.print(f"  Orphans: {len(report.orphan_tracks) + len(report.orphan_images)}")
        console.print(f"  Pruned:  {len(report.pruned_tracks) + len(report.pruned_images)}")
