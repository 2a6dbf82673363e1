"""Operator commands for the redaction pipeline.

    callredact status REC-123        show a recording's redaction record
    callredact partial               list recordings left in partial-replace
    callredact recover REC-123       rename a surviving temp copy into place
    callredact scrub notes.txt       pattern-scrub free text
    callredact check-remote          test the SFTP connection
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from callredact import __version__
from callredact.config import get_settings
from callredact.db.session import create_engine, create_session_factory
from callredact.detection import scrub_text
from callredact.exceptions import RedactionError
from callredact.logging import configure
from callredact.pipeline import RedactionPipeline, create_pipeline
from callredact.records import RedactionRecord, RedactionRecordStore
from callredact.remote import SftpStorage

app = typer.Typer(
    name="callredact",
    help="Callredact - sensitive-data redaction for call recordings.",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def open_store() -> RedactionRecordStore:
    settings = get_settings()
    return RedactionRecordStore(
        create_session_factory(create_engine(settings)),
        max_retries=settings.persist_max_retries,
        backoff_delays=settings.persist_backoff_seconds,
    )


def build_pipeline() -> RedactionPipeline:
    return create_pipeline(get_settings())


def _record_dict(record: RedactionRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude={"sanitized_text"})


def version_callback(value: bool) -> None:
    """Handle --version flag."""
    if value:
        print(f"callredact {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Callredact - sensitive-data redaction for call recordings.

    Settings come from environment variables or a .env file
    (DATABASE_URL, SFTP_HOST, CALLREDACT_* and friends).
    """
    configure("callredact-cli", stream=sys.stderr)


@app.command()
def status(
    recording_id: Annotated[str, typer.Argument(help="Recording identifier.")],
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
) -> None:
    """Show the redaction record for a recording."""
    record = asyncio.run(open_store().get(recording_id))
    if record is None:
        error_console.print(f"[red]No redaction record for {recording_id}[/red]")
        raise typer.Exit(code=1)

    if as_json:
        print(json.dumps(_record_dict(record), indent=2))
        return

    status_color = {
        "completed": "green",
        "not_needed": "dim",
        "processing": "yellow",
        "failed": "red",
    }.get(record.status.value if record.status else "", "")
    status_text = record.status.value if record.status else "none"
    console.print(f"Recording: {record.recording_id}")
    console.print(f"  Status: [{status_color}]{status_text}[/{status_color}]")
    console.print(f"  Redacted: {record.redacted}  Attempts: {record.attempts}")
    if record.segments:
        console.print(f"  Segments: {len(record.segments)}")
    if record.error:
        console.print(f"  Error ({record.error_kind}): {record.error}")
    if record.is_partial_replace:
        console.print(
            f"  [bold red]Original deleted; redacted copy at {record.remote_temp_path}[/bold red]"
        )


@app.command()
def partial(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows.")] = 100,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
) -> None:
    """List recordings whose original was deleted before the rename landed."""
    records = asyncio.run(open_store().list_partial_replacements(limit=limit))

    if as_json:
        print(json.dumps([_record_dict(r) for r in records], indent=2))
        return

    if not records:
        console.print("No partial replacements.")
        return

    table = Table()
    table.add_column("Recording")
    table.add_column("Target")
    table.add_column("Temp copy")
    table.add_column("Updated")
    for record in records:
        table.add_row(
            record.recording_id,
            record.remote_target_path or "",
            record.remote_temp_path or "",
            record.updated_at.isoformat(timespec="seconds"),
        )
    console.print(table)


@app.command()
def recover(
    recording_id: Annotated[str, typer.Argument(help="Recording identifier.")],
) -> None:
    """Rename the surviving redacted copy onto a deleted original."""

    async def _recover() -> RedactionRecord:
        pipeline = build_pipeline()
        return await pipeline.recover_partial_replace(recording_id)

    try:
        record = asyncio.run(_recover())
    except RedactionError as e:
        error_console.print(f"[red]Recovery failed ({e.kind}): {e}[/red]")
        raise typer.Exit(code=1) from None

    console.print(
        f"Recovered {record.recording_id}: {record.remote_target_path} [green]✓[/green]"
    )


@app.command()
def scrub(
    source: Annotated[
        str,
        typer.Argument(help="Text file to scrub, or - for stdin."),
    ] = "-",
) -> None:
    """Pattern-scrub free text without word timestamps and print it."""
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    print(scrub_text(text, get_settings().redaction_marker), end="")


@app.command("check-remote")
def check_remote(
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
) -> None:
    """Test the SFTP connection and base path."""
    try:
        storage = SftpStorage.from_settings(get_settings())
    except ValueError as e:
        error_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2) from None

    result = asyncio.run(storage.test_connection())

    if as_json:
        print(json.dumps(result, indent=2))
    elif result["success"]:
        exists = "present" if result["base_path_exists"] else "[yellow]missing[/yellow]"
        console.print(f"Remote: {storage.host} [green]✓[/green]  base path {exists}")
    else:
        console.print(f"Remote: {storage.host} [red]✗[/red]")
        console.print(f"[red]Error: {result['error']}[/red]")

    if not result["success"]:
        raise typer.Exit(code=4)


def cli() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    cli()
