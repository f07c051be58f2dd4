"""
chunkscribe.cli - Typer CLI entry point.

Provides the transcribe and health commands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from chunkscribe import __version__
from chunkscribe.config import resolve_config
from chunkscribe.exceptions import ChunkscribeError
from chunkscribe.export import EXPORT_FORMATS, export_transcript
from chunkscribe.logging import configure_logging
from chunkscribe.messages import render
from chunkscribe.models import ProcessingSteps
from chunkscribe.pipeline.orchestrator import TranscriptionService
from chunkscribe.pipeline.state import PipelineCallbacks
from chunkscribe.transcribe.client import check_health
from chunkscribe.utils import format_duration

app = typer.Typer(
    name="chunkscribe",
    help="Chunked transcription against Whisper-compatible speech-to-text backends.",
    add_completion=False,
)
console = Console()

LOG_STYLES = {
    "info": "dim",
    "success": "green",
    "error": "red",
    "debug": "dim",
}

STATUS_LABELS = {
    "pending": "[dim]Pending[/dim]",
    "inProgress": "[cyan]In progress[/cyan]",
    "completed": "[green]✓ Completed[/green]",
    "error": "[red]Error[/red]",
    "skipped": "[yellow]Skipped[/yellow]",
}


def version_callback(value: bool) -> None:
    if value:
        console.print(f"chunkscribe {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Chunkscribe - chunked transcription against Whisper-compatible backends."""
    pass


def build_steps_table(steps: ProcessingSteps) -> Table:
    table = Table(title="Processing Steps")
    table.add_column("Step", style="cyan")
    table.add_column("Progress", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Details")

    for step in steps.ordered():
        details = step.error or step.skip_reason or ""
        table.add_row(
            render(step.title_key, step.title_params),
            f"{step.progress:.0f}%",
            STATUS_LABELS[step.status],
            f"[red]{escape(details)}[/red]" if step.error else f"[dim]{escape(details)}[/dim]",
        )
    return table


@app.command("transcribe")
def transcribe(
    file: Path = typer.Argument(..., help="Media file to transcribe"),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to chunkscribe.yaml"
    ),
    base_url: str | None = typer.Option(None, "--base-url", "-u", help="Backend base URL"),
    token: str | None = typer.Option(None, "--token", "-t", help="Bearer token"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model id"),
    language: str | None = typer.Option(
        None, "--language", "-l", help="Language code (auto-detect if omitted)"
    ),
    response_format: str | None = typer.Option(
        None, "--format", "-f", help="Backend response format: text, json, verbose_json, srt, vtt"
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Transcript output file"),
    output_format: str | None = typer.Option(
        None, "--output-format", help=f"Output format: {', '.join(EXPORT_FORMATS)}"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """Transcribe a media file chunk by chunk and write the merged transcript."""
    configure_logging(verbose)

    overrides: dict[str, Any] = {
        "backend": {"base_url": base_url, "token": token},
        "options": {"model": model, "language": language, "response_format": response_format},
    }
    try:
        config = resolve_config(config_path, overrides)
    except (FileNotFoundError, ValidationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    progress = Progress(
        TextColumn("[cyan]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )
    task_id = progress.add_task("Starting", total=100)

    def on_log(kind: str, message_key: str, params: dict[str, Any] | None = None) -> None:
        style = LOG_STYLES.get(kind, "")
        message = escape(render(message_key, params))
        progress.console.print(f"[{style}]{message}[/{style}]" if style else message)

    def on_state_update(changes: dict[str, Any]) -> None:
        if "status" in changes and changes["status"]:
            progress.update(
                task_id, description=render(changes["status"], changes.get("status_params"))
            )

    callbacks = PipelineCallbacks(
        on_log=on_log,
        on_state_update=on_state_update,
        on_progress=lambda value: progress.update(task_id, completed=value),
    )
    service = TranscriptionService.from_config(config, callbacks=callbacks)

    with progress:
        try:
            result = asyncio.run(service.process_file(file, config.options, config.backend))
        except ChunkscribeError as e:
            progress.stop()
            if service.run is not None:
                console.print(build_steps_table(service.run.steps))
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(1)

    console.print(build_steps_table(service.run.steps))

    output_path = output or file.with_suffix(f".{output_format or 'txt'}")
    try:
        export_transcript(result, output_path, output_format)
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    end = result.segments[-1].end if result.segments else 0.0
    console.print(
        f"[green]✓[/green] {len(result.segments)} segment(s), "
        f"{format_duration(end)} of audio in {result.processing_time:.1f}s"
    )
    console.print(f"[dim]  {output_path}[/dim]")


@app.command("health")
def health(
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to chunkscribe.yaml"
    ),
    base_url: str | None = typer.Option(None, "--base-url", "-u", help="Backend base URL"),
    token: str | None = typer.Option(None, "--token", "-t", help="Bearer token"),
) -> None:
    """Check that the transcription backend is reachable."""
    try:
        config = resolve_config(config_path, {"backend": {"base_url": base_url, "token": token}})
    except (FileNotFoundError, ValidationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not config.backend.base_url:
        console.print(f"[red]Error: {render('errors.missingBaseUrl')}[/red]")
        raise typer.Exit(1)

    status = asyncio.run(check_health(config.backend.base_url, config.backend.token))
    if status.status == "healthy":
        console.print(f"[green]✓[/green] {status.message}")
        if status.details:
            console.print(f"[dim]{escape(status.details)}[/dim]")
        return

    console.print(f"[red]{escape(status.message)}[/red]")
    if status.details:
        console.print(f"[dim]{escape(status.details)}[/dim]")
    raise typer.Exit(1)
