"""
vox.cli - Typer CLI entry point.

Provides the transcribe, doctor and init subcommands.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from vox import __version__
from vox.config import CONFIG_FILENAME, VoxConfig, load_config, resolve_api_key, write_config
from vox.exceptions import DependencyError, VoxError
from vox.logging import configure_logging
from vox.models import ProgressReport, ValidationStatus
from vox.pipeline import Pipeline
from vox.transcribe.quality import format_quality_report
from vox.utils import format_duration
from vox.validation import backend_available, check_ffmpeg

app = typer.Typer(
    name="vox",
    help="Transcribe the audio of video files.\n\n"
    "Extracts audio (in-process, falling back to FFmpeg), transcribes it with "
    "on-device Whisper (falling back to the cloud Whisper API) and writes the "
    "transcript atomically as txt, srt or json.",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"vox {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Vox - resilient audio transcription for video files."""
    pass


def print_error(error: VoxError) -> None:
    console.print(f"[red]Error: {error.message}[/red]")
    if error.hint:
        console.print(f"[dim]  {error.hint}[/dim]")


@app.command("transcribe")
def transcribe(
    input_file: Path = typer.Argument(..., help="Video or audio file to transcribe"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Output file (default: input name with format extension)"
    ),
    fmt: str | None = typer.Option(None, "--format", "-f", help="Output format: txt, srt or json"),
    language: str | None = typer.Option(
        None, "--language", "-l", help="Preferred language, e.g. en-US or de"
    ),
    force_cloud: bool = typer.Option(
        False, "--force-cloud", help="Skip on-device engines and use the cloud Whisper API"
    ),
    api_key: str | None = typer.Option(None, "--api-key", help="OpenAI API key for cloud transcription"),
    timestamps: bool = typer.Option(False, "--timestamps", "-t", help="Add timestamps to txt output"),
    no_backup: bool = typer.Option(False, "--no-backup", help="Do not back up an existing output file"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Path to a vox.yaml file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Transcribe a video file and save the transcript."""
    configure_logging(verbose)

    overrides = {
        "transcription": {"force_cloud": True if force_cloud else None},
        "remote": {"api_key": api_key},
        "output": {
            "format": fmt,
            "include_timestamps": True if timestamps else None,
            "enable_backup": False if no_backup else None,
        },
    }

    try:
        config = load_config(config_file, overrides)
        pipeline = Pipeline(config, api_key=api_key)
    except VoxError as e:
        print_error(e)
        raise typer.Exit(1)

    console.print(f"[cyan]Transcribing {input_file.name}...[/cyan]")

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        extract_task = progress.add_task("Extracting audio", total=1.0)
        transcribe_task = progress.add_task("Transcribing", total=1.0, start=False)

        def on_extract(report: ProgressReport) -> None:
            progress.update(extract_task, completed=report.fraction, description=report.message or "Extracting audio")

        def on_transcribe(report: ProgressReport) -> None:
            progress.start_task(transcribe_task)
            progress.update(transcribe_task, completed=report.fraction, description=report.message or "Transcribing")

        try:
            outcome = pipeline.run(
                input_file,
                output_path=output,
                language=language,
                on_extract=on_extract,
                on_transcribe=on_transcribe,
            )
        except VoxError as e:
            progress.stop()
            print_error(e)
            raise typer.Exit(1)

    result = outcome.result
    table = Table(title="Transcription")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Engine", result.engine.value)
    table.add_row("Language", result.language)
    table.add_row("Duration", format_duration(result.duration))
    table.add_row("Segments", str(len(result.segments)))
    table.add_row("Words", str(result.word_count))
    table.add_row("Confidence", f"{result.confidence:.0%}")
    if result.audio_format is not None:
        table.add_row("Audio", result.audio_format.description)
    console.print(table)

    if outcome.assessment.warnings or outcome.assessment.recommendations:
        console.print(f"[yellow]{format_quality_report(outcome.assessment)}[/yellow]")

    confirmation = outcome.confirmation
    if confirmation.report.status is ValidationStatus.FAILED:
        console.print(f"[red]✗ {confirmation.message}[/red]")
        raise typer.Exit(1)
    if confirmation.report.status is ValidationStatus.WARNING:
        console.print(f"[yellow]⚠ {confirmation.message}[/yellow]")
    else:
        console.print(f"[green]✓[/green] {confirmation.message}")


@app.command("doctor")
def run_doctor(
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Path to a vox.yaml file"),
) -> None:
    """Check dependencies and environment setup."""
    console.print("[cyan]Running preflight checks...[/cyan]\n")

    try:
        config = load_config(config_file)
    except VoxError as e:
        print_error(e)
        raise typer.Exit(1)

    table = Table(title="Dependency Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Version/Details")

    ffmpeg_ok = True
    try:
        versions = check_ffmpeg(config.extraction.ffmpeg_path)
        table.add_row("FFmpeg", "✓ Installed", versions.get("ffmpeg_version", "unknown"))
    except DependencyError as e:
        table.add_row("FFmpeg", "✗ Missing", e.install_hint or "")
        ffmpeg_ok = False

    if backend_available("av"):
        table.add_row("PyAV", "✓ Installed", "in-process extraction")
    else:
        table.add_row("PyAV", "— Missing", "extraction will use FFmpeg")

    local_engines = 0
    for backend in config.transcription.backends:
        if backend_available(backend):
            table.add_row(f"Whisper ({backend})", "✓ Installed", config.transcription.model)
            local_engines += 1
        else:
            table.add_row(f"Whisper ({backend})", "✗ Missing", f"pip install {backend}-whisper")

    has_key = resolve_api_key(config) is not None
    table.add_row(
        "Cloud API key",
        "✓ Configured" if has_key else "— Not set",
        "" if has_key else "Set OPENAI_API_KEY to enable cloud fallback",
    )

    console.print(table)

    if ffmpeg_ok and (local_engines or has_key):
        console.print("\n[green]✓ All checks passed[/green]")
    else:
        console.print("\n[yellow]⚠ Some checks failed[/yellow]")
        console.print("[dim]Fix the issues above before transcribing[/dim]")
        raise typer.Exit(1)


@app.command("init")
def init_config(
    path: Path = typer.Option(Path(CONFIG_FILENAME), "--path", "-p", help="Where to write the config"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
) -> None:
    """Write a vox.yaml with the default settings."""
    if path.exists() and not force:
        console.print(f"[red]Error: {path} already exists[/red]")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    write_config(VoxConfig(), path)
    console.print(f"[green]✓[/green] Wrote default configuration to {path}")
