"""
Defines the operator console for the service using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from ytaudio import __version__
from ytaudio.core.job_manager import JobManager
from ytaudio.models.config import SUPPORTED_FORMATS
from ytaudio.models.records import JobStatus, SubmitResult
from ytaudio.storage.config_manager import ConfigManager
from ytaudio.utils.formatting import format_duration, format_size

from .formatters import (
    print_cache_table,
    print_config,
    print_history_table,
    print_job,
    print_sweep_report,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("ytaudio")

app = typer.Typer(
    name="ytaudio",
    help=(
        "Turns video links into cached audio downloads. Use 'ytaudio"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


POLL_INTERVAL_SECONDS = 0.5


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "ytaudio"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_manager() -> JobManager:
    config = ConfigManager(CONFIG_FILE).load_config()
    return JobManager(config)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """ytaudio operator console"""
    if version:
        console.print(f"[bold]ytaudio[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("ytaudio").setLevel(log_level)

    if show_config:
        config = ConfigManager(CONFIG_FILE).load_config()
        source = CONFIG_FILE if CONFIG_FILE.is_file() else Path("<defaults>")
        print_config(source, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    ConfigManager(CONFIG_FILE).save_new_config()
    console.print(
        f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]"
    )
    console.print("Ready! Try: [cyan]ytaudio download <URL> -f mp3[/cyan]")


@app.command(name="download")
def download_command(
    url: str = typer.Argument(..., help="A video page, share or embed link."),
    fmt: str = typer.Option(
        "mp3",
        "-f",
        "--format",
        help=f"Audio format: {', '.join(SUPPORTED_FORMATS)}.",
    ),
):
    """Submit a request and follow it until it finishes."""

    async def _download_async():
        manager = _load_manager()
        try:
            await manager.start(background_sweeps=False)
            started = time.monotonic()
            await _follow(manager, await manager.submit(url, fmt), started)
        finally:
            await manager.close()

    asyncio.run(_download_async())


async def _follow(manager: JobManager, result: SubmitResult, started: float) -> None:
    """Renders a live progress bar until the job reaches a terminal state."""
    if result.cached:
        console.print(
            f"[green]✓ Served from cache:[/green] {result.title} "
            f"→ [cyan]{result.download_path}[/cyan]"
        )
        return
    if result.deduplicated:
        console.print(f"[dim]Joined running job {result.job_id}.[/dim]")

    job = None
    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>5.1f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task(f"Job {result.job_id[:8]}", total=100)
        while True:
            job = await manager.get_status(result.job_id)
            if job is None or job.is_terminal():
                break
            if job.title:
                progress.update(task_id, description=job.title)
            progress.update(task_id, completed=job.progress)
            await asyncio.sleep(POLL_INTERVAL_SECONDS)

    if job is None:
        console.print("[red]✗ The job record is no longer available.[/red]")
        raise typer.Exit(code=1)
    if job.status is JobStatus.ERROR:
        print_job(job)
        raise typer.Exit(code=1)

    artifact = manager.downloads_dir / job.artifact_name
    size = artifact.stat().st_size if artifact.is_file() else 0
    console.print(
        f"[green]✓ Completed:[/green] {job.title} "
        f"→ [cyan]{job.download_path}[/cyan] "
        f"[dim]({format_size(size)} in "
        f"{format_duration(time.monotonic() - started)})[/dim]"
    )


@app.command()
def status(job_id: str = typer.Argument(..., help="The job identifier.")):
    """Show the state of a job."""

    async def _status_async():
        manager = _load_manager()
        try:
            job = await manager.get_status(job_id)
        finally:
            await manager.close()
        if job is None:
            console.print(f"[yellow]Job '{job_id}' not found.[/yellow]")
            raise typer.Exit(code=1)
        print_job(job)

    asyncio.run(_status_async())


@app.command()
def history():
    """List completed downloads, most recent first."""

    async def _history_async():
        manager = _load_manager()
        try:
            entries = await manager.list_history()
        finally:
            await manager.close()
        print_history_table(entries)

    asyncio.run(_history_async())


@app.command()
def cache():
    """Inspect cache entries and their remaining lifetime."""

    async def _cache_async():
        manager = _load_manager()
        try:
            views = await manager.inspect_cache()
        finally:
            await manager.close()
        print_cache_table(views)

    asyncio.run(_cache_async())


@app.command()
def delete(
    artifact_name: str = typer.Argument(..., help="Artifact file name, e.g. ID.mp3"),
):
    """Delete an artifact with its cache entry and history."""

    async def _delete_async():
        manager = _load_manager()
        try:
            removed = await manager.delete(artifact_name)
        finally:
            await manager.close()
        if removed:
            console.print(f"[green]✓ Deleted '{artifact_name}'.[/green]")
        else:
            console.print(f"[dim]Nothing to delete for '{artifact_name}'.[/dim]")

    asyncio.run(_delete_async())


@app.command()
def sweep():
    """Run one expiry sweep now."""

    async def _sweep_async():
        manager = _load_manager()
        try:
            await manager.start(background_sweeps=False)
            report = await manager.sweep()
        finally:
            await manager.close()
        print_sweep_report(report)

    asyncio.run(_sweep_async())
