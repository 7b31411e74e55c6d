"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ytaudio.models.records import CacheView, HistoryEntry, Job, JobStatus
from ytaudio.models.stats import SweepReport
from ytaudio.utils.formatting import format_duration, format_timestamp

STATUS_STYLES = {
    JobStatus.PROCESSING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.ERROR: "red",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "RequestValidationError": [
            "• Provide a URL and one of the supported formats (-f).",
        ],
        "ResolutionError": [
            "• Use a full watch, share (youtu.be), shorts or embed link.",
        ],
        "ProcessLaunchError": [
            "• Make sure yt-dlp is installed and on your PATH.",
            "• Or set `ytdlp_path` in the configuration file.",
        ],
        "ExtractionExhaustedError": [
            "• The media may be age- or region-restricted.",
            "• Log in to the site in one of the configured browsers.",
            "• Update yt-dlp; hosts change frequently.",
        ],
        "StoreUnavailableError": [
            "• The store database may be locked or on a read-only disk.",
            "• Please try again in a moment.",
        ],
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `ytaudio init --force` to recreate it with defaults.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_job(job: Job):
    """Displays a single job record."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    style = STATUS_STYLES.get(job.status, "white")
    table.add_row("Job:", job.id)
    table.add_row("Status:", f"[{style}]{job.status.value}[/{style}]")
    table.add_row("Progress:", f"{job.progress:.1f}%")
    table.add_row("Identifier:", f"{job.identifier} ({job.format})")
    if job.title:
        table.add_row("Title:", Text(job.title))
    if job.download_path:
        table.add_row("Download:", job.download_path)
    if job.cached:
        table.add_row("Cached:", "[green]yes[/green]")
    if job.error_detail:
        table.add_row("Error:", Text(job.error_detail, style="red"))
    table.add_row("Created:", format_timestamp(job.created_at))
    console.print(table)


def print_history_table(entries: list[HistoryEntry]):
    """Displays the history ledger, most recent first."""
    console = Console()
    if not entries:
        console.print("[dim]History is empty.[/dim]")
        return

    table = Table(title="History", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("When", style="dim", no_wrap=True)
    table.add_column("Title")
    table.add_column("Format", justify="center")
    table.add_column("Artifact", style="green")
    for entry in entries:
        table.add_row(
            format_timestamp(entry.timestamp),
            Text(entry.title),
            entry.format,
            entry.artifact_name,
        )
    console.print(table)


def print_cache_table(views: list[CacheView]):
    """Displays the cache-inspection view."""
    console = Console()
    if not views:
        console.print("[dim]Cache is empty.[/dim]")
        return

    table = Table(title="Cache", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Identifier", no_wrap=True)
    table.add_column("Format", justify="center")
    table.add_column("Title")
    table.add_column("File", justify="center")
    table.add_column("Age", justify="right")
    table.add_column("TTL left", justify="right")
    for view in views:
        table.add_row(
            view.identifier,
            view.format,
            Text(view.title),
            "[green]✓[/green]" if view.artifact_exists else "[red]✗[/red]",
            format_duration(view.age_seconds),
            format_duration(view.remaining_ttl_seconds),
        )
    console.print(table)


def print_sweep_report(report: SweepReport):
    """Displays the outcome of a sweep."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column(justify="right")
    table.add_row("Entries examined:", str(report.entries_examined))
    table.add_row("Expired removed:", str(report.expired_removed))
    table.add_row("Missing removed:", str(report.missing_removed))
    table.add_row("Orphans removed:", str(report.orphans_removed))
    table.add_row("History removed:", str(report.history_removed))
    errors_style = "red" if report.errors else "green"
    table.add_row("Errors:", f"[{errors_style}]{report.errors}[/{errors_style}]")
    console.print(Panel(table, title="Sweep", border_style="cyan", expand=False))
