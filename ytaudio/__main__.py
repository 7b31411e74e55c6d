"""
Console entry point: runs the typer app and turns escaped errors into an exit code.
"""

import asyncio
import logging
import sys

import typer
from rich.console import Console

from ytaudio.cli.app import app
from ytaudio.cli.formatters import format_error_with_suggestions
from ytaudio.exceptions import ExtractionExhaustedError, YtAudioError

log = logging.getLogger("ytaudio")
err_console = Console(stderr=True)


def _error_context(error: Exception) -> dict | None:
    if isinstance(error, ExtractionExhaustedError) and error.attempts:
        return {"attempts": error.attempts}
    if not isinstance(error, YtAudioError):
        return {"type": "Unexpected"}
    return None


def main() -> None:
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        # Running jobs are cancelled by JobManager.close() on the way out.
        err_console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(0)
    except Exception as e:
        err_console.print(format_error_with_suggestions(e, _error_context(e)))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
