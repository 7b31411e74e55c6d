"""
Structured logging for job lifecycle events.
Provides JSON-lines event logs alongside the regular console logger.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that emits each event both as a readable console line and,
    optionally, as one JSON object per line in an event log file.

    Usage:
        logger = StructuredLogger("ytaudio.events", log_dir=Path("logs"))
        logger.info("job_completed", job_id="abc", artifact="x.mp3")
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_console: Enable console output
        """
        self.name = name
        self.enable_console = enable_console
        self._logger = logging.getLogger(name)

        self._json_file = None
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"ytaudio_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
        }

    @property
    def json_enabled(self) -> bool:
        return self._json_file is not None and not self._json_file.closed

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        parts.extend(f"{key}={value}" for key, value in context.items())
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self.json_enabled:
            return
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }
        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"JSON event logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            # Event payloads may contain brackets; keep them out of rich markup.
            self._logger.log(
                level, self._format_message(event, **context), extra={"markup": False}
            )
        self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class JobEventLogger:
    """Specialized logger for job, cache and sweep events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def job_submitted(self, job_id: str, identifier: str, fmt: str, url: str):
        self.logger.info(
            "job_submitted", job_id=job_id, identifier=identifier, format=fmt, url=url
        )

    def cache_hit(self, identifier: str, fmt: str, artifact: str):
        self.logger.info("cache_hit", identifier=identifier, format=fmt, artifact=artifact)

    def job_joined(self, job_id: str, identifier: str, fmt: str):
        self.logger.info("job_joined", job_id=job_id, identifier=identifier, format=fmt)

    def attempt_finished(self, job_id: str, strategy: str, succeeded: bool, detail: str):
        if succeeded:
            self.logger.debug("attempt_succeeded", job_id=job_id, strategy=strategy)
        else:
            self.logger.warning(
                "attempt_failed", job_id=job_id, strategy=strategy, detail=detail
            )

    def job_completed(self, job_id: str, artifact: str, strategy: str, duration_s: float):
        self.logger.info(
            "job_completed",
            job_id=job_id,
            artifact=artifact,
            strategy=strategy,
            duration_s=round(duration_s, 2),
        )

    def job_failed(self, job_id: str, error_type: str, error: str):
        self.logger.error("job_failed", job_id=job_id, error_type=error_type, error=error)

    def artifact_deleted(self, artifact: str, reason: str):
        self.logger.info("artifact_deleted", artifact=artifact, reason=reason)

    def sweep_completed(
        self, examined: int, removed: int, history_removed: int, errors: int, duration_s: float
    ):
        self.logger.info(
            "sweep_completed",
            examined=examined,
            removed=removed,
            history_removed=history_removed,
            errors=errors,
            duration_s=round(duration_s, 2),
        )


def create_event_logger(log_dir: Path | None = None) -> JobEventLogger:
    """Create the job event logger, writing JSON lines when `log_dir` is set."""
    return JobEventLogger(StructuredLogger("ytaudio.events", log_dir=log_dir))
