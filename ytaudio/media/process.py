"""
Runs the external extraction tool as an awaitable, cancellable process handle
that yields parsed progress events followed by a terminal result.
"""

import asyncio
import logging
import re
from collections import deque
from collections.abc import AsyncIterator
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

from ytaudio.exceptions import ProcessLaunchError

from .strategies import ExtractionStrategy

log = logging.getLogger(__name__)

PROGRESS_PATTERN = re.compile(r"\[download\]\s+(\d{1,3}(?:\.\d+)?)%")


def parse_progress(line: str) -> float | None:
    """Extracts the percentage from a '[download]  42.0%' line, if present."""
    match = PROGRESS_PATTERN.search(line)
    if not match:
        return None
    value = float(match.group(1))
    if value > 100.0:
        return None
    return value


@dataclass(frozen=True)
class ExtractionRequest:
    """Everything one invocation of the tool needs."""

    url: str
    output_template: Path
    audio_format: str
    strategy: ExtractionStrategy
    force_ipv4: bool = True


@dataclass(frozen=True)
class ProgressEvent:
    line: str
    percent: float | None = None


@dataclass
class ExtractionResult:
    """Terminal outcome of one process invocation."""

    returncode: int
    output_tail: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    def diagnostic(self, max_lines: int = 5) -> str:
        lines = [line for line in self.output_tail if line.strip()]
        return "\n".join(lines[-max_lines:])


class ExtractionProcess:
    """
    A single, non-restartable run of the extraction tool.

    Usage:
        async with adapter.open(request) as process:
            async for event in process:
                ...
            result = await process.wait()

    Leaving the context before the process exits kills it.
    """

    TAIL_LINES = 50

    def __init__(self, argv: list[str]):
        self.argv = argv
        self._proc: asyncio.subprocess.Process | None = None
        self._tail: deque[str] = deque(maxlen=self.TAIL_LINES)
        self._consumed = False

    async def start(self) -> None:
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ProcessLaunchError(
                f"Could not launch '{self.argv[0]}': {e.strerror or e}"
            ) from e
        except OSError as e:
            raise ProcessLaunchError(f"Could not launch '{self.argv[0]}': {e}") from e
        log.debug(f"Started extraction process pid={self._proc.pid}")

    async def __aenter__(self) -> "ExtractionProcess":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cancel()
        return False

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        if self._consumed:
            raise RuntimeError("Extraction output can only be consumed once.")
        self._consumed = True
        return self._events()

    async def _events(self) -> AsyncIterator[ProgressEvent]:
        if self._proc is None or self._proc.stdout is None:
            raise RuntimeError("Extraction process has not been started.")
        while True:
            raw = await self._proc.stdout.readline()
            if not raw:
                break
            # Progress may be redrawn with carriage returns inside one line.
            for part in raw.decode("utf-8", errors="replace").split("\r"):
                line = part.rstrip()
                if not line:
                    continue
                self._tail.append(line)
                yield ProgressEvent(line=line, percent=parse_progress(line))

    async def wait(self) -> ExtractionResult:
        """Waits for the process to exit, draining any unread output."""
        if self._proc is None:
            raise RuntimeError("Extraction process has not been started.")
        if not self._consumed:
            async for _ in self:
                pass
        returncode = await self._proc.wait()
        return ExtractionResult(returncode=returncode, output_tail=list(self._tail))

    async def cancel(self) -> None:
        """Kills the process if it is still running."""
        if self._proc is None or self._proc.returncode is not None:
            return
        log.debug(f"Killing extraction process pid={self._proc.pid}")
        with suppress(ProcessLookupError):
            self._proc.kill()
        with suppress(ProcessLookupError):
            await self._proc.wait()


class YtDlpAdapter:
    """Builds command lines for yt-dlp and opens process handles for them."""

    def __init__(self, executable: str = "yt-dlp"):
        self.executable = executable

    def build_command(self, request: ExtractionRequest) -> list[str]:
        strategy = request.strategy
        argv = [
            self.executable,
            "--newline",
            "--no-playlist",
            "--no-color",
            "-f",
            strategy.selector,
            "--extract-audio",
            "--audio-format",
            request.audio_format,
            "--socket-timeout",
            str(strategy.socket_timeout),
            "--retries",
            str(strategy.retries),
            "--fragment-retries",
            str(strategy.fragment_retries),
            "-o",
            str(request.output_template),
        ]
        if request.force_ipv4:
            argv.append("--force-ipv4")
        if strategy.credential_source:
            argv.extend(["--cookies-from-browser", strategy.credential_source])
        argv.append(request.url)
        return argv

    def open(self, request: ExtractionRequest) -> ExtractionProcess:
        return ExtractionProcess(self.build_command(request))
