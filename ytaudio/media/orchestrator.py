"""
Drives the extraction tool through the strategy ladder until one attempt
produces a valid artifact or every strategy has failed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from ytaudio.exceptions import ExtractionExhaustedError
from ytaudio.utils.identifier import artifact_name_for

from .integrity import FileIntegrityChecker
from .process import ExtractionRequest, YtDlpAdapter
from .strategies import ExtractionStrategy

log = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]

EXHAUSTED_MESSAGE = (
    "All extraction strategies failed. The media may be age- or "
    "region-restricted, the host may be blocking automated requests, or the "
    "browser credentials needed to access it may be missing."
)


@dataclass
class AttemptOutcome:
    strategy: ExtractionStrategy
    succeeded: bool
    detail: str = ""


@dataclass
class ExtractionOutcome:
    """The successful result of a full ladder run."""

    artifact_path: Path
    artifact_name: str
    strategy: ExtractionStrategy
    attempts: list[AttemptOutcome] = field(default_factory=list)


class ExtractionOrchestrator:
    """
    Runs the ordered strategy ladder for one (url, identifier, format).

    A non-zero exit moves on to the next strategy. A launch failure is not
    retried: `ProcessLaunchError` propagates immediately.
    """

    def __init__(
        self,
        adapter: YtDlpAdapter,
        downloads_dir: Path,
        strategies: list[ExtractionStrategy],
        force_ipv4: bool = True,
        verify_artifacts: bool = True,
    ):
        if not strategies:
            raise ValueError("At least one extraction strategy is required.")
        self.adapter = adapter
        self.downloads_dir = Path(downloads_dir)
        self.strategies = list(strategies)
        self.force_ipv4 = force_ipv4
        self.verify_artifacts = verify_artifacts

    async def extract(
        self,
        url: str,
        identifier: str,
        fmt: str,
        on_progress: ProgressCallback | None = None,
        on_attempt: Callable[[AttemptOutcome], None] | None = None,
    ) -> ExtractionOutcome:
        """
        Runs strategies in order until one succeeds.

        Raises:
            ProcessLaunchError: The tool could not be started.
            ExtractionExhaustedError: Every strategy failed.
        """
        attempts: list[AttemptOutcome] = []
        for index, strategy in enumerate(self.strategies, start=1):
            log.info(
                f"Extracting '{identifier}' as {fmt} with strategy "
                f"[cyan]{strategy.name}[/cyan] ({index}/{len(self.strategies)})"
            )
            outcome = await self._attempt(url, identifier, fmt, strategy, on_progress)
            attempts.append(outcome)
            if on_attempt:
                on_attempt(outcome)

            if outcome.succeeded:
                name = artifact_name_for(identifier, fmt)
                return ExtractionOutcome(
                    artifact_path=self.downloads_dir / name,
                    artifact_name=name,
                    strategy=strategy,
                    attempts=attempts,
                )
            log.warning(
                f"[yellow]Strategy '{strategy.name}' failed for '{identifier}': "
                f"{outcome.detail}[/yellow]"
            )

        await asyncio.to_thread(self._remove_partials, identifier)
        last_detail = attempts[-1].detail if attempts else ""
        message = EXHAUSTED_MESSAGE
        if last_detail:
            message = f"{message}\nLast error: {last_detail}"
        raise ExtractionExhaustedError(
            message, attempts=[f"{a.strategy.name}: {a.detail}" for a in attempts]
        )

    async def _attempt(
        self,
        url: str,
        identifier: str,
        fmt: str,
        strategy: ExtractionStrategy,
        on_progress: ProgressCallback | None,
    ) -> AttemptOutcome:
        request = ExtractionRequest(
            url=url,
            output_template=self.downloads_dir / f"{identifier}.%(ext)s",
            audio_format=fmt,
            strategy=strategy,
            force_ipv4=self.force_ipv4,
        )
        # Progress is monotonic within one attempt only.
        highest = -1.0
        async with self.adapter.open(request) as process:
            async for event in process:
                if event.percent is None or event.percent <= highest:
                    continue
                highest = event.percent
                if on_progress:
                    await on_progress(event.percent)
            result = await process.wait()

        if not result.succeeded:
            detail = f"exit code {result.returncode}"
            if diagnostic := result.diagnostic(max_lines=2):
                detail = f"{detail}: {diagnostic}"
            return AttemptOutcome(strategy, False, detail)

        artifact = self.downloads_dir / artifact_name_for(identifier, fmt)
        if not artifact.is_file():
            return AttemptOutcome(
                strategy, False, "tool exited cleanly but produced no artifact"
            )

        if self.verify_artifacts and not await asyncio.to_thread(
            FileIntegrityChecker.check_audio, str(artifact)
        ):
            try:
                artifact.unlink()
            except OSError as e:
                log.debug(f"Could not remove invalid artifact '{artifact}': {e}")
            return AttemptOutcome(strategy, False, "artifact failed integrity check")

        return AttemptOutcome(strategy, True)

    def _remove_partials(self, identifier: str) -> None:
        """Removes leftover partial downloads for an identifier."""
        patterns = (f"{identifier}.*.part", f"{identifier}.part", f"{identifier}.*.ytdl")
        for pattern in patterns:
            for leftover in self.downloads_dir.glob(pattern):
                try:
                    leftover.unlink()
                except OSError as e:
                    log.debug(f"Could not remove partial file '{leftover}': {e}")
