"""
Periodic reconciliation of cache entries, history and artifact files against
the TTL policy.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path

from ytaudio.exceptions import StoreUnavailableError
from ytaudio.models.config import SUPPORTED_FORMATS
from ytaudio.models.stats import SweepReport
from ytaudio.storage.cache import CacheStore
from ytaudio.storage.history import HistoryLedger
from ytaudio.utils.identifier import parse_artifact_name
from ytaudio.utils.structured_logger import JobEventLogger

log = logging.getLogger(__name__)


def delete_artifact_file(path: Path) -> bool:
    """Deletes an artifact file. Returns False if it was already gone."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


class ExpirySweeper:
    """
    Removes every cache entry whose last access is older than the TTL or whose
    artifact has vanished, together with its file and history entries. Artifact
    files with no cache entry that are older than the TTL are removed as well.

    Keys reported by `is_busy` are being extracted and are left alone.
    """

    def __init__(
        self,
        cache: CacheStore,
        history: HistoryLedger,
        ttl_seconds: int,
        interval_seconds: int = 3600,
        initial_delay_seconds: int = 10,
        clock: Callable[[], float] = time.time,
        events: JobEventLogger | None = None,
        is_busy: Callable[[str, str], bool] | None = None,
    ):
        self.cache = cache
        self.history = history
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._clock = clock
        self._events = events
        self._is_busy = is_busy or (lambda identifier, fmt: False)
        self._sweep_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def downloads_dir(self) -> Path:
        return self.cache.downloads_dir

    async def start(self) -> None:
        """Starts the periodic background sweep task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._sweep_loop())
            log.debug("Started expiry sweeper task.")

    async def stop(self) -> None:
        """Stops the background sweep task gracefully."""
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            log.debug("Stopped expiry sweeper task.")
        self._task = None

    async def _sweep_loop(self) -> None:
        """Runs one sweep shortly after startup, then one per interval."""
        delay = self.initial_delay_seconds
        while True:
            try:
                await asyncio.sleep(delay)
                await self.sweep_once()
            except asyncio.CancelledError:
                log.debug("Expiry sweeper task cancelled.")
                break
            except Exception as e:
                log.warning(f"Error in expiry sweep: {e}")
            delay = self.interval_seconds

    def _is_expired(self, last_accessed: float, now: float) -> bool:
        return now - last_accessed > self.ttl_seconds

    async def sweep_once(self) -> SweepReport:
        """Performs one full pass over the cache and the downloads directory."""
        async with self._sweep_lock:
            report = SweepReport(started_at=self._clock())
            now = self._clock()
            known_names: set[str] = set()

            for entry in await self.cache.entries():
                report.entries_examined += 1
                known_names.add(entry.artifact_name)
                if self._is_busy(entry.identifier, entry.format):
                    continue
                path = self.cache.artifact_path(entry.identifier, entry.format)
                expired = self._is_expired(entry.last_accessed, now)
                missing = not path.is_file()
                if not expired and not missing:
                    continue

                try:
                    # An access since enumeration means the entry is live again.
                    current = await self.cache.peek(entry.identifier, entry.format)
                    if current is None:
                        continue
                    if current.last_accessed != entry.last_accessed and not missing:
                        continue
                    await asyncio.to_thread(delete_artifact_file, path)
                    await self.cache.evict(entry.identifier, entry.format)
                except (OSError, StoreUnavailableError) as e:
                    report.errors += 1
                    log.warning(
                        f"[yellow]Sweep could not remove '{entry.artifact_name}': "
                        f"{e}[/yellow]"
                    )
                    continue

                if expired:
                    report.expired_removed += 1
                else:
                    report.missing_removed += 1
                report.removed_artifacts.append(entry.artifact_name)

            for path in await asyncio.to_thread(self._find_orphans, known_names, now):
                # A file being written by a running extraction has no entry yet.
                if self._is_busy(*parse_artifact_name(path.name)):
                    continue
                try:
                    if await asyncio.to_thread(delete_artifact_file, path):
                        report.orphans_removed += 1
                        report.removed_artifacts.append(path.name)
                except OSError as e:
                    report.errors += 1
                    log.warning(
                        f"[yellow]Sweep could not remove orphan '{path.name}': "
                        f"{e}[/yellow]"
                    )

            if report.removed_artifacts:
                try:
                    report.history_removed = (
                        await self.history.remove_by_artifact_names(
                            report.removed_artifacts
                        )
                    )
                except StoreUnavailableError as e:
                    report.errors += 1
                    log.warning(f"[yellow]Sweep could not prune history: {e}[/yellow]")

            try:
                await self.cache.store.purge_expired()
            except StoreUnavailableError as e:
                report.errors += 1
                log.warning(f"[yellow]Sweep could not purge expired keys: {e}[/yellow]")

            report.finished_at = self._clock()

        if report.total_removed:
            log.info(
                f"Sweep removed {report.total_removed} artifacts "
                f"({report.expired_removed} expired, {report.missing_removed} missing, "
                f"{report.orphans_removed} orphaned)."
            )
        else:
            log.debug(f"Sweep examined {report.entries_examined} entries; nothing to do.")
        if self._events:
            self._events.sweep_completed(
                examined=report.entries_examined,
                removed=report.total_removed,
                history_removed=report.history_removed,
                errors=report.errors,
                duration_s=report.duration_seconds,
            )
        return report

    def _find_orphans(self, known_names: set[str], now: float) -> list[Path]:
        """Lists stale artifact files that no cache entry accounts for."""
        if not self.downloads_dir.is_dir():
            return []
        orphans = []
        for path in self.downloads_dir.iterdir():
            if path.name in known_names or not path.is_file():
                continue
            parsed = parse_artifact_name(path.name)
            if parsed is None or parsed[1] not in SUPPORTED_FORMATS:
                continue
            try:
                if self._is_expired(path.stat().st_mtime, now):
                    orphans.append(path)
            except FileNotFoundError:
                continue
        return orphans
