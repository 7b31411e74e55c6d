"""
The main orchestrator for turning requests into tracked extraction jobs, serving
cache hits, and deleting artifacts.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from ytaudio.api.metadata import DEFAULT_TITLE, MetadataResolver
from ytaudio.exceptions import (
    RequestValidationError,
    ResolutionError,
    StoreUnavailableError,
)
from ytaudio.media.orchestrator import AttemptOutcome, ExtractionOrchestrator
from ytaudio.media.process import YtDlpAdapter
from ytaudio.media.strategies import build_strategy_ladder
from ytaudio.models.config import SUPPORTED_FORMATS, ServiceConfig
from ytaudio.models.records import (
    CacheEntry,
    CacheView,
    HistoryEntry,
    Job,
    JobStatus,
    SubmitResult,
)
from ytaudio.models.stats import SweepReport
from ytaudio.storage.cache import CacheStore
from ytaudio.storage.history import HistoryLedger
from ytaudio.storage.jobs import JobStore
from ytaudio.storage.kv_store import KeyValueStore
from ytaudio.utils.identifier import (
    create_dir,
    extract_identifier,
    parse_artifact_name,
)
from ytaudio.utils.structured_logger import JobEventLogger, create_event_logger

from .sweeper import ExpirySweeper, delete_artifact_file

log = logging.getLogger(__name__)


class JobManager:
    """
    Maps requests to jobs and wires the cache, the extraction orchestrator and
    the history ledger together.

    At most one extraction runs per (identifier, format); a request for a pair
    already being extracted joins the running job.
    """

    def __init__(
        self,
        config: ServiceConfig,
        store: Optional[KeyValueStore] = None,
        resolver: Optional[MetadataResolver] = None,
        adapter: Optional[YtDlpAdapter] = None,
        events: Optional[JobEventLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.downloads_dir = Path(config.downloads_dir)
        self.store = store or KeyValueStore(Path(config.database_path), clock=clock)
        self.resolver = resolver or MetadataResolver(config.metadata_timeout_seconds)
        self.events = events or create_event_logger(
            Path(config.event_log_dir) if config.event_log_dir else None
        )
        self._clock = clock

        self.cache = CacheStore(
            self.store,
            self.downloads_dir,
            ttl_seconds=config.cache_ttl_seconds,
            grace_seconds=config.sweep_interval_seconds,
            clock=clock,
        )
        self.history = HistoryLedger(self.store)
        self.jobs = JobStore(self.store, config.job_retention_seconds)
        self.orchestrator = ExtractionOrchestrator(
            adapter or YtDlpAdapter(config.ytdlp_path),
            self.downloads_dir,
            build_strategy_ladder(config),
            force_ipv4=config.force_ipv4,
            verify_artifacts=config.verify_artifacts,
        )
        self.sweeper = ExpirySweeper(
            self.cache,
            self.history,
            ttl_seconds=config.cache_ttl_seconds,
            interval_seconds=config.sweep_interval_seconds,
            initial_delay_seconds=config.sweep_initial_delay_seconds,
            clock=clock,
            events=self.events,
            is_busy=self._is_extracting,
        )

        self._extraction_slots = asyncio.Semaphore(config.max_concurrent_extractions)
        self._inflight: dict[tuple[str, str], str] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._live_jobs: dict[str, Job] = {}
        self._key_locks: OrderedDict[tuple[str, str], asyncio.Lock] = OrderedDict()
        self._max_locks = 1000
        self._key_lock_main = asyncio.Lock()

    async def start(self, background_sweeps: bool = True) -> None:
        """Prepares the downloads directory and optionally starts the sweeper."""
        await asyncio.to_thread(create_dir, self.downloads_dir)
        if background_sweeps:
            await self.sweeper.start()

    async def close(self) -> None:
        """Stops the sweeper, cancels running jobs and releases the HTTP session."""
        await self.sweeper.stop()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.resolver.close()
        self.events.logger.close()

    async def __aenter__(self) -> "JobManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def download_path_for(self, artifact_name: str) -> str:
        prefix = self.config.public_prefix.rstrip("/")
        return f"{prefix}/{artifact_name}"

    async def _get_key_lock(self, key: tuple[str, str]) -> asyncio.Lock:
        """Gets or creates the lock serializing submissions for one (identifier, format)."""
        async with self._key_lock_main:
            if key in self._key_locks:
                self._key_locks.move_to_end(key)
                return self._key_locks[key]

            lock = asyncio.Lock()
            self._key_locks[key] = lock

            # Evict the least recently used idle lock if over limit
            if len(self._key_locks) > self._max_locks:
                for old_key, old_lock in list(self._key_locks.items()):
                    if not old_lock.locked() and old_key != key:
                        del self._key_locks[old_key]
                        break

            return lock

    @staticmethod
    def _validate_request(url: object, fmt: object) -> tuple[str, str]:
        if not isinstance(url, str) or not url.strip():
            raise RequestValidationError("No URL provided.")
        normalized = fmt.strip().lower() if isinstance(fmt, str) else ""
        if normalized not in SUPPORTED_FORMATS:
            raise RequestValidationError(
                f"Unsupported format '{fmt}'. "
                f"Choose one of: {', '.join(SUPPORTED_FORMATS)}."
            )
        return url.strip(), normalized

    async def submit(self, url: str, fmt: str) -> SubmitResult:
        """
        Accepts a request. A cache hit completes immediately; a miss starts an
        extraction job in the background and returns it in `processing` state.

        Raises:
            RequestValidationError: Missing URL or unsupported format.
            ResolutionError: No identifier could be derived from the URL.
            StoreUnavailableError: The persistent store could not be reached.
        """
        url, fmt = self._validate_request(url, fmt)
        identifier = extract_identifier(url)
        if identifier is None:
            raise ResolutionError(f"Could not find a video identifier in '{url}'.")

        key = (identifier, fmt)
        lock = await self._get_key_lock(key)
        async with lock:
            if running := await self._running_job(key):
                log.debug(f"Joining in-flight job {running.id} for {identifier}/{fmt}.")
                self.events.job_joined(running.id, identifier, fmt)
                return SubmitResult(
                    job_id=running.id,
                    status=running.status,
                    deduplicated=True,
                    title=running.title,
                    thumbnail=running.thumbnail,
                )

            if entry := await self.cache.lookup(identifier, fmt):
                return await self._serve_cached(url, entry)
            await self._discard_expired(identifier, fmt)

            job = await self.jobs.save(Job(url=url, identifier=identifier, format=fmt))
            task = asyncio.create_task(self._run_job(job.id, url, identifier, fmt))
            self._inflight[key] = job.id
            self._tasks[job.id] = task
            self._live_jobs[job.id] = job
            task.add_done_callback(
                lambda t, key=key, job_id=job.id: self._on_task_done(key, job_id, t)
            )

        self.events.job_submitted(job.id, identifier, fmt, url)
        return SubmitResult(job_id=job.id, status=JobStatus.PROCESSING)

    def _is_extracting(self, identifier: str, fmt: str) -> bool:
        job_id = self._inflight.get((identifier, fmt))
        task = self._tasks.get(job_id) if job_id else None
        return task is not None and not task.done()

    async def _running_job(self, key: tuple[str, str]) -> Optional[Job]:
        """Returns the job extracting `key`, restoring its record if it has expired."""
        if not self._is_extracting(*key):
            return None
        job_id = self._inflight[key]
        job = await self.jobs.get(job_id)
        if job is None:
            log.debug(f"Record of running job {job_id} expired; restoring it.")
            job = await self.jobs.save(self._live_jobs[job_id])
        if job.is_terminal():
            return None
        return job

    async def _update_job(self, job_id: str, **changes) -> Optional[Job]:
        job = await self.jobs.update(job_id, **changes)
        if job is None and job_id in self._live_jobs:
            restored = self._live_jobs[job_id].model_copy(update=changes)
            job = await self.jobs.save(restored)
        if job is not None and job_id in self._live_jobs:
            self._live_jobs[job_id] = job
        return job

    async def _discard_expired(self, identifier: str, fmt: str) -> None:
        """
        Removes an entry that outlived its TTL, with its file and history, so the
        sweeper cannot act on it while the artifact is being produced again.
        """
        stale = await self.cache.peek(identifier, fmt)
        if stale is None:
            return
        await asyncio.to_thread(
            delete_artifact_file, self.cache.artifact_path(identifier, fmt)
        )
        await self.cache.evict(identifier, fmt)
        await self.history.remove_by_artifact_name(stale.artifact_name)
        log.debug(
            f"Discarded expired artifact '{stale.artifact_name}' before re-extraction."
        )
        self.events.artifact_deleted(stale.artifact_name, reason="expired")

    def _on_task_done(self, key: tuple[str, str], job_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) == job_id:
            del self._inflight[key]
        self._tasks.pop(job_id, None)
        self._live_jobs.pop(job_id, None)
        if not task.cancelled() and (exc := task.exception()):
            log.error(f"Job {job_id} task ended with an unhandled error: {exc}")

    async def _serve_cached(self, url: str, entry: CacheEntry) -> SubmitResult:
        if entry.title == DEFAULT_TITLE:
            meta = await self.resolver.resolve(entry.identifier)
            if meta["title"] != DEFAULT_TITLE:
                entry = await self.cache.update_metadata(
                    entry, meta["title"], meta["thumbnail"]
                )

        await self.history.append(
            HistoryEntry(
                url=url,
                artifact_name=entry.artifact_name,
                title=entry.title,
                thumbnail=entry.thumbnail,
                identifier=entry.identifier,
                format=entry.format,
                timestamp=self._clock(),
            )
        )
        download_path = self.download_path_for(entry.artifact_name)
        job = await self.jobs.save(
            Job(
                url=url,
                identifier=entry.identifier,
                format=entry.format,
                status=JobStatus.COMPLETED,
                progress=100.0,
                title=entry.title,
                thumbnail=entry.thumbnail,
                artifact_name=entry.artifact_name,
                download_path=download_path,
                cached=True,
            )
        )
        self.events.cache_hit(entry.identifier, entry.format, entry.artifact_name)
        return SubmitResult(
            job_id=job.id,
            status=JobStatus.COMPLETED,
            cached=True,
            artifact_name=entry.artifact_name,
            download_path=download_path,
            title=entry.title,
            thumbnail=entry.thumbnail,
        )

    async def _run_job(self, job_id: str, url: str, identifier: str, fmt: str) -> None:
        """Runs one extraction job; every failure ends up in the job record."""
        started = time.monotonic()
        last_written = -1

        async def record_progress(percent: float) -> None:
            nonlocal last_written
            if int(percent) == last_written:
                return
            last_written = int(percent)
            await self._update_job(job_id, progress=percent)

        def record_attempt(outcome: AttemptOutcome) -> None:
            self.events.attempt_finished(
                job_id, outcome.strategy.name, outcome.succeeded, outcome.detail
            )

        try:
            meta = await self.resolver.resolve(identifier)
            await self._update_job(
                job_id, title=meta["title"], thumbnail=meta["thumbnail"]
            )

            async with self._extraction_slots:
                outcome = await self.orchestrator.extract(
                    url,
                    identifier,
                    fmt,
                    on_progress=record_progress,
                    on_attempt=record_attempt,
                )

            entry = await self.cache.insert(
                identifier, fmt, meta["title"], meta["thumbnail"]
            )
            await self.history.append(
                HistoryEntry(
                    url=url,
                    artifact_name=entry.artifact_name,
                    title=entry.title,
                    thumbnail=entry.thumbnail,
                    identifier=identifier,
                    format=fmt,
                    timestamp=self._clock(),
                )
            )
            await self._update_job(
                job_id,
                status=JobStatus.COMPLETED,
                progress=100.0,
                artifact_name=entry.artifact_name,
                download_path=self.download_path_for(entry.artifact_name),
            )
            log.info(f"[green]✓ Completed:[/] {entry.title} → {entry.artifact_name}")
            self.events.job_completed(
                job_id,
                entry.artifact_name,
                outcome.strategy.name,
                time.monotonic() - started,
            )
        except asyncio.CancelledError:
            log.debug(f"Job {job_id} was cancelled.")
            raise
        except Exception as e:
            log.error(
                f"[red]✗ Job {job_id} failed:[/] {e}",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            self.events.job_failed(job_id, type(e).__name__, str(e))
            try:
                await self._update_job(
                    job_id, status=JobStatus.ERROR, error_detail=str(e)
                )
            except StoreUnavailableError as store_error:
                log.error(
                    f"[red]Could not record failure of job {job_id}: {store_error}[/red]"
                )

    async def get_status(self, job_id: str) -> Optional[Job]:
        """Returns the job, or None if it is unknown or no longer retained."""
        return await self.jobs.get(job_id)

    async def wait_for(self, job_id: str) -> Optional[Job]:
        """Waits until the job's background work has finished, then returns it."""
        if task := self._tasks.get(job_id):
            await asyncio.wait({task})
        return await self.jobs.get(job_id)

    async def delete(self, artifact_name: str) -> bool:
        """
        Removes an artifact's file, cache entry and history entries.
        Idempotent: returns False when there was nothing left to remove.
        """
        parsed = parse_artifact_name(artifact_name)
        if parsed is None:
            raise RequestValidationError(f"Invalid artifact name '{artifact_name}'.")
        identifier, fmt = parsed
        if fmt not in SUPPORTED_FORMATS:
            raise RequestValidationError(f"Invalid artifact name '{artifact_name}'.")

        file_removed = await asyncio.to_thread(
            delete_artifact_file, self.downloads_dir / artifact_name
        )
        entry_removed = await self.cache.evict(identifier, fmt)
        history_removed = await self.history.remove_by_artifact_name(artifact_name)

        removed = file_removed or entry_removed or history_removed > 0
        if removed:
            log.info(f"Deleted artifact '{artifact_name}'.")
            self.events.artifact_deleted(artifact_name, reason="requested")
        else:
            log.debug(f"Nothing to delete for '{artifact_name}'.")
        return removed

    async def list_history(self) -> list[HistoryEntry]:
        return await self.history.list()

    async def inspect_cache(self) -> list[CacheView]:
        return await self.cache.inspect()

    async def sweep(self) -> SweepReport:
        """Runs one expiry sweep immediately."""
        return await self.sweeper.sweep_once()
