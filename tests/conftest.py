"""Shared fixtures: temp store, fake extraction tool, fake resolver, clock."""

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from ytaudio.api.metadata import DEFAULT_TITLE
from ytaudio.core.job_manager import JobManager
from ytaudio.exceptions import ProcessLaunchError
from ytaudio.media.process import (
    ExtractionRequest,
    ExtractionResult,
    ProgressEvent,
    parse_progress,
)
from ytaudio.models.config import ServiceConfig
from ytaudio.storage.cache import CacheStore
from ytaudio.storage.history import HistoryLedger
from ytaudio.storage.kv_store import KeyValueStore
from ytaudio.utils.structured_logger import JobEventLogger, StructuredLogger

VIDEO_ID = "abc12345678"
VIDEO_URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"
TTL = 3600
GRACE = 600
THUMBNAIL = "https://i.ytimg.com/vi/abc12345678/hqdefault.jpg"


class FakeClock:
    """A wall clock that only moves when told to."""

    def __init__(self, start: float | None = None):
        self.now = float(int(time.time())) if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Script:
    """What one fake tool invocation prints and how it ends."""

    lines: list[str] = field(default_factory=lambda: ["[download] 100.0%"])
    returncode: int = 0
    produce_artifact: bool = True
    artifact_bytes: bytes = b"fake audio"
    launch_error: bool = False
    gate: asyncio.Event | None = None


def succeed(*lines: str) -> Script:
    return Script(lines=list(lines) or ["[download] 100.0%"])


def fail(message: str = "ERROR: Sign in to confirm you're not a bot") -> Script:
    return Script(
        lines=["[download]   3.0%", message], returncode=1, produce_artifact=False
    )


class FakeProcess:
    """Behaves like ExtractionProcess, driven by a Script instead of yt-dlp."""

    def __init__(self, request: ExtractionRequest, script: Script):
        self.request = request
        self.script = script
        self.cancelled = False
        self._finished = False

    async def __aenter__(self):
        if self.script.launch_error:
            raise ProcessLaunchError("Could not launch 'yt-dlp': not found")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self._finished:
            self.cancelled = True
        return False

    async def __aiter__(self):
        if self.script.gate is not None:
            await self.script.gate.wait()
        for line in self.script.lines:
            await asyncio.sleep(0)
            yield ProgressEvent(line=line, percent=parse_progress(line))

    async def wait(self) -> ExtractionResult:
        if self.script.returncode == 0 and self.script.produce_artifact:
            template = str(self.request.output_template)
            Path(template.replace("%(ext)s", self.request.audio_format)).write_bytes(
                self.script.artifact_bytes
            )
        self._finished = True
        return ExtractionResult(self.script.returncode, list(self.script.lines))


class FakeAdapter:
    """
    Hands out scripted processes in order; the last script repeats once the
    queue runs dry.
    """

    def __init__(self, *scripts: Script):
        self.scripts = list(scripts) or [Script()]
        self.requests: list[ExtractionRequest] = []

    def queue(self, *scripts: Script) -> None:
        self.scripts.extend(scripts)

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def strategy_names(self) -> list[str]:
        return [r.strategy.name for r in self.requests]

    def open(self, request: ExtractionRequest) -> FakeProcess:
        self.requests.append(request)
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        return FakeProcess(request, script)


class FakeResolver:
    """Returns queued titles in order; repeats the last one."""

    def __init__(self, *titles: str, thumbnail: str | None = THUMBNAIL):
        self.titles = list(titles) or ["Never Gonna Give You Up"]
        self.thumbnail = thumbnail
        self.lookups: list[str] = []
        self.closed = False

    async def resolve(self, identifier: str) -> dict:
        self.lookups.append(identifier)
        title = self.titles.pop(0) if len(self.titles) > 1 else self.titles[0]
        if title == DEFAULT_TITLE:
            return {"title": DEFAULT_TITLE, "thumbnail": None}
        return {"title": title, "thumbnail": self.thumbnail}

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def downloads_dir(tmp_path: Path) -> Path:
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def store(tmp_path: Path, clock: FakeClock) -> KeyValueStore:
    return KeyValueStore(tmp_path / "store.sqlite", clock=clock)


@pytest.fixture
def cache(store: KeyValueStore, downloads_dir: Path, clock: FakeClock) -> CacheStore:
    return CacheStore(store, downloads_dir, TTL, grace_seconds=GRACE, clock=clock)


@pytest.fixture
def history(store: KeyValueStore) -> HistoryLedger:
    return HistoryLedger(store)


@pytest.fixture
def events() -> JobEventLogger:
    return JobEventLogger(StructuredLogger("ytaudio.events", enable_console=False))


@pytest.fixture
def config(tmp_path: Path, downloads_dir: Path) -> ServiceConfig:
    return ServiceConfig(
        downloads_dir=str(downloads_dir),
        database_path=str(tmp_path / "store.sqlite"),
        cache_ttl_seconds=TTL,
        sweep_interval_seconds=GRACE,
        default_browser="chrome",
        fallback_browsers=["firefox", "edge"],
        verify_artifacts=False,
    )


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
async def manager(config, store, resolver, adapter, events, clock):
    manager = JobManager(
        config,
        store=store,
        resolver=resolver,
        adapter=adapter,
        events=events,
        clock=clock,
    )
    await manager.start(background_sweeps=False)
    yield manager
    await manager.close()
