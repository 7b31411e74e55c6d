"""Tests for the expiry sweeper."""

import asyncio
import os

import pytest
from conftest import TTL

from ytaudio.core.sweeper import ExpirySweeper, delete_artifact_file
from ytaudio.models.records import HistoryEntry


@pytest.fixture
def sweeper(cache, history, clock, events) -> ExpirySweeper:
    return ExpirySweeper(
        cache,
        history,
        ttl_seconds=TTL,
        interval_seconds=600,
        initial_delay_seconds=0,
        clock=clock,
        events=events,
    )


async def add_artifact(cache, history, identifier, fmt="mp3", with_file=True):
    if with_file:
        cache.artifact_path(identifier, fmt).write_bytes(b"audio")
    entry = await cache.insert(identifier, fmt, f"Title {identifier}", None)
    await history.append(
        HistoryEntry(
            url=f"https://youtu.be/{identifier}",
            artifact_name=entry.artifact_name,
            title=entry.title,
            identifier=identifier,
            format=fmt,
        )
    )
    return entry


def age_file(path, clock, seconds):
    stamp = clock.now - seconds
    os.utime(path, (stamp, stamp))


async def test_removes_exactly_the_expired_entries(sweeper, cache, history, clock):
    stale = await add_artifact(cache, history, "aaaaaaaaaaa")
    clock.advance(TTL - 100)
    fresh = await add_artifact(cache, history, "bbbbbbbbbbb")
    clock.advance(101)

    report = await sweeper.sweep_once()

    assert report.entries_examined == 2
    assert report.expired_removed == 1
    assert report.removed_artifacts == [stale.artifact_name]
    assert report.history_removed == 1
    assert not cache.artifact_path("aaaaaaaaaaa", "mp3").exists()
    assert await cache.peek("aaaaaaaaaaa", "mp3") is None

    assert cache.artifact_path("bbbbbbbbbbb", "mp3").exists()
    assert await cache.peek("bbbbbbbbbbb", "mp3") == fresh
    assert [h.artifact_name for h in await history.list()] == [fresh.artifact_name]


async def test_entry_at_exactly_the_ttl_survives(sweeper, cache, history, clock):
    await add_artifact(cache, history, "aaaaaaaaaaa")
    clock.advance(TTL)
    report = await sweeper.sweep_once()
    assert report.total_removed == 0
    assert await cache.peek("aaaaaaaaaaa", "mp3") is not None


async def test_recent_access_keeps_an_entry_alive(sweeper, cache, history, clock):
    await add_artifact(cache, history, "aaaaaaaaaaa")
    clock.advance(TTL - 10)
    assert await cache.lookup("aaaaaaaaaaa", "mp3") is not None
    clock.advance(TTL - 10)
    report = await sweeper.sweep_once()
    assert report.total_removed == 0


async def test_entries_with_missing_files_are_removed(sweeper, cache, history):
    await add_artifact(cache, history, "aaaaaaaaaaa", with_file=False)
    report = await sweeper.sweep_once()
    assert report.missing_removed == 1
    assert report.history_removed == 1
    assert await cache.entries() == []
    assert await history.list() == []


async def test_stale_orphan_files_are_removed(sweeper, cache, history, clock, downloads_dir):
    old_orphan = downloads_dir / "ccccccccccc.m4a"
    old_orphan.write_bytes(b"audio")
    age_file(old_orphan, clock, TTL + 60)

    new_orphan = downloads_dir / "ddddddddddd.mp3"
    new_orphan.write_bytes(b"audio")
    age_file(new_orphan, clock, 60)

    unrelated = downloads_dir / "notes.txt"
    unrelated.write_text("keep me")
    age_file(unrelated, clock, TTL * 10)

    await history.append(
        HistoryEntry(
            url="https://youtu.be/ccccccccccc",
            artifact_name=old_orphan.name,
            title="Orphan",
            identifier="ccccccccccc",
            format="m4a",
        )
    )

    report = await sweeper.sweep_once()
    assert report.orphans_removed == 1
    assert report.history_removed == 1
    assert not old_orphan.exists()
    assert new_orphan.exists()
    assert unrelated.exists()


async def test_known_artifacts_are_not_treated_as_orphans(sweeper, cache, history, clock):
    entry = await add_artifact(cache, history, "aaaaaaaaaaa")
    age_file(cache.artifact_path("aaaaaaaaaaa", "mp3"), clock, TTL * 2)
    report = await sweeper.sweep_once()
    assert report.orphans_removed == 0
    assert await cache.peek("aaaaaaaaaaa", "mp3") == entry


async def test_keys_being_extracted_are_left_alone(
    cache, history, clock, events, downloads_dir
):
    busy = {("aaaaaaaaaaa", "mp3"), ("ccccccccccc", "m4a")}
    sweeper = ExpirySweeper(
        cache,
        history,
        ttl_seconds=TTL,
        clock=clock,
        events=events,
        is_busy=lambda identifier, fmt: (identifier, fmt) in busy,
    )
    await add_artifact(cache, history, "aaaaaaaaaaa")
    await add_artifact(cache, history, "bbbbbbbbbbb")
    in_progress = downloads_dir / "ccccccccccc.m4a"
    in_progress.write_bytes(b"audio")
    clock.advance(TTL + 1)
    age_file(in_progress, clock, TTL + 60)

    report = await sweeper.sweep_once()
    assert report.removed_artifacts == ["bbbbbbbbbbb.mp3"]
    assert cache.artifact_path("aaaaaaaaaaa", "mp3").exists()
    assert await cache.peek("aaaaaaaaaaa", "mp3") is not None
    assert in_progress.exists()


async def test_one_failure_does_not_stop_the_batch(
    sweeper, cache, history, clock, monkeypatch
):
    await add_artifact(cache, history, "aaaaaaaaaaa")
    await add_artifact(cache, history, "bbbbbbbbbbb")
    clock.advance(TTL + 1)

    real_evict = cache.evict

    async def flaky_evict(identifier, fmt):
        if identifier == "aaaaaaaaaaa":
            raise OSError("disk on fire")
        return await real_evict(identifier, fmt)

    monkeypatch.setattr(cache, "evict", flaky_evict)
    report = await sweeper.sweep_once()

    assert report.errors == 1
    assert report.expired_removed == 1
    assert report.removed_artifacts == ["bbbbbbbbbbb.mp3"]


async def test_empty_sweep(sweeper):
    report = await sweeper.sweep_once()
    assert report.total_removed == 0
    assert report.errors == 0
    assert report.finished_at >= report.started_at


async def test_background_loop_sweeps_after_the_initial_delay(
    sweeper, cache, history, clock
):
    await add_artifact(cache, history, "aaaaaaaaaaa")
    clock.advance(TTL + 1)

    await sweeper.start()
    try:
        for _ in range(200):
            if await cache.peek("aaaaaaaaaaa", "mp3") is None:
                break
            await asyncio.sleep(0.01)
    finally:
        await sweeper.stop()

    assert await cache.peek("aaaaaaaaaaa", "mp3") is None
    assert sweeper._task is None


def test_delete_artifact_file_is_idempotent(tmp_path):
    path = tmp_path / "abc12345678.mp3"
    path.write_bytes(b"x")
    assert delete_artifact_file(path) is True
    assert delete_artifact_file(path) is False
