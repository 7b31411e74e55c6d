"""
A keyed artifact cache with a sliding time-to-live, backed by the key-value store.
Enhanced with statistics tracking for cache hits and misses.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from ytaudio.models.records import CacheEntry, CacheView
from ytaudio.utils.identifier import artifact_name_for

from .kv_store import KeyValueStore

log = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "cache:"


def cache_key(identifier: str, fmt: str) -> str:
    return f"{CACHE_KEY_PREFIX}{identifier}:{fmt}"


class CacheStore:
    """
    Manages cache entries keyed by (identifier, format).

    An entry exists only while its artifact is expected on disk: a lookup that
    finds the record but not the file deletes the record and reports a miss.
    Every hit refreshes `last_accessed` and re-arms the expiry.
    """

    def __init__(
        self,
        store: KeyValueStore,
        downloads_dir: Path,
        ttl_seconds: int,
        grace_seconds: int = 0,
        clock: Callable[[], float] = time.time,
        stats_callback: Callable[[bool], None] | None = None,
    ):
        """
        Initializes the cache store.

        Args:
            store: The persistent key-value store.
            downloads_dir: Directory holding the artifact files.
            ttl_seconds: Sliding time-to-live measured from the last access.
            grace_seconds: Extra store-level lifetime past the TTL so the sweeper
                sees an entry (and deletes its file) before the store drops it.
            clock: Source of the current time, in seconds.
            stats_callback: Optional callback to report cache hits (True) or
                misses (False).
        """
        self.store = store
        self.downloads_dir = Path(downloads_dir)
        self.ttl_seconds = ttl_seconds
        self._store_ttl = ttl_seconds + grace_seconds
        self._clock = clock
        self._stats_callback = stats_callback

    def artifact_path(self, identifier: str, fmt: str) -> Path:
        return self.downloads_dir / artifact_name_for(identifier, fmt)

    def _record(self, is_hit: bool) -> None:
        if self._stats_callback:
            self._stats_callback(is_hit)

    async def _read(self, key: str) -> CacheEntry | None:
        data = await self.store.get_json(key)
        if data is None:
            return None
        try:
            return CacheEntry.model_validate(data)
        except ValidationError as e:
            log.warning(f"Dropping malformed cache record '{key}': {e}")
            await self.store.delete(key)
            return None

    async def peek(self, identifier: str, fmt: str) -> CacheEntry | None:
        """Reads an entry without counting it as an access."""
        return await self._read(cache_key(identifier, fmt))

    async def lookup(self, identifier: str, fmt: str) -> CacheEntry | None:
        """
        Retrieves an entry and refreshes its TTL. Returns None if the key is not
        found, has outlived the TTL, or its artifact file has disappeared.
        """
        key = cache_key(identifier, fmt)
        entry = await self._read(key)
        if entry is None:
            self._record(False)
            return None

        now = self._clock()
        if entry.age(now) > self.ttl_seconds:
            # Left for the sweeper, which also removes the file and history.
            log.debug(f"Cache entry '{key}' has outlived its TTL.")
            self._record(False)
            return None

        if not self.artifact_path(identifier, fmt).is_file():
            log.info(
                f"[yellow]Artifact for '{key}' is missing on disk; "
                "dropping stale cache record.[/yellow]"
            )
            await self.store.delete(key)
            self._record(False)
            return None

        entry = entry.model_copy(update={"last_accessed": now})
        await self.store.set(key, entry.model_dump_json(), self._store_ttl)
        self._record(True)
        return entry

    async def insert(
        self, identifier: str, fmt: str, title: str, thumbnail: str | None
    ) -> CacheEntry:
        """Creates or overwrites the entry for a freshly produced artifact."""
        now = self._clock()
        entry = CacheEntry(
            identifier=identifier,
            format=fmt,
            artifact_name=artifact_name_for(identifier, fmt),
            title=title,
            thumbnail=thumbnail,
            cached_at=now,
            last_accessed=now,
        )
        await self.store.set(
            cache_key(identifier, fmt), entry.model_dump_json(), self._store_ttl
        )
        log.debug(f"Cached artifact '{entry.artifact_name}'.")
        return entry

    async def update_metadata(
        self, entry: CacheEntry, title: str, thumbnail: str | None
    ) -> CacheEntry:
        """Rewrites the descriptive metadata of an entry, keeping its timestamps."""
        updated = entry.model_copy(update={"title": title, "thumbnail": thumbnail})
        await self.store.set(
            cache_key(entry.identifier, entry.format),
            updated.model_dump_json(),
            self._store_ttl,
        )
        return updated

    async def evict(self, identifier: str, fmt: str) -> bool:
        """Unconditionally removes an entry. Returns True if one existed."""
        return await self.store.delete(cache_key(identifier, fmt)) > 0

    async def entries(self) -> list[CacheEntry]:
        """Enumerates all entries without touching their access times."""
        entries = []
        for key in await self.store.keys(CACHE_KEY_PREFIX):
            if entry := await self._read(key):
                entries.append(entry)
        return entries

    async def inspect(self) -> list[CacheView]:
        """Builds the read-only operational view of the whole cache."""
        now = self._clock()
        views = []
        for entry in await self.entries():
            age = entry.age(now)
            views.append(
                CacheView(
                    identifier=entry.identifier,
                    format=entry.format,
                    title=entry.title,
                    artifact_name=entry.artifact_name,
                    artifact_exists=self.artifact_path(
                        entry.identifier, entry.format
                    ).is_file(),
                    age_seconds=age,
                    remaining_ttl_seconds=max(0.0, self.ttl_seconds - age),
                )
            )
        views.sort(key=lambda v: v.age_seconds)
        return views
