"""
The append-only, deduplicated ledger of served artifacts.
"""

import asyncio
import logging
from collections.abc import Iterable

from pydantic import ValidationError

from ytaudio.models.records import HistoryEntry

from .kv_store import KeyValueStore

log = logging.getLogger(__name__)

HISTORY_KEY = "history"


class HistoryLedger:
    """
    Most-recent-first record of served artifacts, holding at most one entry
    per (identifier, format).

    All mutations go through one lock, and each mutation is a single store
    transaction, so a removal can never drop an entry appended concurrently.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._lock = asyncio.Lock()

    async def append(self, entry: HistoryEntry) -> bool:
        """
        Inserts `entry` at the head unless its (identifier, format) pair is
        already recorded. Returns True if the entry was added.
        """

        def is_duplicate(existing: dict) -> bool:
            return (
                existing.get("identifier") == entry.identifier
                and existing.get("format") == entry.format
            )

        async with self._lock:
            added = await self.store.list_push(
                HISTORY_KEY, entry.model_dump(mode="json"), unless=is_duplicate
            )
        if added:
            log.debug(f"History: recorded '{entry.artifact_name}'.")
        return added

    async def list(self) -> list[HistoryEntry]:
        """Returns all entries, most recent first."""
        entries = []
        for raw in await self.store.list_range(HISTORY_KEY):
            try:
                entries.append(HistoryEntry.model_validate(raw))
            except ValidationError as e:
                log.warning(f"Skipping malformed history entry: {e}")
        return entries

    async def remove_by_artifact_name(self, name: str) -> int:
        """Removes every entry referencing `name`. Returns the number removed."""
        return await self.remove_by_artifact_names([name])

    async def remove_by_artifact_names(self, names: Iterable[str]) -> int:
        """Removes every entry referencing any of `names` in a single pass."""
        targets = set(names)
        if not targets:
            return 0
        async with self._lock:
            removed = await self.store.list_remove(
                HISTORY_KEY, lambda item: item.get("artifact_name") in targets
            )
        if removed:
            log.debug(f"History: removed {removed} entries.")
        return removed

    async def clear(self) -> None:
        async with self._lock:
            await self.store.delete(HISTORY_KEY)
