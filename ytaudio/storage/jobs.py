"""
Keeps short-lived job records in the key-value store for status polling.
"""

import logging

from pydantic import ValidationError

from ytaudio.models.records import Job

from .kv_store import KeyValueStore

log = logging.getLogger(__name__)

JOB_KEY_PREFIX = "job:"


class JobStore:
    """Job records that expire a fixed window after their last update."""

    def __init__(self, store: KeyValueStore, retention_seconds: int):
        self.store = store
        self.retention_seconds = retention_seconds

    async def save(self, job: Job) -> Job:
        await self.store.set(
            f"{JOB_KEY_PREFIX}{job.id}", job.model_dump_json(), self.retention_seconds
        )
        return job

    async def get(self, job_id: str) -> Job | None:
        data = await self.store.get_json(f"{JOB_KEY_PREFIX}{job_id}")
        if data is None:
            return None
        try:
            return Job.model_validate(data)
        except ValidationError as e:
            log.warning(f"Discarding malformed job record '{job_id}': {e}")
            return None

    async def update(self, job_id: str, **changes) -> Job | None:
        """Applies `changes` to a stored job. Returns None if it has expired."""
        job = await self.get(job_id)
        if job is None:
            log.debug(f"Job '{job_id}' is no longer retained; update dropped.")
            return None
        job = job.model_copy(update=changes)
        return await self.save(job)
