"""
Pydantic models for the records kept in the persistent store:
jobs, cache entries and history entries.
"""

import time
import uuid
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Status of an extraction job."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


def new_job_id() -> str:
    return uuid.uuid4().hex


class Job(BaseModel):
    """
    Transient bookkeeping for one request.

    Jobs expire from the store after the retention window; they are not
    canonical state.
    """

    id: str = Field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PROCESSING
    progress: float = 0.0
    url: str = ""
    identifier: str
    format: str
    title: str | None = None
    thumbnail: str | None = None
    artifact_name: str | None = None
    download_path: str | None = None
    error_detail: str | None = None
    cached: bool = False
    created_at: float = Field(default_factory=time.time, frozen=True)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True

    def is_terminal(self) -> bool:
        """Check if the job is in a terminal state (completed or error)."""
        return self.status in (JobStatus.COMPLETED, JobStatus.ERROR)


class CacheEntry(BaseModel):
    """Canonical record of a previously produced artifact."""

    identifier: str
    format: str
    artifact_name: str
    title: str
    thumbnail: str | None = None
    cached_at: float
    last_accessed: float

    def age(self, now: float) -> float:
        """Seconds since the entry was last served."""
        return max(0.0, now - self.last_accessed)


class HistoryEntry(BaseModel):
    """User-facing record of a served artifact."""

    url: str
    artifact_name: str
    title: str
    thumbnail: str | None = None
    identifier: str
    format: str
    timestamp: float = Field(default_factory=time.time)

    @property
    def key(self) -> tuple[str, str]:
        return self.identifier, self.format


class CacheView(BaseModel):
    """Read-only operational view of one cache entry."""

    identifier: str
    format: str
    title: str
    artifact_name: str
    artifact_exists: bool
    age_seconds: float
    remaining_ttl_seconds: float


class SubmitResult(BaseModel):
    """What `submit` hands back to the caller."""

    job_id: str
    status: JobStatus
    cached: bool = False
    deduplicated: bool = False
    artifact_name: str | None = None
    download_path: str | None = None
    title: str | None = None
    thumbnail: str | None = None
