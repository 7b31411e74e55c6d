"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the
core data structures used throughout the application: configuration, job
records, cache and history entries, and sweep statistics.
"""

from .config import FORMAT_MAP, SUPPORTED_FORMATS, ServiceConfig
from .records import (
    CacheEntry,
    CacheView,
    HistoryEntry,
    Job,
    JobStatus,
    SubmitResult,
)
from .stats import SweepReport

__all__ = [
    "FORMAT_MAP",
    "SUPPORTED_FORMATS",
    "CacheEntry",
    "CacheView",
    "HistoryEntry",
    "Job",
    "JobStatus",
    "ServiceConfig",
    "SubmitResult",
    "SweepReport",
]
