"""
Dataclass for tracking the outcome of one expiry sweep.
"""

import time
from dataclasses import dataclass, field


@dataclass
class SweepReport:
    """Tracks what a single sweep examined, removed and failed on."""

    entries_examined: int = 0
    expired_removed: int = 0
    missing_removed: int = 0
    orphans_removed: int = 0
    history_removed: int = 0
    errors: int = 0
    removed_artifacts: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float = 0.0

    @property
    def total_removed(self) -> int:
        return self.expired_removed + self.missing_removed + self.orphans_removed

    @property
    def duration_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return self.finished_at - self.started_at
