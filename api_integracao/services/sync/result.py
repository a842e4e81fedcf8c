"""
Outcome of one reconciliation call.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class SyncResult:
    """Per-run counts, errors and timing.

    ``success`` is False only for stage-level failures (fetch or commit).
    Per-record failures are listed in ``errors`` without flipping it.
    ``inserted + updated + deleted`` need not equal ``total_processed``:
    unchanged active records are counted in none of the three.
    """

    entity_type: str
    success: bool = True
    total_processed: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def fail(self, message: str) -> "SyncResult":
        """Record a stage-level failure."""
        self.success = False
        self.errors.append(message)
        return self

    def finish(self, when: Optional[datetime] = None) -> "SyncResult":
        self.finished_at = when or datetime.utcnow()
        return self

    @classmethod
    def combine(cls, results: Iterable["SyncResult"], entity_type: str = "all") -> "SyncResult":
        """
        Aggregate stage results in processing order.

        Args:
            results: Stage results, first to last
            entity_type: Label for the combined result

        Returns:
            Result whose success is the AND of all stages, with summed
            counts, concatenated errors and the outer time bounds
        """
        results = list(results)
        combined = cls(entity_type=entity_type)
        if not results:
            return combined.finish(combined.started_at)

        for result in results:
            combined.success = combined.success and result.success
            combined.total_processed += result.total_processed
            combined.inserted += result.inserted
            combined.updated += result.updated
            combined.deleted += result.deleted
            combined.errors.extend(result.errors)

        combined.started_at = results[0].started_at
        combined.finished_at = results[-1].finished_at or datetime.utcnow()
        return combined

    def to_dict(self) -> Dict[str, Any]:
        duration = self.duration
        return {
            'entity_type': self.entity_type,
            'success': self.success,
            'total_processed': self.total_processed,
            'inserted': self.inserted,
            'updated': self.updated,
            'deleted': self.deleted,
            'errors': list(self.errors),
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_seconds': duration.total_seconds() if duration is not None else None,
        }
