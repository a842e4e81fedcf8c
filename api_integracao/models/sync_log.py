"""
Append-only audit trail of reconciliation runs.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Index
from sqlalchemy.ext.hybrid import hybrid_property
import enum
from typing import Optional

from api_integracao.core.database import Base


class EntityType(str, enum.Enum):
    """Entity types reconciled against the partner, in dependency order."""
    COURSE = "course"
    CLASS = "class"
    STUDENT = "student"
    ENROLLMENT = "enrollment"


class SyncOperation:
    """Operation labels written to the audit trail."""
    SYNC = "Sync"
    SYNC_BY_DATE_RANGE = "SyncByDateRange"


class SyncLog(Base):
    """One row per reconciliation call. Rows are never updated or deleted."""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(50), nullable=False)
    operation = Column(String(50), nullable=False, default=SyncOperation.SYNC)

    processed_count = Column(Integer, default=0, nullable=False)
    success = Column(Boolean, nullable=False)
    error_details = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_sync_logs_entity_success_finished", "entity_type", "success", "finished_at"),
    )

    @hybrid_property
    def duration_seconds(self) -> Optional[float]:
        """Get run duration in seconds."""
        if not self.started_at or not self.finished_at:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def __repr__(self):
        return (
            f"<SyncLog(id={self.id}, entity_type='{self.entity_type}', "
            f"success={self.success}, processed={self.processed_count})>"
        )
