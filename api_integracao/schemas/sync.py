"""
Pydantic schemas for the sync trigger endpoints.
"""

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, Dict, List
from datetime import date, datetime

from api_integracao.services.sync.result import SyncResult


class DateRangeRequest(BaseModel):
    """Bounds for a date-range sync, both inclusive."""
    date_from: date
    date_to: date

    @model_validator(mode='after')
    def check_order(self):
        if self.date_from > self.date_to:
            raise ValueError('date_from must not be after date_to')
        return self


class SyncResultResponse(BaseModel):
    """SyncResult as reported to callers, partial success included."""
    entity_type: str
    success: bool
    total_processed: int = Field(..., ge=0)
    inserted: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    deleted: int = Field(..., ge=0)
    errors: List[str]
    started_at: datetime
    finished_at: Optional[datetime]
    duration_seconds: Optional[float]

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        duration = result.duration
        return cls(
            entity_type=result.entity_type,
            success=result.success,
            total_processed=result.total_processed,
            inserted=result.inserted,
            updated=result.updated,
            deleted=result.deleted,
            errors=list(result.errors),
            started_at=result.started_at,
            finished_at=result.finished_at,
            duration_seconds=duration.total_seconds() if duration is not None else None,
        )


class SyncStatusResponse(BaseModel):
    """Latest successful sync per entity type."""
    last_successful_sync: Dict[str, Optional[datetime]]
