"""
Shared columns and lifecycle helpers for records mirrored from the partner API.
"""

from sqlalchemy import Column, Integer, DateTime, Uuid
from sqlalchemy.ext.hybrid import hybrid_property
from datetime import datetime
from typing import Optional


class PartnerRecordMixin:
    """Primary key, partner identifier and soft-delete timestamps.

    ``deleted_at`` set means the record is logically absent. Every read path
    filters on :attr:`is_active` instead of checking the column directly.
    """

    id = Column(Integer, primary_key=True, index=True)
    id_partner = Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    @hybrid_property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @is_active.inplace.expression
    @classmethod
    def _is_active_expression(cls):
        return cls.deleted_at.is_(None)

    def soft_delete(self, when: Optional[datetime] = None) -> None:
        """Mark the record as logically removed."""
        self.deleted_at = when or datetime.utcnow()

    def restore(self) -> None:
        self.deleted_at = None
