"""
Data access for partner-mirrored records.

All soft-delete filtering goes through ``PartnerRecordMixin.is_active`` here
so no caller writes ``deleted_at IS NULL`` by hand.
"""

from typing import Dict, Generic, List, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api_integracao.models.base import PartnerRecordMixin


ModelT = TypeVar("ModelT", bound=PartnerRecordMixin)


class PartnerRecordStore(Generic[ModelT]):
    """Queries for one partner-mirrored model within a session."""

    def __init__(self, db: AsyncSession, model: Type[ModelT]):
        self.db = db
        self.model = model

    async def list_active(self) -> List[ModelT]:
        result = await self.db.execute(select(self.model).where(self.model.is_active))
        return list(result.scalars().all())

    async def index_by_partner_id(self) -> Dict[UUID, ModelT]:
        """Map ``id_partner`` to row, soft-deleted rows included, so a
        reappearing record is reactivated rather than re-inserted."""
        result = await self.db.execute(select(self.model))
        return {row.id_partner: row for row in result.scalars().all()}

    async def active_ids_by_partner_id(self) -> Dict[UUID, int]:
        """Local primary keys of active rows, for resolving references."""
        result = await self.db.execute(
            select(self.model.id_partner, self.model.id).where(self.model.is_active)
        )
        return {partner_id: local_id for partner_id, local_id in result.all()}

    def add(self, record: ModelT) -> None:
        self.db.add(record)
