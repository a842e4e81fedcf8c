"""
Audit trail writer and freshness queries for sync runs.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api_integracao.models.sync_log import EntityType, SyncLog, SyncOperation
from api_integracao.services.sync.result import SyncResult


logger = logging.getLogger(__name__)


class SyncAuditWriter:
    """Appends one ``sync_logs`` row per reconciliation call.

    Writes use their own session so an audit failure can never roll back or
    mask the sync it describes.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def record(
        self,
        result: SyncResult,
        operation: str = SyncOperation.SYNC
    ) -> Optional[SyncLog]:
        """
        Persist the audit entry for a finished run.

        Args:
            result: Finished sync result
            operation: Operation label

        Returns:
            The stored entry, or None if the write failed
        """
        entry = SyncLog(
            entity_type=result.entity_type,
            operation=operation,
            processed_count=result.total_processed,
            success=result.success,
            error_details="; ".join(result.errors) if result.errors else None,
            started_at=result.started_at,
            finished_at=result.finished_at or datetime.utcnow(),
        )

        try:
            async with self.session_factory() as db:
                db.add(entry)
                await db.commit()
        except Exception as e:
            logger.error(f"Failed to write sync audit entry for {result.entity_type}: {e}")
            return None

        logger.info(
            f"Audited {operation} of {result.entity_type}: success={result.success}, "
            f"processed={result.total_processed}, errors={len(result.errors)}"
        )
        return entry


async def latest_successful_sync(db: AsyncSession, entity_type: str) -> Optional[datetime]:
    """End timestamp of the most recent successful run for ``entity_type``."""
    result = await db.execute(
        select(func.max(SyncLog.finished_at)).where(
            SyncLog.entity_type == entity_type,
            SyncLog.success.is_(True)
        )
    )
    return result.scalar_one_or_none()


async def latest_successful_syncs(db: AsyncSession) -> Dict[str, Optional[datetime]]:
    """Freshness indicator for every entity type, ``None`` when never synced."""
    result = await db.execute(
        select(SyncLog.entity_type, func.max(SyncLog.finished_at))
        .where(SyncLog.success.is_(True))
        .group_by(SyncLog.entity_type)
    )
    found = {entity_type: finished_at for entity_type, finished_at in result.all()}
    return {entity.value: found.get(entity.value) for entity in EntityType}
