"""
Sequencing of entity reconciliations and manual trigger operations.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from api_integracao.integrations.cettpro.client import PartnerClient
from api_integracao.integrations.cettpro.errors import log_error
from api_integracao.integrations.cettpro.retry import RetryConfig
from api_integracao.models.sync_log import EntityType, SyncOperation
from api_integracao.services.sync.adapters import DateRange, EntityAdapter, RosterSource, build_adapters
from api_integracao.services.sync.audit import SyncAuditWriter
from api_integracao.services.sync.reconciler import EntityReconciler
from api_integracao.services.sync.result import SyncResult


logger = logging.getLogger(__name__)

# Each stage depends on the rows committed by the previous ones
SYNC_ORDER = (
    EntityType.COURSE,
    EntityType.CLASS,
    EntityType.STUDENT,
    EntityType.ENROLLMENT,
)


class SyncOrchestrator:
    """Runs reconciliations stage by stage and audits each one.

    Stages never raise: any failure is captured in the stage's SyncResult.
    Runs are not serialized against each other; a manual trigger may overlap a
    scheduled run.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        client: PartnerClient,
        audit_writer: Optional[SyncAuditWriter] = None,
        retry_config: Optional[RetryConfig] = None
    ):
        self.session_factory = session_factory
        self.client = client
        self.audit_writer = audit_writer or SyncAuditWriter(session_factory)
        self.retry_config = retry_config or RetryConfig()

    async def sync_all(self) -> SyncResult:
        """
        Reconcile every entity type in dependency order.

        A failed stage does not stop the later ones.

        Returns:
            Combined result; success only if every stage succeeded
        """
        logger.info("Starting full CETTPRO synchronization")

        adapters = build_adapters(RosterSource())
        results: List[SyncResult] = []
        for entity_type in SYNC_ORDER:
            results.append(await self._run_stage(adapters[entity_type]))

        combined = SyncResult.combine(results, entity_type="all")
        logger.info(
            f"Full synchronization finished: success={combined.success}, "
            f"processed={combined.total_processed}, inserted={combined.inserted}, "
            f"updated={combined.updated}, deleted={combined.deleted}, errors={len(combined.errors)}"
        )
        return combined

    async def sync_entity(self, entity_type: Union[EntityType, str]) -> SyncResult:
        """Reconcile a single entity type."""
        entity_type = EntityType(entity_type)
        return await self._run_stage(build_adapters()[entity_type])

    async def sync_by_date_range(
        self,
        entity_type: Union[EntityType, str],
        date_from: date,
        date_to: date
    ) -> SyncResult:
        """
        Reconcile records whose start date falls within ``[date_from, date_to]``.

        Only the records in range are touched; nothing is soft-deleted because
        the bounded fetch is not the complete remote set.

        Args:
            entity_type: Entity type; only classes support a bounded fetch
            date_from: First start date included
            date_to: Last start date included

        Returns:
            SyncResult of the bounded pass, or a failed result for an
            unsupported type or an inverted range
        """
        entity_type = EntityType(entity_type)
        adapter = build_adapters()[entity_type]

        if not adapter.supports_date_range:
            result = SyncResult(entity_type=entity_type.value).fail(
                f"Date-range sync is not supported for {entity_type.value}"
            ).finish()
            await self.audit_writer.record(result, SyncOperation.SYNC_BY_DATE_RANGE)
            return result

        if date_from > date_to:
            result = SyncResult(entity_type=entity_type.value).fail(
                f"Invalid date range: {date_from.isoformat()} is after {date_to.isoformat()}"
            ).finish()
            await self.audit_writer.record(result, SyncOperation.SYNC_BY_DATE_RANGE)
            return result

        return await self._run_stage(
            adapter,
            query=DateRange(date_from, date_to),
            prune=False,
            operation=SyncOperation.SYNC_BY_DATE_RANGE
        )

    async def sync_recent_classes(self, days: int = 30) -> SyncResult:
        """Classes that started within the last ``days`` days."""
        today = date.today()
        return await self.sync_by_date_range(EntityType.CLASS, today - timedelta(days=days), today)

    async def _run_stage(
        self,
        adapter: EntityAdapter,
        query: Optional[DateRange] = None,
        prune: bool = True,
        operation: str = SyncOperation.SYNC
    ) -> SyncResult:
        entity_type = adapter.entity_type.value
        started_at = datetime.utcnow()

        try:
            async with self.session_factory() as db:
                reconciler = EntityReconciler(db, self.client, adapter, self.retry_config)
                result = await reconciler.reconcile(query=query, prune=prune)
        except Exception as e:
            log_error(e, {'entity_type': entity_type, 'stage': 'reconcile'})
            result = SyncResult(entity_type=entity_type, started_at=started_at).fail(
                f"Unexpected error during {entity_type} synchronization: {e}"
            ).finish()

        await self.audit_writer.record(result, operation)
        return result
