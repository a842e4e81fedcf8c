"""
Generic diff-and-apply reconciliation of one entity type.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api_integracao.integrations.cettpro.client import PartnerClient
from api_integracao.integrations.cettpro.errors import PersistenceError, log_error
from api_integracao.integrations.cettpro.retry import RetryConfig, retry_on_error
from api_integracao.services.sync.adapters import DateRange, EntityAdapter
from api_integracao.services.sync.result import SyncResult
from api_integracao.services.sync.store import PartnerRecordStore


logger = logging.getLogger(__name__)


def describe_error(error: Exception) -> str:
    """One-line description of a per-record failure."""
    if isinstance(error, ValidationError):
        return "; ".join(
            f"{'.'.join(str(part) for part in item['loc']) or 'record'}: {item['msg']}"
            for item in error.errors()
        )
    if isinstance(error, DBAPIError) and error.orig is not None:
        return f"rejected by the database: {error.orig}"
    return str(error) or type(error).__name__


class EntityReconciler:
    """Brings local rows of one entity type in line with the partner's set.

    The pass fetches the remote collection, then walks it. Local rows and
    reference lookups are loaded before the loop, so the only remote call is
    the fetch. Each record is flushed inside its own savepoint, and the pass
    ends with a single commit.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: PartnerClient,
        adapter: EntityAdapter,
        retry_config: Optional[RetryConfig] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.db = db
        self.client = client
        self.adapter = adapter
        self.retry_config = retry_config or RetryConfig()
        self.store = PartnerRecordStore(db, adapter.model)
        self._clock = clock

    @property
    def entity_type(self) -> str:
        return self.adapter.entity_type.value

    async def reconcile(self, query: Optional[DateRange] = None, prune: bool = True) -> SyncResult:
        """
        Run one reconciliation pass.

        Args:
            query: Optional date bounds passed to the adapter's fetch
            prune: Soft-delete active rows missing from the remote set. Must be
                False when the fetch is not the complete authoritative set.

        Returns:
            SyncResult for this entity type
        """
        result = SyncResult(entity_type=self.entity_type, started_at=self._clock())
        logger.info(f"Starting {self.entity_type} reconciliation")

        # 1. Fetch; any failure here leaves local state untouched
        try:
            records = await retry_on_error(
                self.adapter.fetch_remote,
                self.retry_config,
                client=self.client,
                db=self.db,
                query=query
            )
        except Exception as e:
            log_error(e, {'entity_type': self.entity_type, 'stage': 'fetch'})
            return result.fail(f"Failed to fetch {self.entity_type} records: {describe_error(e)}").finish(self._clock())

        result.total_processed = len(records)

        try:
            local_index = await self.store.index_by_partner_id()
            await self.adapter.load_references(self.db)
        except SQLAlchemyError as e:
            error = PersistenceError(f"Failed to load local {self.entity_type} records: {e}", original_exception=e)
            log_error(error, {'entity_type': self.entity_type, 'stage': 'load'})
            return result.fail(error.message).finish(self._clock())

        # 2. Diff and apply, isolating failures per record
        now = self._clock()
        seen: Set[UUID] = set()
        rejected_by_store = False

        for position, raw in enumerate(records, start=1):
            key = self.adapter.partner_key(raw)
            if key is not None:
                seen.add(key)

            try:
                if key is None:
                    raise ValueError(f"missing or invalid {self.adapter.key_alias}")
                values = self.adapter.map_to_local(self.adapter.decode(raw))

                # A row the database rejects rolls back only its own savepoint
                async with self.db.begin_nested():
                    outcome = self._apply(key, values, local_index, now)
                    await self.db.flush()
            except Exception as e:
                if isinstance(e, SQLAlchemyError):
                    # Rolled-back rows are expunged or expired; never touch them again
                    local_index.pop(key, None)
                    rejected_by_store = True
                label = str(key) if key is not None else f"#{position}"
                message = f"{self.entity_type} {label}: {describe_error(e)}"
                result.add_error(message)
                logger.warning(f"Skipping {message}")
                continue

            if outcome == "inserted":
                result.inserted += 1
            elif outcome == "updated":
                result.updated += 1

        # 3. Soft-delete rows the partner no longer lists
        if prune:
            if rejected_by_store:
                local_index = await self.store.index_by_partner_id()
            for id_partner, record in local_index.items():
                if record.is_active and id_partner not in seen:
                    record.soft_delete(now)
                    result.deleted += 1

        # 4. One commit for the whole pass
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            error = PersistenceError(f"Failed to commit {self.entity_type} changes: {e}", original_exception=e)
            log_error(error, {'entity_type': self.entity_type, 'stage': 'commit'})
            result.inserted = result.updated = result.deleted = 0
            return result.fail(error.message).finish(self._clock())

        result.finish(self._clock())
        logger.info(
            f"{self.entity_type} reconciliation finished: {result.total_processed} processed, "
            f"{result.inserted} inserted, {result.updated} updated, {result.deleted} deleted, "
            f"{len(result.errors)} errors"
        )
        return result

    def _apply(
        self,
        key: UUID,
        values: Dict[str, Any],
        local_index: Dict[UUID, Any],
        now: datetime
    ) -> Optional[str]:
        """Stage one record in the session. Returns "inserted", "updated" or None."""
        record = local_index.get(key)

        if record is None:
            record = self.adapter.new_record(key, values)
            self.store.add(record)
            local_index[key] = record
            return "inserted"

        changed = False
        for name in self.adapter.fields:
            if getattr(record, name) != values[name]:
                setattr(record, name, values[name])
                changed = True

        if not record.is_active:
            record.restore()
            changed = True

        if not changed:
            return None

        record.updated_at = now
        return "updated"
