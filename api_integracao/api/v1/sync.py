"""
API endpoints for manually triggering CETTPRO synchronization.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from api_integracao.core.database import get_db
from api_integracao.models.sync_log import EntityType
from api_integracao.schemas.sync import DateRangeRequest, SyncResultResponse, SyncStatusResponse
from api_integracao.services.sync.audit import latest_successful_syncs
from api_integracao.services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


def get_orchestrator(request: Request) -> SyncOrchestrator:
    orchestrator = getattr(request.app.state, "sync_orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync engine is not initialized"
        )
    return orchestrator


@router.post("/all", response_model=SyncResultResponse)
async def sync_all(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Synchronize courses, classes, students and enrollments in order"""
    result = await orchestrator.sync_all()
    logger.info(f"Manual full sync finished: success={result.success}")
    return SyncResultResponse.from_result(result)


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(db: AsyncSession = Depends(get_db)):
    """Latest successful sync timestamp per entity type"""
    return SyncStatusResponse(last_successful_sync=await latest_successful_syncs(db))


@router.post("/class/recent", response_model=SyncResultResponse)
async def sync_recent_classes(
    days: int = 30,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Synchronize classes that started within the last ``days`` days"""
    if days < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="days must be at least 1"
        )
    result = await orchestrator.sync_recent_classes(days)
    return SyncResultResponse.from_result(result)


@router.post("/{entity_type}", response_model=SyncResultResponse)
async def sync_entity(
    entity_type: EntityType,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Synchronize a single entity type"""
    result = await orchestrator.sync_entity(entity_type)
    logger.info(f"Manual {entity_type.value} sync finished: success={result.success}")
    return SyncResultResponse.from_result(result)


@router.post("/{entity_type}/date-range", response_model=SyncResultResponse)
async def sync_by_date_range(
    entity_type: EntityType,
    date_range: DateRangeRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Synchronize records whose start date falls within the given range"""
    result = await orchestrator.sync_by_date_range(entity_type, date_range.date_from, date_range.date_to)
    return SyncResultResponse.from_result(result)
