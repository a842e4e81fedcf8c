from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
import uvicorn
import logging
from contextlib import asynccontextmanager

from api_integracao.core.config import settings
from api_integracao.core.database import init_db, AsyncSessionLocal
from api_integracao.api.v1 import sync
from api_integracao.integrations.cettpro.client import PartnerClient
from api_integracao.integrations.cettpro.retry import RetryConfig
from api_integracao.services.sync.orchestrator import SyncOrchestrator

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize database
    await init_db()

    # One partner client, and so one token cache, per process
    client = PartnerClient.from_settings(settings)
    app.state.partner_client = client
    app.state.sync_orchestrator = SyncOrchestrator(
        AsyncSessionLocal,
        client,
        retry_config=RetryConfig.from_settings(settings)
    )
    logger.info(f"{settings.APP_NAME} started, partner API at {settings.CETTPRO_BASE_URL}")

    yield

    await client.close()


app = FastAPI(
    title="API Integracao CETTPRO",
    description="Synchronization of courses, classes, students and enrollments with the CETTPRO partner API",
    version="1.0.0",
    lifespan=lifespan
)

# Include API routers
app.include_router(sync.router, prefix="/api/v1/sync", tags=["sync"])


@app.get("/")
async def root():
    return {"message": "API Integracao CETTPRO", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": "1.0.0"}


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "status_code": exc.status_code}
    )


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if not settings.DEBUG else "debug"
    )
