"""
Main FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fieldops.config import get_settings
from fieldops.database import engine, Base
from fieldops import models  # noqa: F401  (registers tables on Base.metadata)
from fieldops.api import tasks, phases, reports, materials, notifications
from fieldops.services.errors import (
    IdentifierConflict, InvalidTransition, NotificationEmissionFailure,
    StorageUnavailable, ValidationError, WorkflowError,
)
from fieldops.utils.logger import configure_logging, get_logger

settings = get_settings()
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

    yield

    await engine.dispose()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping, most specific first
ERROR_STATUS = [
    (InvalidTransition, 409),
    (ValidationError, 400),
    (IdentifierConflict, 503),
    (StorageUnavailable, 503),
    (NotificationEmissionFailure, 502),
]


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Include routers
app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(phases.router, prefix="/api/phases", tags=["Phases"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(materials.router, prefix="/api/materials", tags=["Materials"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fieldops.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
