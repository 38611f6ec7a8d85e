"""FastAPI application main entry point"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.database import create_tables
from app.core.exceptions import AppError
from app.core.log_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup and shutdown events.

    Args:
        app: FastAPI application instance
    """
    # Startup
    setup_logging(settings.LOG_LEVEL)
    logger.info("Creating database tables...")
    await create_tables()
    yield
    # Shutdown
    logger.info("Application shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Scan orchestration service for GitHub App installations and local projects",
    lifespan=lifespan,
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    content = {"detail": exc.message}
    run_id = getattr(exc, "run_id", None)
    if run_id:
        content["scan_id"] = run_id
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


# Include routers
app.include_router(v1_router)


@app.get("/", tags=["health"])
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Status and service information
    """
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
