"""Main FastAPI application for board-sync-service."""

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from board_sync.api.dependencies import close_session, current_session, open_session
from board_sync.api.routes.commands import router as commands_router
from board_sync.config import settings
from board_sync.infrastructure.database import db_client

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    storage: str
    cached_cases: int


# Create FastAPI app
app = FastAPI(
    title="Board Sync Service",
    description="Live case board synchronization and command dispatch",
    version=settings.app_version,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(commands_router)


@app.on_event("startup")
async def startup():
    """Initialize storage and start the board session."""
    logger.info(f"Starting {settings.service_name} on port {settings.port}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Storage: {settings.storage_type}")

    try:
        if settings.storage_type.lower() == "database":
            # Verify connection with retry logic
            await db_client.verify_connection()
            await db_client.create_tables()
            logger.info("Database initialized successfully")
        await open_session()
    except Exception as e:
        logger.error(f"Failed to start board session: {e}")
        raise


@app.on_event("shutdown")
async def shutdown():
    """Release the board session and database resources."""
    logger.info("Shutting down service")
    await close_session()
    await db_client.close()


@app.get("/health", response_model=HealthResponse, summary="Health Check")
async def health_check():
    """Health check endpoint."""
    session = current_session()

    return HealthResponse(
        status="healthy" if session is not None and session.active else "starting",
        service=settings.service_name,
        version=settings.app_version,
        storage=settings.storage_type,
        cached_cases=len(session.cache) if session is not None else 0,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "board_sync.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.environment == "development",
    )
