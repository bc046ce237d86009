"""
Tunis Lock API Server

FastAPI server for football matchmaking: matches, rosters, ratings and leaderboards.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from tunislock.api.routes import router, limiter as routes_limiter
from tunislock.database import db
from tunislock.services import profile_service
from tunislock.services.aggregation_queue import get_aggregation_queue

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up Tunis Lock API...")

    # Fallback for tables not created by migrations yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Register aggregation callback (must be done before starting worker)
    queue = get_aggregation_queue()
    try:
        queue.register_aggregation_callback(profile_service.recompute_profile)
        queue.start_background_worker()
        logger.info("Profile aggregation worker started")
    except Exception as e:
        logger.error(f"Failed to start profile aggregation worker: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down Tunis Lock API...")
    try:
        queue.stop_background_worker()
        logger.info("Profile aggregation worker stopped")
    except Exception as e:
        logger.error(f"Error stopping profile aggregation worker: {e}", exc_info=True)

    await db.engine.dispose()


app = FastAPI(
    title="Tunis Lock API",
    description="API for organizing football matches, team rosters and player ratings",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/api/health")
async def health_check(session: AsyncSession = Depends(db.get_db_session)):
    """Health check endpoint."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "healthy", "message": "API is running"}
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {"status": "unhealthy", "message": f"Error: {str(e)}"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
