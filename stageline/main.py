"""
Stageline - dependency-aware stage scheduling with cascading date propagation.
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager

from stageline.database import init_db
from stageline.routes import projects, stages
from stageline.exceptions import register_exception_handlers
from stageline.logging_config import setup_logging, get_logger

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting Stageline API...")
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down Stageline API...")


app = FastAPI(
    title="Stageline",
    description="Dependency-aware stage scheduling with cascading date propagation",
    version="0.1.0",
    lifespan=lifespan,
)

# Register custom exception handlers
register_exception_handlers(app)

# Include routers
app.include_router(projects.router, prefix="/projects", tags=["Projects"])
app.include_router(stages.router, prefix="/projects", tags=["Stages"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
