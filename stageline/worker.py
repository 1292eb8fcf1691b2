"""
ARQ Worker for background cascade persistence.

This worker handles:
- cascade_subtree: Pushes a manually edited stage's dates to its dependents

Usage:
    arq stageline.worker.WorkerSettings
"""

from arq import create_pool
from arq.connections import RedisSettings, ArqRedis

from stageline.config import get_settings
from stageline.services.recalc import cascade_subtree
from stageline.logging_config import setup_logging, get_logger

logger = get_logger(__name__)

settings = get_settings()


async def startup(ctx: dict) -> None:
    """Worker startup."""
    setup_logging()
    logger.info("ARQ Worker starting up...")
    logger.info(f"Redis: {settings.redis_url}")


async def shutdown(ctx: dict) -> None:
    """Worker shutdown - cleanup."""
    logger.info("ARQ Worker shutting down...")


class WorkerSettings:
    """ARQ Worker configuration."""

    functions = [cascade_subtree]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = settings.worker_max_jobs
    job_timeout = settings.worker_job_timeout


# Redis pool for enqueuing jobs from the API
_arq_pool: ArqRedis | None = None


async def get_arq_pool() -> ArqRedis:
    """Get or create the ARQ Redis pool for enqueuing jobs."""
    global _arq_pool
    if _arq_pool is None:
        logger.debug("Creating ARQ Redis pool")
        _arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    return _arq_pool


async def enqueue_cascade(
    project_id: str,
    stage_id: str,
    version_id: str,
    pull_earlier: bool = False,
) -> None:
    """Enqueue a cascade job for an edited stage and its dependents."""
    pool = await get_arq_pool()
    logger.debug(f"Enqueuing cascade job: project={project_id[:8]}... stage={stage_id} version={version_id[:8]}...")
    await pool.enqueue_job("cascade_subtree", project_id, stage_id, version_id, pull_earlier)
