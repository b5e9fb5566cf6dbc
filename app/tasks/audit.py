"""Celery tasks for audit trail retention."""
import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.database import build_engine, build_session_factory
from app.services.audit_service import audit_service
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@retry(
    retry=retry_if_exception_type(SQLAlchemyError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=4, max=10),
    reraise=True,
)
async def _purge(days_to_keep: Optional[int]) -> int:
    # Each run gets its own engine: asyncio.run creates a fresh event loop
    engine = build_engine()
    session_factory = build_session_factory(engine)
    try:
        async with session_factory() as db:
            result = await audit_service.purge_older_than(db, days_to_keep=days_to_keep)
        return result["deleted_count"]
    finally:
        await engine.dispose()


@celery_app.task(name="app.tasks.audit.purge_expired_audit_logs")
def purge_expired_audit_logs(days_to_keep: Optional[int] = None) -> int:
    """Delete audit logs older than the retention window (default from settings)."""
    deleted = asyncio.run(_purge(days_to_keep))
    logger.info("Retention purge removed %d audit logs", deleted)
    return deleted
