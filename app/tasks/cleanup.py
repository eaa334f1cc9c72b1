"""Cleanup of expired refresh credentials, reset tickets and cached quotes."""

import asyncio
import logging
from typing import Optional

from app.core.database import AsyncSessionLocal
from app.core.retry import with_retry
from app.services.auth_service import auth_service
from app.services.market_data_service import market_data_service
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run an async coroutine from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _delete_expired() -> dict:
    async with AsyncSessionLocal() as db:
        deleted = await auth_service.cleanup_expired(db)
        await db.commit()
        return deleted


async def cleanup_expired_async(cancel_event: Optional[asyncio.Event] = None) -> dict:
    """Delete expired credentials and tickets, then drop the quote cache."""
    deleted = await with_retry(_delete_expired, "Expired credential cleanup")
    deleted["cached_quotes"] = market_data_service.clear_cache()
    logger.info(
        f"Cleanup removed {deleted['refresh_credentials']} refresh credentials, "
        f"{deleted['password_reset_tickets']} reset tickets and {deleted['cached_quotes']} cached quotes"
    )
    return deleted


@celery_app.task(name="tasks.cleanup_expired")
def cleanup_expired() -> dict:
    """Celery task: purge expired session state."""
    return run_async(cleanup_expired_async())
