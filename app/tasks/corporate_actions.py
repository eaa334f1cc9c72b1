"""Corporate action detection task."""

import asyncio
import logging
from typing import Optional

from app.core.database import AsyncSessionLocal
from app.services.corporate_action_service import corporate_action_service
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run an async coroutine from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def detect_corporate_actions_async(cancel_event: Optional[asyncio.Event] = None) -> dict:
    """Create proposals for every open corporate action and affected portfolio."""
    async with AsyncSessionLocal() as db:
        try:
            summary = await corporate_action_service.detect(db, cancel_event=cancel_event)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.info(
        f"Corporate action detection: {summary['actions_scanned']} actions, "
        f"{summary['proposals_created']} proposals created, {summary['actions_closed']} closed"
    )
    return summary


@celery_app.task(name="tasks.detect_corporate_actions")
def detect_corporate_actions() -> dict:
    """Celery task: scan open corporate actions for affected portfolios."""
    return run_async(detect_corporate_actions_async())
