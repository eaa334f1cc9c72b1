"""Daily portfolio snapshot task."""

import asyncio
import logging
from datetime import date
from typing import Optional

from app.core.database import AsyncSessionLocal
from app.core.errors import OperationCancelled, PortfolioNotFound, SnapshotExists
from app.services.holding_service import holding_service
from app.services.market_data_service import market_data_service
from app.services.portfolio_service import portfolio_service
from app.services.snapshot_service import snapshot_service
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run an async coroutine from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def create_daily_snapshots_async(
    cancel_event: Optional[asyncio.Event] = None,
    snapshot_date: Optional[date] = None,
) -> dict:
    """Snapshot every portfolio with open positions that has none for today.

    Each portfolio is committed on its own; one failure does not stop the run.
    """
    snapshot_date = snapshot_date or date.today()
    success_count = 0
    failed_count = 0

    async with AsyncSessionLocal() as db:
        portfolios = await snapshot_service.portfolios_to_snapshot(db, snapshot_date)
        portfolio_ids = [p.id for p in portfolios]

    for portfolio_id in portfolio_ids:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("Snapshot generation cancelled")

        async with AsyncSessionLocal() as db:
            try:
                portfolio = await portfolio_service.get(db, portfolio_id)
                holdings = await holding_service.list_for_portfolio(db, portfolio_id)
                prices = await market_data_service.get_prices(h.symbol for h in holdings)
                await snapshot_service.create_snapshot(db, portfolio, prices, snapshot_date)
                await db.commit()
                success_count += 1
            except SnapshotExists:
                await db.rollback()
            except PortfolioNotFound:
                await db.rollback()
                logger.info(f"Portfolio {portfolio_id} was deleted before its snapshot")
            except Exception as e:
                await db.rollback()
                logger.error(f"Failed to create snapshot for portfolio {portfolio_id}: {e}")
                failed_count += 1

    logger.info(f"Daily snapshots for {snapshot_date}: {success_count} created, {failed_count} failed")
    return {
        "total": len(portfolio_ids),
        "success": success_count,
        "failed": failed_count,
    }


@celery_app.task(name="tasks.create_daily_snapshots")
def create_daily_snapshots() -> dict:
    """Celery task: create today's snapshot for every active portfolio."""
    return run_async(create_daily_snapshots_async())
