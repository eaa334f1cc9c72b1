"""Portfolio snapshot service for historical value tracking."""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import money
from app.core.errors import ResourceNotFound, SnapshotExists
from app.models.holding import Holding
from app.models.performance_snapshot import PerformanceSnapshot
from app.models.portfolio import Portfolio
from app.services.holding_service import holding_service

logger = logging.getLogger(__name__)


class SnapshotService:
    """Service for managing portfolio value snapshots."""

    async def get_by_date(self, db: AsyncSession, portfolio_id: UUID, snapshot_date: date) -> Optional[PerformanceSnapshot]:
        result = await db.execute(
            select(PerformanceSnapshot).where(
                PerformanceSnapshot.portfolio_id == portfolio_id,
                PerformanceSnapshot.date == snapshot_date,
            )
        )
        return result.scalar_one_or_none()

    async def _previous(self, db: AsyncSession, portfolio_id: UUID, before: date) -> Optional[PerformanceSnapshot]:
        result = await db.execute(
            select(PerformanceSnapshot)
            .where(
                PerformanceSnapshot.portfolio_id == portfolio_id,
                PerformanceSnapshot.date < before,
            )
            .order_by(PerformanceSnapshot.date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_snapshot(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        prices: Dict[str, Decimal],
        snapshot_date: Optional[date] = None,
    ) -> PerformanceSnapshot:
        """Record the portfolio's value for one day.

        Holdings without a price are valued at cost. Day change is measured
        against the latest earlier snapshot.
        """
        snapshot_date = snapshot_date or date.today()
        if await self.get_by_date(db, portfolio.id, snapshot_date) is not None:
            raise SnapshotExists()

        total_value = money.ZERO
        total_cost_basis = money.ZERO
        for holding in await holding_service.list_for_portfolio(db, portfolio.id):
            total_cost_basis += holding.cost_basis
            total_value += holding_service.valuation(holding, prices.get(holding.symbol))["market_value"]

        total_return = total_value - total_cost_basis
        snapshot = PerformanceSnapshot(
            portfolio_id=portfolio.id,
            date=snapshot_date,
            total_value=total_value,
            total_cost_basis=total_cost_basis,
            total_return=total_return,
            total_return_pct=money.percent(total_return, total_cost_basis),
        )

        previous = await self._previous(db, portfolio.id, snapshot_date)
        if previous is not None:
            snapshot.day_change = total_value - previous.total_value
            snapshot.day_change_pct = money.percent(snapshot.day_change, previous.total_value)

        try:
            async with db.begin_nested():
                db.add(snapshot)
                await db.flush()
        except IntegrityError as e:
            raise SnapshotExists() from e

        await db.refresh(snapshot)
        logger.info(f"Snapshot for portfolio {portfolio.id} on {snapshot_date}: value {total_value}")
        return snapshot

    async def list_snapshots(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PerformanceSnapshot]:
        result = await db.execute(
            select(PerformanceSnapshot)
            .where(PerformanceSnapshot.portfolio_id == portfolio_id)
            .order_by(PerformanceSnapshot.date.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_range(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        start_date: date,
        end_date: date,
    ) -> List[PerformanceSnapshot]:
        result = await db.execute(
            select(PerformanceSnapshot)
            .where(
                PerformanceSnapshot.portfolio_id == portfolio_id,
                PerformanceSnapshot.date >= start_date,
                PerformanceSnapshot.date <= end_date,
            )
            .order_by(PerformanceSnapshot.date.asc())
        )
        return list(result.scalars().all())

    async def get_latest(self, db: AsyncSession, portfolio_id: UUID) -> PerformanceSnapshot:
        result = await db.execute(
            select(PerformanceSnapshot)
            .where(PerformanceSnapshot.portfolio_id == portfolio_id)
            .order_by(PerformanceSnapshot.date.desc())
            .limit(1)
        )
        snapshot = result.scalar_one_or_none()
        if snapshot is None:
            raise ResourceNotFound("No snapshots for this portfolio")
        return snapshot

    async def portfolios_to_snapshot(self, db: AsyncSession, snapshot_date: date) -> List[Portfolio]:
        """Portfolios with an open position and no snapshot yet for ``snapshot_date``."""
        taken = select(PerformanceSnapshot.portfolio_id).where(PerformanceSnapshot.date == snapshot_date)
        holding_portfolios = select(Holding.portfolio_id).where(Holding.quantity > 0)
        result = await db.execute(
            select(Portfolio)
            .where(
                Portfolio.id.in_(holding_portfolios),
                Portfolio.id.not_in(taken),
            )
            .order_by(Portfolio.created_at)
        )
        return list(result.scalars().all())


snapshot_service = SnapshotService()
