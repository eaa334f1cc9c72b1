"""Portfolio management and the ownership gate for portfolio-scoped operations."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicatePortfolioName, PortfolioNotFound, Unauthorized
from app.models.holding import Holding
from app.models.performance_snapshot import PerformanceSnapshot
from app.models.portfolio import CostBasisMethod, Portfolio
from app.models.portfolio_action import PortfolioActionProposal
from app.models.realized_gain import RealizedGain
from app.models.tax_lot import TaxLot
from app.models.transaction import Transaction

logger = logging.getLogger(__name__)


class PortfolioService:
    """Service for portfolio CRUD scoped to one user."""

    async def get(self, db: AsyncSession, portfolio_id: UUID) -> Portfolio:
        """Unscoped lookup for background jobs. User requests go through ``get_owned``."""
        portfolio = await db.get(Portfolio, portfolio_id)
        if portfolio is None:
            raise PortfolioNotFound()
        return portfolio

    async def get_owned(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        user_id: UUID,
        for_update: bool = False,
    ) -> Portfolio:
        """Return the portfolio if ``user_id`` owns it.

        A missing portfolio and someone else's portfolio raise the same
        ``Unauthorized`` so callers cannot test for existence.
        """
        query = select(Portfolio).where(Portfolio.id == portfolio_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        portfolio = result.scalar_one_or_none()

        if portfolio is None or portfolio.user_id != user_id:
            raise Unauthorized()
        return portfolio

    async def list_for_user(self, db: AsyncSession, user_id: UUID) -> List[Portfolio]:
        result = await db.execute(
            select(Portfolio)
            .where(Portfolio.user_id == user_id)
            .order_by(Portfolio.created_at.desc(), Portfolio.name)
        )
        return list(result.scalars().all())

    async def _ensure_unique_name(
        self,
        db: AsyncSession,
        user_id: UUID,
        name: str,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        query = select(Portfolio.id).where(Portfolio.user_id == user_id, Portfolio.name == name)
        if exclude_id is not None:
            query = query.where(Portfolio.id != exclude_id)
        result = await db.execute(query)
        if result.first() is not None:
            raise DuplicatePortfolioName(field="name")

    async def create(
        self,
        db: AsyncSession,
        user_id: UUID,
        name: str,
        description: Optional[str] = None,
        base_currency: str = "USD",
        cost_basis_method: CostBasisMethod = CostBasisMethod.FIFO,
    ) -> Portfolio:
        name = name.strip()
        await self._ensure_unique_name(db, user_id, name)

        portfolio = Portfolio(
            user_id=user_id,
            name=name,
            description=description,
            base_currency=base_currency.upper(),
            cost_basis_method=cost_basis_method,
        )
        db.add(portfolio)
        await db.flush()
        await db.refresh(portfolio)
        logger.info(f"Created portfolio {portfolio.id} for user {user_id}")
        return portfolio

    async def update(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        name: Optional[str] = None,
        description: Optional[str] = None,
        cost_basis_method: Optional[CostBasisMethod] = None,
    ) -> Portfolio:
        if name is not None and name.strip() != portfolio.name:
            await self._ensure_unique_name(db, portfolio.user_id, name.strip(), exclude_id=portfolio.id)
            portfolio.name = name.strip()
        if description is not None:
            portfolio.description = description
        if cost_basis_method is not None:
            portfolio.cost_basis_method = cost_basis_method

        await db.flush()
        await db.refresh(portfolio)
        return portfolio

    async def delete(self, db: AsyncSession, portfolio: Portfolio) -> None:
        """Delete a portfolio with its log and all derived state."""
        for model in (
            RealizedGain,
            TaxLot,
            Holding,
            PortfolioActionProposal,
            PerformanceSnapshot,
            Transaction,
        ):
            await db.execute(delete(model).where(model.portfolio_id == portfolio.id))
        await db.delete(portfolio)
        await db.flush()
        logger.info(f"Deleted portfolio {portfolio.id}")


portfolio_service = PortfolioService()
