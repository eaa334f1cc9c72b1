"""Holding aggregates: row locking, totals and valuation."""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import money
from app.core.errors import ResourceNotFound
from app.models.holding import Holding
from app.models.tax_lot import TaxLot

logger = logging.getLogger(__name__)


class HoldingService:
    """Service for the derived per-symbol holding rows."""

    async def lock(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        symbol: str,
        create: bool = False,
    ) -> Optional[Holding]:
        """Fetch the holding for (portfolio, symbol) under a row lock.

        Every ledger mutation on a (portfolio, symbol) goes through this lock,
        which serializes concurrent sells on the same position. With
        ``create`` a zeroed holding is inserted when none exists.
        """
        query = (
            select(Holding)
            .where(Holding.portfolio_id == portfolio_id, Holding.symbol == symbol)
            .with_for_update()
        )
        result = await db.execute(query)
        holding = result.scalar_one_or_none()
        if holding is not None or not create:
            return holding

        holding = Holding(
            portfolio_id=portfolio_id,
            symbol=symbol,
            quantity=money.ZERO,
            cost_basis=money.ZERO,
            avg_cost_price=money.ZERO,
        )
        try:
            async with db.begin_nested():
                db.add(holding)
                await db.flush()
        except IntegrityError:
            # Another request created it first; take its lock instead
            logger.debug(f"Holding {symbol} created concurrently in portfolio {portfolio_id}")
            result = await db.execute(query)
            holding = result.scalar_one()
        return holding

    @staticmethod
    def set_totals(holding: Holding, quantity: Decimal, cost_basis: Decimal) -> Holding:
        """Write totals and derive the average cost. A zero position carries zero cost."""
        quantity = money.quantize(quantity)
        cost_basis = money.quantize(cost_basis) if money.is_positive(quantity) else money.ZERO
        holding.quantity = quantity
        holding.cost_basis = cost_basis
        holding.avg_cost_price = money.div(cost_basis, quantity)
        return holding

    def add(self, holding: Holding, quantity: Decimal, cost_basis: Decimal) -> Holding:
        return self.set_totals(holding, holding.quantity + quantity, holding.cost_basis + cost_basis)

    def remove(self, holding: Holding, quantity: Decimal, cost_basis: Decimal) -> Holding:
        return self.set_totals(holding, holding.quantity - quantity, holding.cost_basis - cost_basis)

    def recompute_from_lots(self, holding: Holding, lots: Iterable[TaxLot]) -> Holding:
        """Rebuild totals from the open lots of the holding's symbol."""
        open_lots = [lot for lot in lots if money.is_positive(lot.quantity)]
        return self.set_totals(
            holding,
            money.total(lot.quantity for lot in open_lots),
            money.total(lot.cost_basis for lot in open_lots),
        )

    async def list_for_portfolio(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        include_closed: bool = False,
    ) -> List[Holding]:
        query = select(Holding).where(Holding.portfolio_id == portfolio_id)
        if not include_closed:
            query = query.where(Holding.quantity > 0)
        result = await db.execute(query.order_by(Holding.symbol))
        return list(result.scalars().all())

    async def get_by_symbol(self, db: AsyncSession, portfolio_id: UUID, symbol: str) -> Holding:
        result = await db.execute(
            select(Holding).where(
                Holding.portfolio_id == portfolio_id,
                Holding.symbol == symbol.upper(),
            )
        )
        holding = result.scalar_one_or_none()
        if holding is None:
            raise ResourceNotFound(f"No holding for {symbol.upper()}")
        return holding

    async def holdings_for_symbol(self, db: AsyncSession, symbol: str) -> List[Holding]:
        """Open holdings of ``symbol`` across every portfolio."""
        result = await db.execute(
            select(Holding)
            .where(Holding.symbol == symbol, Holding.quantity > 0)
            .order_by(Holding.portfolio_id)
        )
        return list(result.scalars().all())

    @staticmethod
    def valuation(holding: Holding, price: Optional[Decimal]) -> Dict:
        """Market value and unrealized gain; without a price the cost basis stands in."""
        if price is None:
            market_value = holding.cost_basis
        else:
            market_value = money.mul(holding.quantity, price)
        unrealized = market_value - holding.cost_basis
        return {
            "current_price": price,
            "market_value": market_value,
            "unrealized_gain": unrealized,
            "unrealized_gain_pct": money.percent(unrealized, holding.cost_basis),
        }


holding_service = HoldingService()
