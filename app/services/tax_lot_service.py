"""Read side of the lot ledger: lots, sale previews, realized gains and tax views."""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import extract, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import money
from app.core.errors import ResourceNotFound
from app.models.portfolio import CostBasisMethod, Portfolio
from app.models.realized_gain import HoldingPeriod, RealizedGain
from app.models.tax_lot import TaxLot
from app.services import cost_basis
from app.services.holding_service import holding_service
from app.services.ledger_service import ledger_service

logger = logging.getLogger(__name__)


def lot_view(lot: TaxLot, as_of: Optional[date] = None) -> Dict:
    as_of = as_of or date.today()
    return {
        "id": lot.id,
        "portfolio_id": lot.portfolio_id,
        "symbol": lot.symbol,
        "purchase_date": lot.purchase_date,
        "quantity": lot.quantity,
        "cost_basis": lot.cost_basis,
        "cost_per_share": money.div(lot.cost_basis, lot.quantity),
        "is_long_term": money.is_long_term(lot.purchase_date, as_of),
        "transaction_id": lot.transaction_id,
        "created_at": lot.created_at,
    }


class TaxLotService:
    """Service for querying tax lots and realized gains."""

    async def list_lots(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        symbol: Optional[str] = None,
    ) -> List[TaxLot]:
        query = select(TaxLot).where(TaxLot.portfolio_id == portfolio_id, TaxLot.quantity > 0)
        if symbol:
            query = query.where(TaxLot.symbol == symbol.upper())
        result = await db.execute(query.order_by(TaxLot.symbol, TaxLot.purchase_date, TaxLot.created_at))
        return list(result.scalars().all())

    async def get_lot(self, db: AsyncSession, portfolio_id: UUID, lot_id: UUID) -> TaxLot:
        result = await db.execute(
            select(TaxLot).where(TaxLot.id == lot_id, TaxLot.portfolio_id == portfolio_id)
        )
        lot = result.scalar_one_or_none()
        if lot is None:
            raise ResourceNotFound("Tax lot not found")
        return lot

    async def preview_allocation(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        symbol: str,
        quantity: Decimal,
        price: Optional[Decimal] = None,
        commission: Decimal = money.ZERO,
        sale_date: Optional[date] = None,
        method: Optional[CostBasisMethod] = None,
        lot_ids: Optional[List[UUID]] = None,
    ) -> Dict:
        """Run the lot selector without touching the ledger."""
        symbol = symbol.strip().upper()
        method = method or portfolio.cost_basis_method
        sale_date = sale_date or date.today()

        selection = cost_basis.selection_for(method, lot_ids)
        lots = await ledger_service.open_lots(db, portfolio.id, symbol)
        plan = cost_basis.plan_sale(lots, quantity, selection, symbol)

        if price is not None:
            slices = cost_basis.price_sale(plan, price, commission, sale_date)
            allocations = [
                {
                    "tax_lot_id": s.lot.id,
                    "purchase_date": s.lot.purchase_date,
                    "quantity": s.take,
                    "cost_basis": s.cost_basis,
                    "proceeds": s.proceeds,
                    "gain": s.gain,
                    "holding_period": s.holding_period,
                }
                for s in slices
            ]
            total_proceeds = money.total(s.proceeds for s in slices)
            total_gain = money.total(s.gain for s in slices)
        else:
            allocations = [
                {
                    "tax_lot_id": t.lot.id,
                    "purchase_date": t.lot.purchase_date,
                    "quantity": t.take,
                    "cost_basis": cost_basis.consumed_cost(t.lot, t.take),
                    "holding_period": (
                        HoldingPeriod.LONG
                        if money.is_long_term(t.lot.purchase_date, sale_date)
                        else HoldingPeriod.SHORT
                    ),
                }
                for t in plan
            ]
            total_proceeds = None
            total_gain = None

        return {
            "symbol": symbol,
            "method": method,
            "quantity": quantity,
            "allocations": allocations,
            "total_cost_basis": money.total(a["cost_basis"] for a in allocations),
            "total_proceeds": total_proceeds,
            "total_gain": total_gain,
        }

    async def list_realized_gains(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        symbol: Optional[str] = None,
        year: Optional[int] = None,
    ) -> List[RealizedGain]:
        query = select(RealizedGain).where(RealizedGain.portfolio_id == portfolio_id)
        if symbol:
            query = query.where(RealizedGain.symbol == symbol.upper())
        if year:
            query = query.where(extract("year", RealizedGain.sale_date) == year)
        result = await db.execute(query.order_by(RealizedGain.sale_date, RealizedGain.purchase_date))
        return list(result.scalars().all())

    async def tax_report(self, db: AsyncSession, portfolio_id: UUID, year: int) -> Dict:
        gains = await self.list_realized_gains(db, portfolio_id, year=year)
        short_term = [g for g in gains if g.holding_period == HoldingPeriod.SHORT]
        long_term = [g for g in gains if g.holding_period == HoldingPeriod.LONG]

        total_short = money.total(g.gain for g in short_term)
        total_long = money.total(g.gain for g in long_term)
        return {
            "year": year,
            "short_term_gains": short_term,
            "long_term_gains": long_term,
            "total_short_term_gain": total_short,
            "total_long_term_gain": total_long,
            "total_gain": total_short + total_long,
        }

    async def tax_loss_opportunities(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        prices: Dict[str, Decimal],
        min_loss_percent: Decimal = Decimal("5"),
    ) -> List[Dict]:
        """Open positions trading below cost by more than ``min_loss_percent``.

        Symbols without a price are skipped.
        """
        opportunities = []
        for holding in await holding_service.list_for_portfolio(db, portfolio_id):
            price = prices.get(holding.symbol)
            if price is None:
                continue
            current_value = money.mul(holding.quantity, price)
            loss = holding.cost_basis - current_value
            if not money.is_positive(loss):
                continue
            loss_percent = money.percent(loss, holding.cost_basis)
            if loss_percent < min_loss_percent:
                continue
            opportunities.append(
                {
                    "symbol": holding.symbol,
                    "current_quantity": holding.quantity,
                    "cost_basis": holding.cost_basis,
                    "current_price": price,
                    "current_value": current_value,
                    "unrealized_loss": loss,
                    "loss_percent": loss_percent,
                }
            )
        opportunities.sort(key=lambda o: o["unrealized_loss"], reverse=True)
        return opportunities


tax_lot_service = TaxLotService()
