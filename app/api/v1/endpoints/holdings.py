"""Holding endpoints: open positions and their market value."""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_owned_portfolio
from app.core import money
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.holding import Holding
from app.models.portfolio import Portfolio
from app.schemas.tax_lot import HoldingResponse, HoldingValuation, PortfolioValue
from app.services.holding_service import holding_service
from app.services.market_data_service import market_data_service

router = APIRouter()


def _valued(holding: Holding, prices) -> HoldingValuation:
    return HoldingValuation(
        **HoldingResponse.model_validate(holding).model_dump(),
        **holding_service.valuation(holding, prices.get(holding.symbol)),
    )


@router.get("/holdings", response_model=List[HoldingResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_holdings(
    request: Request,
    include_closed: bool = False,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[HoldingResponse]:
    """List holdings. Closed positions are hidden unless asked for."""
    return await holding_service.list_for_portfolio(db, portfolio.id, include_closed=include_closed)


@router.get("/holdings/{symbol}", response_model=HoldingValuation)
@limiter.limit(RATE_LIMITS["price_fetch"])
async def get_holding(
    request: Request,
    symbol: str,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> HoldingValuation:
    """One holding valued at the current quote, or at cost when none is available."""
    holding = await holding_service.get_by_symbol(db, portfolio.id, symbol)
    prices = await market_data_service.get_prices([holding.symbol])
    return _valued(holding, prices)


@router.get("/value", response_model=PortfolioValue)
@limiter.limit(RATE_LIMITS["price_fetch"])
async def get_portfolio_value(
    request: Request,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> PortfolioValue:
    """Market value of every open position."""
    holdings = await holding_service.list_for_portfolio(db, portfolio.id)
    prices = await market_data_service.get_prices(h.symbol for h in holdings)
    valued = [_valued(h, prices) for h in holdings]

    total_value = money.total(v.market_value for v in valued)
    total_cost = money.total(v.cost_basis for v in valued)
    unrealized = total_value - total_cost
    return PortfolioValue(
        portfolio_id=portfolio.id,
        total_value=total_value,
        total_cost_basis=total_cost,
        unrealized_gain=unrealized,
        unrealized_gain_pct=money.percent(unrealized, total_cost),
        holdings=valued,
    )
