"""Tax lot, realized gain and tax report endpoints."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_owned_portfolio
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.portfolio import Portfolio
from app.schemas.tax_lot import (
    AllocateSaleRequest,
    AllocationPreview,
    RealizedGainResponse,
    TaxLossOpportunity,
    TaxLotResponse,
    TaxReport,
)
from app.services.holding_service import holding_service
from app.services.market_data_service import market_data_service
from app.services.tax_lot_service import lot_view, tax_lot_service

router = APIRouter()


@router.get("/tax-lots", response_model=List[TaxLotResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_tax_lots(
    request: Request,
    symbol: Optional[str] = None,
    as_of: Optional[date] = None,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[TaxLotResponse]:
    """Open lots, oldest first within each symbol."""
    lots = await tax_lot_service.list_lots(db, portfolio.id, symbol=symbol)
    return [lot_view(lot, as_of) for lot in lots]


@router.post("/tax-lots/allocate", response_model=AllocationPreview)
@limiter.limit(RATE_LIMITS["api_read"])
async def preview_sale_allocation(
    request: Request,
    allocation: AllocateSaleRequest,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> AllocationPreview:
    """Show which lots a sale would consume, without recording anything."""
    return await tax_lot_service.preview_allocation(
        db,
        portfolio,
        symbol=allocation.symbol,
        quantity=allocation.quantity,
        price=allocation.price,
        commission=allocation.commission,
        sale_date=allocation.sale_date,
        method=allocation.method,
        lot_ids=allocation.lot_ids,
    )


@router.get("/tax-lots/{lot_id}", response_model=TaxLotResponse)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_tax_lot(
    request: Request,
    lot_id: UUID,
    as_of: Optional[date] = None,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> TaxLotResponse:
    lot = await tax_lot_service.get_lot(db, portfolio.id, lot_id)
    return lot_view(lot, as_of)


@router.get("/realized-gains", response_model=List[RealizedGainResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_realized_gains(
    request: Request,
    symbol: Optional[str] = None,
    year: Optional[int] = Query(None, ge=1900, le=2200),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[RealizedGainResponse]:
    return await tax_lot_service.list_realized_gains(db, portfolio.id, symbol=symbol, year=year)


@router.get("/tax-report", response_model=TaxReport)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_tax_report(
    request: Request,
    year: int = Query(..., ge=1900, le=2200),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> TaxReport:
    """Realized gains of one year split into short and long term."""
    return await tax_lot_service.tax_report(db, portfolio.id, year)


@router.get("/tax-loss-opportunities", response_model=List[TaxLossOpportunity])
@limiter.limit(RATE_LIMITS["price_fetch"])
async def get_tax_loss_opportunities(
    request: Request,
    min_loss_percent: Decimal = Query(Decimal("5"), ge=0, le=100),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[TaxLossOpportunity]:
    """Positions trading below cost that could be sold to harvest a loss."""
    holdings = await holding_service.list_for_portfolio(db, portfolio.id)
    prices = await market_data_service.get_prices(h.symbol for h in holdings)
    return await tax_lot_service.tax_loss_opportunities(db, portfolio.id, prices, min_loss_percent)
