"""Market data endpoints."""

from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_current_admin, get_current_user_id
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.user import User
from app.schemas.auth import MessageResponse
from app.schemas.market_data import HistoricalPrice, Quote, QuotesRequest, QuotesResponse
from app.services.market_data_service import market_data_service

router = APIRouter()


@router.get("/quote/{symbol}", response_model=Quote)
@limiter.limit(RATE_LIMITS["price_fetch"])
async def get_quote(
    request: Request,
    symbol: str,
    refresh: bool = False,
    user_id=Depends(get_current_user_id),
) -> Quote:
    """Latest quote, served from cache unless ``refresh`` is set."""
    if refresh:
        return await market_data_service.refresh(symbol)
    return await market_data_service.get_quote(symbol)


@router.post("/quotes", response_model=QuotesResponse)
@limiter.limit(RATE_LIMITS["price_fetch"])
async def get_quotes(
    request: Request,
    quotes_in: QuotesRequest,
    user_id=Depends(get_current_user_id),
) -> QuotesResponse:
    """Quotes for several symbols. Symbols without data are listed in ``missing``."""
    quotes, missing = await market_data_service.get_quotes(quotes_in.symbols)
    return QuotesResponse(quotes=quotes, missing=missing)


@router.get("/history/{symbol}", response_model=List[HistoricalPrice])
@limiter.limit(RATE_LIMITS["price_fetch"])
async def get_history(
    request: Request,
    symbol: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user_id=Depends(get_current_user_id),
) -> List[HistoricalPrice]:
    """Daily prices, the last year by default."""
    end_date = end_date or date.today()
    start_date = start_date or end_date - timedelta(days=365)
    return await market_data_service.get_historical_prices(symbol, start_date, end_date)


@router.delete("/cache", response_model=MessageResponse)
@limiter.limit(RATE_LIMITS["api_write"])
async def clear_cache(
    request: Request,
    admin: User = Depends(get_current_admin),
) -> MessageResponse:
    count = market_data_service.clear_cache()
    return MessageResponse(message=f"Cleared {count} cached quotes")
