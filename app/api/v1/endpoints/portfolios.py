"""Portfolio endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, get_owned_portfolio
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.portfolio import Portfolio
from app.schemas.portfolio import PortfolioCreate, PortfolioResponse, PortfolioUpdate
from app.services.portfolio_service import portfolio_service

router = APIRouter()


@router.get("", response_model=List[PortfolioResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_portfolios(
    request: Request,
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[PortfolioResponse]:
    """List all portfolios for the current user."""
    return await portfolio_service.list_for_user(db, user_id)


@router.post("", response_model=PortfolioResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["api_write"])
async def create_portfolio(
    request: Request,
    portfolio_in: PortfolioCreate,
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> PortfolioResponse:
    """Create a new portfolio."""
    return await portfolio_service.create(
        db,
        user_id,
        name=portfolio_in.name,
        description=portfolio_in.description,
        base_currency=portfolio_in.base_currency,
        cost_basis_method=portfolio_in.cost_basis_method,
    )


@router.get("/{portfolio_id}", response_model=PortfolioResponse)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_portfolio(
    request: Request,
    portfolio: Portfolio = Depends(get_owned_portfolio),
) -> PortfolioResponse:
    """Get a specific portfolio."""
    return portfolio


@router.patch("/{portfolio_id}", response_model=PortfolioResponse)
@limiter.limit(RATE_LIMITS["api_write"])
async def update_portfolio(
    request: Request,
    portfolio_in: PortfolioUpdate,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> PortfolioResponse:
    """Update name, description or cost basis method."""
    return await portfolio_service.update(
        db,
        portfolio,
        name=portfolio_in.name,
        description=portfolio_in.description,
        cost_basis_method=portfolio_in.cost_basis_method,
    )


@router.delete("/{portfolio_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["api_write"])
async def delete_portfolio(
    request: Request,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
):
    """Delete a portfolio together with its transactions, lots and snapshots."""
    await portfolio_service.delete(db, portfolio)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
