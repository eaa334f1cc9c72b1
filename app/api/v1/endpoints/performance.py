"""Snapshot and performance analytics endpoints."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_owned_portfolio
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.portfolio import Portfolio
from app.schemas.performance import (
    AnnualizedReturnResult,
    BenchmarkComparison,
    MWRResult,
    PerformanceMetrics,
    SnapshotCreate,
    SnapshotResponse,
    TWRResult,
)
from app.services.analytics_service import analytics_service
from app.services.holding_service import holding_service
from app.services.market_data_service import market_data_service
from app.services.snapshot_service import snapshot_service

router = APIRouter()


# Snapshots

@router.post("/snapshots", response_model=SnapshotResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["price_fetch"])
async def create_snapshot(
    request: Request,
    snapshot_in: Optional[SnapshotCreate] = None,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> SnapshotResponse:
    """Record today's value (or the given date's) using current quotes."""
    holdings = await holding_service.list_for_portfolio(db, portfolio.id)
    prices = await market_data_service.get_prices(h.symbol for h in holdings)
    snapshot_date = snapshot_in.date if snapshot_in else None
    return await snapshot_service.create_snapshot(db, portfolio, prices, snapshot_date)


@router.get("/snapshots", response_model=List[SnapshotResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_snapshots(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[SnapshotResponse]:
    return await snapshot_service.list_snapshots(db, portfolio.id, skip=skip, limit=limit)


@router.get("/snapshots/range", response_model=List[SnapshotResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def get_snapshot_range(
    request: Request,
    start_date: date,
    end_date: date,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[SnapshotResponse]:
    """Snapshots between two dates inclusive, oldest first."""
    return await snapshot_service.get_range(db, portfolio.id, start_date, end_date)


@router.get("/snapshots/latest", response_model=SnapshotResponse)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_latest_snapshot(
    request: Request,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> SnapshotResponse:
    return await snapshot_service.get_latest(db, portfolio.id)


# Analytics

@router.get("/performance/twr", response_model=TWRResult)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_twr(
    request: Request,
    start_date: date,
    end_date: date,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> TWRResult:
    """Time-weighted return between two dates."""
    return await analytics_service.calculate_twr(db, portfolio.id, start_date, end_date)


@router.get("/performance/mwr", response_model=MWRResult)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_mwr(
    request: Request,
    start_date: date,
    end_date: date,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> MWRResult:
    """Money-weighted return (IRR of the portfolio's cash flows)."""
    return await analytics_service.calculate_mwr(db, portfolio.id, start_date, end_date)


@router.get("/performance/annualized", response_model=AnnualizedReturnResult)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_annualized_return(
    request: Request,
    start_date: date,
    end_date: date,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> AnnualizedReturnResult:
    return await analytics_service.calculate_annualized_return(db, portfolio.id, start_date, end_date)


@router.get("/performance/benchmark", response_model=BenchmarkComparison)
@limiter.limit(RATE_LIMITS["price_fetch"])
async def compare_to_benchmark(
    request: Request,
    start_date: date,
    end_date: date,
    benchmark: str = Query("SPY", min_length=1, max_length=20),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> BenchmarkComparison:
    """Compare the portfolio's return with a benchmark symbol over the same dates."""
    return await analytics_service.compare_to_benchmark(db, portfolio.id, benchmark, start_date, end_date)


@router.get("/performance/metrics", response_model=PerformanceMetrics)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_performance_metrics(
    request: Request,
    start_date: date,
    end_date: date,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> PerformanceMetrics:
    return await analytics_service.get_metrics(db, portfolio.id, start_date, end_date)
