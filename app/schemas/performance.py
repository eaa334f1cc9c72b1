"""Performance snapshot and analytics schemas."""

from datetime import date as date_type
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class SnapshotCreate(BaseModel):
    date: Optional[date_type] = None


class SnapshotResponse(BaseModel):
    id: UUID
    portfolio_id: UUID
    date: date_type
    total_value: Decimal
    total_cost_basis: Decimal
    total_return: Decimal
    total_return_pct: Decimal
    day_change: Optional[Decimal] = None
    day_change_pct: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TWRResult(BaseModel):
    start_date: date_type
    end_date: date_type
    twr: Decimal
    twr_percent: Decimal
    annualized_twr: Decimal
    num_periods: int
    starting_value: Decimal
    ending_value: Decimal


class MWRResult(BaseModel):
    start_date: date_type
    end_date: date_type
    mwr: Decimal
    mwr_percent: Decimal
    annualized_mwr: Decimal
    total_cash_flow: Decimal
    starting_value: Decimal
    ending_value: Decimal


class AnnualizedReturnResult(BaseModel):
    start_date: date_type
    end_date: date_type
    total_return: Decimal
    total_return_pct: Decimal
    annualized_return: Decimal
    years: float


class BenchmarkComparison(BaseModel):
    start_date: date_type
    end_date: date_type
    benchmark_symbol: str
    portfolio_return: Decimal
    benchmark_return: Decimal
    alpha: Decimal
    portfolio_annualized: Decimal
    benchmark_annualized: Decimal
    outperformance: Decimal


class PerformanceMetrics(BaseModel):
    start_date: date_type
    end_date: date_type
    starting_value: Decimal
    ending_value: Decimal
    total_return: Decimal
    total_return_pct: Decimal
    time_weighted_return: Optional[Decimal] = None
    money_weighted_return: Optional[Decimal] = None
    annualized_return: Decimal
    total_deposits: Decimal
    total_withdrawals: Decimal
    net_cash_flow: Decimal
    years: float
