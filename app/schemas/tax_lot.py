"""Holding, tax lot and realized gain schemas."""

from datetime import date as date_type
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.portfolio import CostBasisMethod
from app.models.realized_gain import HoldingPeriod


class HoldingResponse(BaseModel):
    """Schema for holding response."""

    id: UUID
    portfolio_id: UUID
    symbol: str
    quantity: Decimal
    cost_basis: Decimal
    avg_cost_price: Decimal
    updated_at: datetime

    class Config:
        from_attributes = True


class HoldingValuation(HoldingResponse):
    """Holding with a market price applied."""

    current_price: Optional[Decimal] = None
    market_value: Decimal
    unrealized_gain: Decimal
    unrealized_gain_pct: Decimal


class PortfolioValue(BaseModel):
    portfolio_id: UUID
    total_value: Decimal
    total_cost_basis: Decimal
    unrealized_gain: Decimal
    unrealized_gain_pct: Decimal
    holdings: List[HoldingValuation]


class TaxLotResponse(BaseModel):
    """Schema for tax lot response."""

    id: UUID
    portfolio_id: UUID
    symbol: str
    purchase_date: date_type
    quantity: Decimal
    cost_basis: Decimal
    cost_per_share: Decimal
    is_long_term: bool
    transaction_id: Optional[UUID] = None
    created_at: datetime


class RealizedGainResponse(BaseModel):
    """Schema for a realized gain slice."""

    id: UUID
    sell_transaction_id: UUID
    tax_lot_id: UUID
    symbol: str
    purchase_date: date_type
    sale_date: date_type
    quantity: Decimal
    cost_basis: Decimal
    proceeds: Decimal
    gain: Decimal
    holding_period: HoldingPeriod

    class Config:
        from_attributes = True


class AllocateSaleRequest(BaseModel):
    """Preview how a sale would be matched against open lots."""

    symbol: str = Field(..., min_length=1, max_length=20)
    quantity: Decimal = Field(..., gt=0)
    price: Optional[Decimal] = Field(None, gt=0)
    commission: Decimal = Field(default=Decimal("0"), ge=0)
    sale_date: Optional[date_type] = None
    method: Optional[CostBasisMethod] = None
    lot_ids: Optional[List[UUID]] = None


class LotAllocation(BaseModel):
    tax_lot_id: UUID
    purchase_date: date_type
    quantity: Decimal
    cost_basis: Decimal
    proceeds: Optional[Decimal] = None
    gain: Optional[Decimal] = None
    holding_period: HoldingPeriod


class AllocationPreview(BaseModel):
    symbol: str
    method: CostBasisMethod
    quantity: Decimal
    allocations: List[LotAllocation]
    total_cost_basis: Decimal
    total_proceeds: Optional[Decimal] = None
    total_gain: Optional[Decimal] = None


class TaxReport(BaseModel):
    year: int
    short_term_gains: List[RealizedGainResponse]
    long_term_gains: List[RealizedGainResponse]
    total_short_term_gain: Decimal
    total_long_term_gain: Decimal
    total_gain: Decimal


class TaxLossOpportunity(BaseModel):
    symbol: str
    current_quantity: Decimal
    cost_basis: Decimal
    current_price: Decimal
    current_value: Decimal
    unrealized_loss: Decimal
    loss_percent: Decimal
