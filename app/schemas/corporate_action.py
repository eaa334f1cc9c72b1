"""Corporate action and proposal schemas."""

from datetime import date as date_type
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.corporate_action import CorporateActionType
from app.models.portfolio_action import ProposalStatus


class CorporateActionCreate(BaseModel):
    """Schema for registering a corporate action. Per-type rules are checked by the service."""

    symbol: str = Field(..., min_length=1, max_length=20)
    type: CorporateActionType
    date: date_type
    ratio: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    new_symbol: Optional[str] = Field(None, max_length=20)
    currency: Optional[str] = Field(None, pattern=r"^[A-Za-z]{3}$")
    cost_allocation_pct: Optional[Decimal] = None
    description: Optional[str] = Field(None, max_length=2000)


class CorporateActionResponse(BaseModel):
    id: UUID
    symbol: str
    type: CorporateActionType
    date: date_type
    ratio: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    new_symbol: Optional[str] = None
    currency: Optional[str] = None
    cost_allocation_pct: Optional[Decimal] = None
    description: Optional[str] = None
    applied: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProposalResponse(BaseModel):
    id: UUID
    portfolio_id: UUID
    corporate_action_id: UUID
    status: ProposalStatus
    affected_symbol: str
    shares_at_detection: Decimal
    detected_at: datetime
    reviewed_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    reviewed_by_user_id: Optional[UUID] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class ProposalWithAction(ProposalResponse):
    corporate_action: CorporateActionResponse


class ProposalRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class DetectionResult(BaseModel):
    actions_scanned: int
    proposals_created: int
    actions_closed: int
