"""Portfolio schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.portfolio import CostBasisMethod


class PortfolioBase(BaseModel):
    """Base portfolio schema."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class PortfolioCreate(PortfolioBase):
    """Schema for creating a portfolio."""

    base_currency: str = Field(default="USD", pattern=r"^[A-Za-z]{3}$")
    cost_basis_method: CostBasisMethod = CostBasisMethod.FIFO

    @field_validator("base_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class PortfolioUpdate(BaseModel):
    """Schema for updating a portfolio."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    cost_basis_method: Optional[CostBasisMethod] = None


class PortfolioResponse(PortfolioBase):
    """Schema for portfolio response."""

    id: UUID
    user_id: UUID
    base_currency: str
    cost_basis_method: CostBasisMethod
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
