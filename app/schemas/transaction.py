"""Transaction schemas.

Request fields are loosely typed on purpose: the ledger validates them and
reports the offending field as a TransactionValidation error.
"""

from datetime import date as date_type
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.transaction import TransactionType
from app.schemas.tax_lot import RealizedGainResponse


class TransactionCreate(BaseModel):
    """Schema for creating a transaction."""

    type: TransactionType
    symbol: str
    date: date_type
    quantity: Decimal
    price: Optional[Decimal] = None
    commission: Decimal = Decimal("0")
    currency: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)
    # Lots to consume when the portfolio uses SPECIFIC_LOT
    lot_ids: Optional[List[UUID]] = None


class TransactionBatchCreate(BaseModel):
    """Schema for a bulk import. All rows commit together or not at all."""

    transactions: List[TransactionCreate] = Field(..., min_length=1, max_length=5000)


class TransactionResponse(BaseModel):
    """Schema for transaction response."""

    id: UUID
    portfolio_id: UUID
    type: TransactionType
    symbol: str
    date: date_type
    quantity: Decimal
    price: Optional[Decimal] = None
    commission: Decimal
    currency: str
    notes: Optional[str] = None
    import_batch_id: Optional[UUID] = None
    corporate_action_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionResult(TransactionResponse):
    """A recorded transaction with the realized gains it produced."""

    realized_gains: List[RealizedGainResponse] = []


class ImportResult(BaseModel):
    import_batch_id: UUID
    count: int
    transactions: List[TransactionResponse]


class ImportBatchSummary(BaseModel):
    import_batch_id: UUID
    transaction_count: int
    first_date: date_type
    last_date: date_type
    imported_at: datetime
