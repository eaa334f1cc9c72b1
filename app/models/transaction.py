"""Transaction model. Rows are append-only once committed."""

import enum
import uuid
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models import Base


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    DIVIDEND_REINVEST = "DIVIDEND_REINVEST"
    SPLIT = "SPLIT"
    MERGER = "MERGER"
    SPINOFF = "SPINOFF"
    TICKER_CHANGE = "TICKER_CHANGE"


# Types that open a tax lot
ACQUISITION_TYPES = frozenset({TransactionType.BUY, TransactionType.DIVIDEND_REINVEST})

# Types only the corporate-action pipeline may write
CORPORATE_ACTION_TYPES = frozenset({
    TransactionType.SPLIT,
    TransactionType.MERGER,
    TransactionType.SPINOFF,
    TransactionType.TICKER_CHANGE,
})


class Transaction(Base):
    __tablename__ = "transactions"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        Index("ix_transactions_portfolio_date", "portfolio_id", "date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False)
    type = Column(Enum(TransactionType), nullable=False)
    symbol = Column(String(20), nullable=False, index=True)
    date = Column(Date, nullable=False)
    quantity = Column(Numeric(precision=20, scale=8), nullable=False)
    price = Column(Numeric(precision=20, scale=8), nullable=True)
    commission = Column(Numeric(precision=20, scale=8), default=Decimal("0"), nullable=False)
    currency = Column(String(3), nullable=False)
    notes = Column(Text, nullable=True)
    import_batch_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    corporate_action_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def total_cost(self) -> Decimal:
        """price * quantity + commission."""
        return (self.price or Decimal("0")) * self.quantity + (self.commission or Decimal("0"))

    @property
    def proceeds(self) -> Decimal:
        """price * quantity - commission."""
        return (self.price or Decimal("0")) * self.quantity - (self.commission or Decimal("0"))
