"""Realized gain produced by each lot slice consumed in a sale."""

import enum
import uuid

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models import Base


class HoldingPeriod(str, enum.Enum):
    SHORT = "SHORT"
    LONG = "LONG"


class RealizedGain(Base):
    __tablename__ = "realized_gains"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        Index("ix_realized_gains_portfolio_sale_date", "portfolio_id", "sale_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False)
    sell_transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True)
    # The lot may be deleted once fully consumed, so this is not a foreign key
    tax_lot_id = Column(UUID(as_uuid=True), nullable=False)
    symbol = Column(String(20), nullable=False)
    purchase_date = Column(Date, nullable=False)
    sale_date = Column(Date, nullable=False)
    quantity = Column(Numeric(precision=20, scale=8), nullable=False)
    cost_basis = Column(Numeric(precision=20, scale=8), nullable=False)
    proceeds = Column(Numeric(precision=20, scale=8), nullable=False)
    gain = Column(Numeric(precision=20, scale=8), nullable=False)
    holding_period = Column(Enum(HoldingPeriod), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
