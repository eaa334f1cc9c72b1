"""Tax lot model."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.dialects.postgresql import UUID

from app.models import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaxLot(Base):
    __tablename__ = "tax_lots"
    __table_args__ = (
        Index("ix_tax_lots_portfolio_symbol_purchase", "portfolio_id", "symbol", "purchase_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False)
    symbol = Column(String(20), nullable=False)
    purchase_date = Column(Date, nullable=False)
    quantity = Column(Numeric(precision=20, scale=8), nullable=False)
    cost_basis = Column(Numeric(precision=20, scale=8), nullable=False)
    # Weak reference: no foreign key, the transaction does not own the lot
    transaction_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    # Microsecond client-side stamp; orders lots created on the same purchase date
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
