"""Holding model: the per-symbol aggregate of a portfolio's open lots."""

import uuid
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models import Base


class Holding(Base):
    __tablename__ = "holdings"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("portfolio_id", "symbol", name="uq_holdings_portfolio_symbol"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False)
    symbol = Column(String(20), nullable=False)
    quantity = Column(Numeric(precision=20, scale=8), default=Decimal("0"), nullable=False)
    cost_basis = Column(Numeric(precision=20, scale=8), default=Decimal("0"), nullable=False)
    avg_cost_price = Column(Numeric(precision=20, scale=8), default=Decimal("0"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
