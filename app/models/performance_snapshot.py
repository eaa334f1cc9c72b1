"""Performance snapshot model. Insert-only, one row per portfolio and date."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models import Base


class PerformanceSnapshot(Base):
    __tablename__ = "performance_snapshots"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("portfolio_id", "date", name="uq_performance_snapshots_portfolio_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    total_value = Column(Numeric(precision=20, scale=8), nullable=False)
    total_cost_basis = Column(Numeric(precision=20, scale=8), nullable=False)
    total_return = Column(Numeric(precision=20, scale=8), nullable=False)
    total_return_pct = Column(Numeric(precision=20, scale=8), nullable=False)
    day_change = Column(Numeric(precision=20, scale=8), nullable=True)
    day_change_pct = Column(Numeric(precision=20, scale=8), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
