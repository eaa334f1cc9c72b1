"""Corporate action model: an externally sourced event on a symbol."""

import enum
import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models import Base


class CorporateActionType(str, enum.Enum):
    SPLIT = "SPLIT"
    DIVIDEND = "DIVIDEND"
    MERGER = "MERGER"
    SPINOFF = "SPINOFF"
    TICKER_CHANGE = "TICKER_CHANGE"


class CorporateAction(Base):
    __tablename__ = "corporate_actions"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        Index("ix_corporate_actions_symbol_date", "symbol", "date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    symbol = Column(String(20), nullable=False)
    type = Column(Enum(CorporateActionType), nullable=False)
    date = Column(Date, nullable=False)
    ratio = Column(Numeric(precision=20, scale=8), nullable=True)
    amount = Column(Numeric(precision=20, scale=8), nullable=True)
    new_symbol = Column(String(20), nullable=True)
    currency = Column(String(3), nullable=True)
    # Share (0-100) of parent cost basis moved to the spun-off lots
    cost_allocation_pct = Column(Numeric(precision=20, scale=8), nullable=True)
    description = Column(Text, nullable=True)
    applied = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
