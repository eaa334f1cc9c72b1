"""Portfolio model."""

import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models import Base


class CostBasisMethod(str, enum.Enum):
    FIFO = "FIFO"
    LIFO = "LIFO"
    SPECIFIC_LOT = "SPECIFIC_LOT"


class Portfolio(Base):
    __tablename__ = "portfolios"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_portfolios_user_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    base_currency = Column(String(3), default="USD", nullable=False)
    cost_basis_method = Column(Enum(CostBasisMethod), default=CostBasisMethod.FIFO, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
