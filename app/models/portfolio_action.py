"""Per-portfolio proposal to apply a corporate action."""

import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models import Base


class ProposalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    APPLIED = "APPLIED"


TERMINAL_STATUSES = frozenset({ProposalStatus.APPLIED, ProposalStatus.REJECTED})


class PortfolioActionProposal(Base):
    __tablename__ = "portfolio_action_proposals"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        Index("ix_portfolio_action_proposals_portfolio_status", "portfolio_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False)
    corporate_action_id = Column(
        UUID(as_uuid=True), ForeignKey("corporate_actions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(Enum(ProposalStatus), default=ProposalStatus.PENDING, nullable=False)
    affected_symbol = Column(String(20), nullable=False)
    shares_at_detection = Column(Numeric(precision=20, scale=8), nullable=False)
    detected_at = Column(DateTime(timezone=True), nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    applied_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
