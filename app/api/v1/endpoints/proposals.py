"""Corporate action proposal review for one portfolio."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, get_owned_portfolio
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.portfolio import Portfolio
from app.models.portfolio_action import ProposalStatus
from app.schemas.corporate_action import ProposalRejectRequest, ProposalWithAction
from app.services.corporate_action_service import corporate_action_service

router = APIRouter()


@router.get("", response_model=List[ProposalWithAction])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_proposals(
    request: Request,
    status: Optional[ProposalStatus] = None,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[ProposalWithAction]:
    proposals = await corporate_action_service.list_proposals(db, portfolio.id, status=status)
    return await corporate_action_service.with_actions(db, proposals)


@router.get("/pending", response_model=List[ProposalWithAction])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_pending_proposals(
    request: Request,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[ProposalWithAction]:
    """Proposals waiting for a decision."""
    proposals = await corporate_action_service.list_proposals(db, portfolio.id, status=ProposalStatus.PENDING)
    return await corporate_action_service.with_actions(db, proposals)


@router.get("/{proposal_id}", response_model=ProposalWithAction)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_proposal(
    request: Request,
    proposal_id: UUID,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> ProposalWithAction:
    proposal = await corporate_action_service.get_proposal(db, portfolio.id, proposal_id)
    return (await corporate_action_service.with_actions(db, [proposal]))[0]


@router.post("/{proposal_id}/approve", response_model=ProposalWithAction)
@limiter.limit(RATE_LIMITS["api_write"])
async def approve_proposal(
    request: Request,
    proposal_id: UUID,
    user_id=Depends(get_current_user_id),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> ProposalWithAction:
    """Approve and apply. If applying fails the proposal comes back REJECTED with the reason."""
    proposal = await corporate_action_service.approve(db, portfolio, proposal_id, reviewer_id=user_id)
    return (await corporate_action_service.with_actions(db, [proposal]))[0]


@router.post("/{proposal_id}/reject", response_model=ProposalWithAction)
@limiter.limit(RATE_LIMITS["api_write"])
async def reject_proposal(
    request: Request,
    proposal_id: UUID,
    reject_data: Optional[ProposalRejectRequest] = None,
    user_id=Depends(get_current_user_id),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> ProposalWithAction:
    proposal = await corporate_action_service.reject(
        db,
        portfolio,
        proposal_id,
        reviewer_id=user_id,
        reason=reject_data.reason if reject_data else None,
    )
    return (await corporate_action_service.with_actions(db, [proposal]))[0]
