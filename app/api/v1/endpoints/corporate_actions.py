"""Corporate action registry. Writes and on-demand detection are admin-only."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_admin, get_current_user_id
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.user import User
from app.schemas.corporate_action import (
    CorporateActionCreate,
    CorporateActionResponse,
    DetectionResult,
)
from app.services.corporate_action_service import corporate_action_service

router = APIRouter()


@router.post("", response_model=CorporateActionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["api_write"])
async def create_corporate_action(
    request: Request,
    action_in: CorporateActionCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> CorporateActionResponse:
    """Register a corporate action. A repeat of the same symbol, type and date returns the first one."""
    return await corporate_action_service.create_action(db, action_in)


@router.get("", response_model=List[CorporateActionResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_corporate_actions(
    request: Request,
    symbol: Optional[str] = None,
    applied: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[CorporateActionResponse]:
    return await corporate_action_service.list_actions(db, symbol=symbol, applied=applied, skip=skip, limit=limit)


@router.post("/detect", response_model=DetectionResult)
@limiter.limit(RATE_LIMITS["bulk_import"])
async def run_detection(
    request: Request,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> DetectionResult:
    """Scan open actions now instead of waiting for the scheduled job."""
    return await corporate_action_service.detect(db)


@router.get("/{action_id}", response_model=CorporateActionResponse)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_corporate_action(
    request: Request,
    action_id: UUID,
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> CorporateActionResponse:
    return await corporate_action_service.get_action(db, action_id)
