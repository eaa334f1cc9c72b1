"""API dependencies: authentication and the portfolio ownership gate."""

from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import Forbidden
from app.core.security import decode_token
from app.models.portfolio import Portfolio
from app.models.user import User, UserRole
from app.services.auth_service import auth_service
from app.services.portfolio_service import portfolio_service

security = HTTPBearer(auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> UUID:
    """Identity from the access token alone, without a database lookup."""
    if credentials is None:
        raise _credentials_exception()

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        raise _credentials_exception()

    try:
        return UUID(payload.get("sub", ""))
    except (TypeError, ValueError):
        raise _credentials_exception()


async def get_current_user(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get the current authenticated user."""
    user = await auth_service.get_by_id(db, user_id)
    if user is None or not user.is_active:
        raise _credentials_exception()
    return user


async def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    if current_user.role != UserRole.ADMIN:
        raise Forbidden()
    return current_user


async def get_owned_portfolio(
    portfolio_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Portfolio:
    """Resolve ``portfolio_id`` from the path, answering 404 unless the caller owns it."""
    return await portfolio_service.get_owned(db, portfolio_id, user_id)
