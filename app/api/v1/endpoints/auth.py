"""Authentication endpoints."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_current_user_id
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.user import User
from app.schemas.auth import (
    AccessToken,
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshTokenRequest,
    RegisterRequest,
)
from app.schemas.user import UserResponse
from app.services.auth_service import auth_service

router = APIRouter()


def _auth_response(user: User, tokens) -> AuthResponse:
    return AuthResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["auth_register"])
async def register(
    request: Request,
    register_data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Create an account and sign it in."""
    user, tokens = await auth_service.register(
        db,
        email=register_data.email,
        password=register_data.password,
        first_name=register_data.first_name,
        last_name=register_data.last_name,
        remember_me=register_data.remember_me,
    )
    return _auth_response(user, tokens)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(RATE_LIMITS["auth_login"])
async def login(
    request: Request,
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Authenticate user and return tokens."""
    user, tokens = await auth_service.login(
        db,
        email=login_data.email,
        password=login_data.password,
        remember_me=login_data.remember_me,
    )
    return _auth_response(user, tokens)


@router.post("/refresh", response_model=AccessToken)
@limiter.limit(RATE_LIMITS["auth_refresh"])
async def refresh_token(
    request: Request,
    refresh_data: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
) -> AccessToken:
    """Exchange a live refresh token for a new access token."""
    tokens = await auth_service.refresh(db, refresh_data.refresh_token)
    return AccessToken(access_token=tokens.access_token, expires_in=tokens.expires_in)


@router.post("/logout", response_model=MessageResponse)
@limiter.limit(RATE_LIMITS["api_write"])
async def logout(
    request: Request,
    logout_data: LogoutRequest,
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Revoke one refresh token of the current user."""
    await auth_service.revoke(db, logout_data.refresh_token, user_id=user_id)
    return MessageResponse(message="Logged out")


@router.post("/logout-all", response_model=MessageResponse)
@limiter.limit(RATE_LIMITS["api_write"])
async def logout_all(
    request: Request,
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Revoke every refresh token of the current user."""
    count = await auth_service.revoke_all(db, user_id)
    return MessageResponse(message=f"Revoked {count} sessions")


@router.get("/me", response_model=UserResponse)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_me(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Get current user info."""
    return current_user


@router.post("/password-reset/request", response_model=MessageResponse)
@limiter.limit(RATE_LIMITS["auth_password_reset"])
async def request_password_reset(
    request: Request,
    reset_data: PasswordResetRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Send a reset link. The answer is the same whether or not the email exists."""
    await auth_service.initiate_password_reset(db, reset_data.email)
    return MessageResponse(message="If this email is registered, a reset link has been sent")


@router.post("/password-reset/confirm", response_model=MessageResponse)
@limiter.limit(RATE_LIMITS["auth_password_reset"])
async def confirm_password_reset(
    request: Request,
    reset_data: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Set a new password with a reset token."""
    await auth_service.complete_password_reset(db, reset_data.token, reset_data.new_password)
    return MessageResponse(message="Password updated")
