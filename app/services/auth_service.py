"""Identity and session management: accounts, refresh credentials and password resets."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (
    EmailTaken,
    InvalidCredentials,
    InvalidRefresh,
    InvalidResetToken,
    NotFoundOrRevoked,
)
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_reset_token,
    hash_password,
    hash_token,
    utcnow,
    verify_password,
)
from app.models.password_reset_ticket import PasswordResetTicket
from app.models.refresh_credential import RefreshCredential
from app.models.user import User, UserRole
from app.services.email_service import email_service

logger = logging.getLogger(__name__)


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: str
    expires_in: int


def _durations(remember_me: bool):
    if remember_me:
        return (
            timedelta(hours=settings.REMEMBER_ME_ACCESS_TOKEN_EXPIRE_HOURS),
            timedelta(days=settings.REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS),
        )
    return (
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Service for registration, login and credential lifecycles."""

    async def _issue(self, db: AsyncSession, user: User, remember_me: bool) -> IssuedTokens:
        access_ttl, refresh_ttl = _durations(remember_me)
        access_token = create_access_token(subject=str(user.id), expires_delta=access_ttl)
        refresh_token = create_refresh_token(subject=str(user.id), expires_delta=refresh_ttl)

        db.add(
            RefreshCredential(
                user_id=user.id,
                token_hash=hash_token(refresh_token),
                expires_at=utcnow() + refresh_ttl,
            )
        )
        await db.flush()
        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(access_ttl.total_seconds()),
        )

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def get_by_id(self, db: AsyncSession, user_id: UUID) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        email = normalize_email(email)
        if await self.get_by_email(db, email) is not None:
            raise EmailTaken(field="email")

        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        try:
            async with db.begin_nested():
                db.add(user)
                await db.flush()
        except IntegrityError as e:
            # Lost a race on the unique email index
            raise EmailTaken(field="email") from e
        await db.refresh(user)
        return user

    async def register(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        remember_me: bool = False,
    ):
        user = await self.create_user(db, email, password, first_name, last_name)
        tokens = await self._issue(db, user, remember_me)
        logger.info(f"Registered user {user.id}")
        return user, tokens

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        remember_me: bool = False,
    ):
        user = await self.get_by_email(db, email)
        # verify_password runs bcrypt even for unknown emails
        if not verify_password(password, user.password_hash if user else None):
            raise InvalidCredentials()
        if not user.is_active:
            raise InvalidCredentials()

        user.last_login_at = utcnow()
        tokens = await self._issue(db, user, remember_me)
        await db.refresh(user)
        logger.info(f"User {user.id} logged in")
        return user, tokens

    async def _active_credential(self, db: AsyncSession, refresh_token: str) -> Optional[RefreshCredential]:
        result = await db.execute(
            select(RefreshCredential).where(
                RefreshCredential.token_hash == hash_token(refresh_token),
                RefreshCredential.revoked_at.is_(None),
                RefreshCredential.expires_at > utcnow(),
            )
        )
        return result.scalar_one_or_none()

    async def refresh(self, db: AsyncSession, refresh_token: str) -> IssuedTokens:
        """Issue a new access token. The refresh credential stays valid until it expires."""
        payload = decode_token(refresh_token)
        if not payload or payload.get("type") != "refresh":
            raise InvalidRefresh()

        credential = await self._active_credential(db, refresh_token)
        if credential is None:
            raise InvalidRefresh()

        user = await self.get_by_id(db, credential.user_id)
        if user is None or not user.is_active:
            raise InvalidRefresh()

        ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        return IssuedTokens(
            access_token=create_access_token(subject=str(user.id), expires_delta=ttl),
            refresh_token=refresh_token,
            expires_in=int(ttl.total_seconds()),
        )

    async def revoke(self, db: AsyncSession, refresh_token: str, user_id: Optional[UUID] = None) -> None:
        """Revoke one refresh credential. Unknown or already revoked raises NotFoundOrRevoked."""
        query = select(RefreshCredential).where(
            RefreshCredential.token_hash == hash_token(refresh_token),
            RefreshCredential.revoked_at.is_(None),
        )
        if user_id is not None:
            query = query.where(RefreshCredential.user_id == user_id)
        result = await db.execute(query)
        credential = result.scalar_one_or_none()
        if credential is None:
            raise NotFoundOrRevoked()

        credential.revoked_at = utcnow()
        await db.flush()
        logger.info(f"Revoked refresh credential {credential.id}")

    async def revoke_all(self, db: AsyncSession, user_id: UUID) -> int:
        """Revoke every live refresh credential of a user. Idempotent."""
        result = await db.execute(
            update(RefreshCredential)
            .where(
                RefreshCredential.user_id == user_id,
                RefreshCredential.revoked_at.is_(None),
            )
            .values(revoked_at=utcnow())
        )
        logger.info(f"Revoked {result.rowcount} refresh credentials for user {user_id}")
        return result.rowcount

    async def initiate_password_reset(self, db: AsyncSession, email: str) -> None:
        """Mail a reset link if the account exists. Unknown emails succeed silently."""
        user = await self.get_by_email(db, email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown email")
            return

        token = generate_reset_token()
        db.add(
            PasswordResetTicket(
                user_id=user.id,
                token_hash=hash_token(token),
                expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
            )
        )
        await db.flush()

        sent = await email_service.send_password_reset(user.email, token)
        if not sent:
            logger.warning(f"Password reset email for user {user.id} was not sent")

    async def complete_password_reset(self, db: AsyncSession, token: str, new_password: str) -> None:
        result = await db.execute(
            select(PasswordResetTicket).where(
                PasswordResetTicket.token_hash == hash_token(token),
                PasswordResetTicket.used_at.is_(None),
                PasswordResetTicket.expires_at > utcnow(),
            )
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise InvalidResetToken(field="token")

        user = await self.get_by_id(db, ticket.user_id)
        if user is None:
            raise InvalidResetToken(field="token")

        user.password_hash = hash_password(new_password)
        ticket.used_at = utcnow()
        await db.flush()
        logger.info(f"Password reset completed for user {user.id}")

    async def cleanup_expired(self, db: AsyncSession) -> dict:
        """Delete refresh credentials and reset tickets past their expiry."""
        now = utcnow()
        credentials = await db.execute(delete(RefreshCredential).where(RefreshCredential.expires_at < now))
        tickets = await db.execute(delete(PasswordResetTicket).where(PasswordResetTicket.expires_at < now))
        return {
            "refresh_credentials": credentials.rowcount,
            "password_reset_tickets": tickets.rowcount,
        }


auth_service = AuthService()
