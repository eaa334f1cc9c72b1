"""Authentication tests."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.core.security import hash_token, utcnow
from app.models.refresh_credential import RefreshCredential
from app.models.user import User
from app.services.auth_service import auth_service
from app.services.email_service import email_service


async def _login(client: AsyncClient, email: str, password: str, **extra):
    return await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, **extra},
    )


@pytest.mark.asyncio
async def test_register_returns_tokens(client: AsyncClient, db_session):
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "New@Example.com", "password": "password123", "first_name": "New"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["user"]["email"] == "new@example.com"
    assert data["user"]["role"] == "user"
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["expires_in"] == 30 * 60


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient, regular_user: User):
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "USER@test.com", "password": "password123"},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "EmailTaken"


@pytest.mark.asyncio
async def test_register_short_password(client: AsyncClient, db_session):
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "short@example.com", "password": "short"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, regular_user: User):
    """Test successful login."""
    response = await _login(client, "user@test.com", "userpassword")
    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert "refresh_token" in data
    assert data["token_type"] == "bearer"
    assert data["user"]["last_login_at"] is not None


@pytest.mark.asyncio
async def test_login_remember_me_extends_access_token(client: AsyncClient, regular_user: User):
    response = await _login(client, "user@test.com", "userpassword", remember_me=True)
    assert response.status_code == 200
    assert response.json()["expires_in"] == 24 * 3600


@pytest.mark.asyncio
async def test_login_invalid_password(client: AsyncClient, regular_user: User):
    """Test login with invalid password."""
    response = await _login(client, "user@test.com", "wrongpassword")
    assert response.status_code == 401
    assert response.json()["code"] == "InvalidCredentials"


@pytest.mark.asyncio
async def test_login_invalid_email(client: AsyncClient, db_session):
    """Unknown email gives the same answer as a wrong password."""
    response = await _login(client, "nonexistent@test.com", "password")
    assert response.status_code == 401
    assert response.json()["code"] == "InvalidCredentials"


@pytest.mark.asyncio
async def test_get_current_user(client: AsyncClient, regular_user: User):
    """Test getting current user info."""
    login_response = await _login(client, "user@test.com", "userpassword")
    token = login_response.json()["access_token"]

    response = await client.get(
        "/api/v1/auth/me",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "user@test.com"
    assert data["role"] == "user"


@pytest.mark.asyncio
async def test_refresh_token_is_not_accepted_as_access_token(client: AsyncClient, regular_user: User):
    login_response = await _login(client, "user@test.com", "userpassword")
    refresh_token = login_response.json()["refresh_token"]

    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {refresh_token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_register_login_refresh_logout_round_trip(client: AsyncClient, db_session):
    register = await client.post(
        "/api/v1/auth/register",
        json={"email": "cycle@example.com", "password": "password123"},
    )
    assert register.status_code == 201

    login = await _login(client, "cycle@example.com", "password123")
    assert login.status_code == 200
    tokens = login.json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    refreshed = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["access_token"]

    # Refresh credentials are reused until they expire
    again = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert again.status_code == 200

    logout = await client.post(
        "/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=headers
    )
    assert logout.status_code == 200

    after = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert after.status_code == 401
    assert after.json()["code"] == "InvalidRefresh"

    # Revoking twice is reported
    twice = await client.post(
        "/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=headers
    )
    assert twice.status_code == 404
    assert twice.json()["code"] == "NotFoundOrRevoked"


@pytest.mark.asyncio
async def test_logout_all_revokes_every_session(client: AsyncClient, regular_user: User):
    first = (await _login(client, "user@test.com", "userpassword")).json()
    second = (await _login(client, "user@test.com", "userpassword")).json()
    headers = {"Authorization": f"Bearer {first['access_token']}"}

    response = await client.post("/api/v1/auth/logout-all", headers=headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Revoked 2 sessions"

    for tokens in (first, second):
        refreshed = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 401

    # Nothing left to revoke is still a success
    response = await client.post("/api/v1/auth/logout-all", headers=headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Revoked 0 sessions"


@pytest.mark.asyncio
async def test_refresh_with_garbage_token(client: AsyncClient, db_session):
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": "not-a-token"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_password_reset_round_trip(client: AsyncClient, regular_user: User, monkeypatch):
    sent = {}

    async def capture(to_email, token):
        sent[to_email] = token
        return True

    monkeypatch.setattr(email_service, "send_password_reset", capture)

    response = await client.post("/api/v1/auth/password-reset/request", json={"email": "user@test.com"})
    assert response.status_code == 200
    token = sent["user@test.com"]

    response = await client.post(
        "/api/v1/auth/password-reset/confirm",
        json={"token": token, "new_password": "brandnewpassword"},
    )
    assert response.status_code == 200

    assert (await _login(client, "user@test.com", "userpassword")).status_code == 401
    assert (await _login(client, "user@test.com", "brandnewpassword")).status_code == 200

    # Tickets are single use
    response = await client.post(
        "/api/v1/auth/password-reset/confirm",
        json={"token": token, "new_password": "anotherpassword"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidResetToken"


@pytest.mark.asyncio
async def test_password_reset_unknown_email_is_silent(client: AsyncClient, db_session, monkeypatch):
    sent = {}

    async def capture(to_email, token):
        sent[to_email] = token
        return True

    monkeypatch.setattr(email_service, "send_password_reset", capture)

    response = await client.post("/api/v1/auth/password-reset/request", json={"email": "ghost@example.com"})
    assert response.status_code == 200
    assert sent == {}


@pytest.mark.asyncio
async def test_password_reset_with_unknown_token(client: AsyncClient, db_session):
    response = await client.post(
        "/api/v1/auth/password-reset/confirm",
        json={"token": "0" * 64, "new_password": "brandnewpassword"},
    )
    assert response.status_code == 400
    assert response.json()["field"] == "token"


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired_credentials(db_session, regular_user: User):
    now = utcnow()
    db_session.add_all([
        RefreshCredential(user_id=regular_user.id, token_hash=hash_token("stale"), expires_at=now - timedelta(days=1)),
        RefreshCredential(user_id=regular_user.id, token_hash=hash_token("live"), expires_at=now + timedelta(days=1)),
    ])
    await db_session.flush()

    deleted = await auth_service.cleanup_expired(db_session)
    assert deleted == {"refresh_credentials": 1, "password_reset_tickets": 0}

    remaining = (await db_session.execute(select(RefreshCredential.token_hash))).scalars().all()
    assert remaining == [hash_token("live")]
