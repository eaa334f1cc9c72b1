"""Rate limiting tests."""

import pytest
from httpx import AsyncClient

from app.models.user import User


@pytest.mark.asyncio
async def test_login_rate_limit(client: AsyncClient, regular_user: User):
    """Test that login endpoint has rate limiting."""
    responses = []
    for _ in range(10):
        resp = await client.post(
            "/api/v1/auth/login",
            json={"email": "user@test.com", "password": "wrongpassword"},
        )
        responses.append(resp.status_code)

    # Failed logins answer 401 until the limit kicks in
    assert responses[0] == 401
    assert 429 in responses, "Rate limiting should block excessive login attempts"


@pytest.mark.asyncio
async def test_register_rate_limit(client: AsyncClient):
    """Test that register endpoint has rate limiting."""
    responses = []
    for i in range(8):
        resp = await client.post(
            "/api/v1/auth/register",
            json={
                "email": f"test{i}@example.com",
                "password": "password123",
            },
        )
        responses.append(resp.status_code)

    # Register is limited to 5/minute
    assert responses[:5] == [201] * 5
    assert 429 in responses, "Rate limiting should block excessive registrations"


@pytest.mark.asyncio
async def test_password_reset_rate_limit(client: AsyncClient):
    responses = []
    for _ in range(8):
        resp = await client.post(
            "/api/v1/auth/password-reset/request",
            json={"email": "nobody@example.com"},
        )
        responses.append(resp.status_code)

    assert 429 in responses, "Rate limiting should block repeated reset requests"
