"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator, Dict

# Set test env vars before any app import
os.environ.setdefault("SECRET_KEY", "testsecretkey_for_unit_tests_only_1234567890")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_portfolios.db")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("BCRYPT_ROUNDS", "10")
os.environ.setdefault("MARKET_DATA_PROVIDER", "none")
os.environ.setdefault("SMTP_HOST", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal, engine, get_db
from app.core.rate_limit import limiter
from app.core.security import create_access_token, hash_password
from app.main import app
from app.models import Base
from app.models.portfolio import CostBasisMethod
from app.models.user import User, UserRole
from app.services.market_data_service import market_data_service
from app.services.portfolio_service import portfolio_service


@pytest.fixture(autouse=True)
def reset_state():
    """Rate limit counters and the quote cache are process-wide."""
    limiter.reset()
    market_data_service.clear_cache()
    yield


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Test client whose requests share the test session, one transaction per request."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, email: str, password: str, role: UserRole) -> User:
    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        first_name="Test",
        last_name="User",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def auth_headers(user_id) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=str(user_id))}"}


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Create an admin user for testing."""
    return await _create_user(db_session, "admin@test.com", "adminpassword", UserRole.ADMIN)


@pytest_asyncio.fixture
async def regular_user(db_session: AsyncSession) -> User:
    """Create a regular user for testing."""
    return await _create_user(db_session, "user@test.com", "userpassword", UserRole.USER)


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "other@test.com", "otherpassword", UserRole.USER)


@pytest.fixture
def user_headers(regular_user: User) -> Dict[str, str]:
    return auth_headers(regular_user.id)


@pytest.fixture
def admin_headers(admin_user: User) -> Dict[str, str]:
    return auth_headers(admin_user.id)


@pytest.fixture
def other_headers(other_user: User) -> Dict[str, str]:
    return auth_headers(other_user.id)


async def _create_portfolio(db_session: AsyncSession, user: User, name: str, method: str) -> str:
    portfolio = await portfolio_service.create(
        db_session, user.id, name=name, cost_basis_method=CostBasisMethod(method)
    )
    await db_session.commit()
    return str(portfolio.id)


@pytest_asyncio.fixture
async def portfolio_id(db_session: AsyncSession, regular_user: User) -> str:
    """A FIFO portfolio owned by regular_user."""
    return await _create_portfolio(db_session, regular_user, "Main", "FIFO")


@pytest_asyncio.fixture
async def lifo_portfolio_id(db_session: AsyncSession, regular_user: User) -> str:
    return await _create_portfolio(db_session, regular_user, "Lifo", "LIFO")


@pytest_asyncio.fixture
async def specific_portfolio_id(db_session: AsyncSession, regular_user: User) -> str:
    return await _create_portfolio(db_session, regular_user, "Specific", "SPECIFIC_LOT")


class PortfolioApi:
    """Shortcuts for portfolio-scoped calls made as one user."""

    def __init__(self, client: AsyncClient, headers: Dict[str, str]):
        self.client = client
        self.headers = headers

    @staticmethod
    def url(portfolio_id: str, path: str = "") -> str:
        return f"/api/v1/portfolios/{portfolio_id}{path}"

    async def get(self, portfolio_id: str, path: str = "", **params):
        return await self.client.get(self.url(portfolio_id, path), params=params, headers=self.headers)

    async def post(self, portfolio_id: str, path: str, json=None):
        return await self.client.post(self.url(portfolio_id, path), json=json, headers=self.headers)

    async def delete(self, portfolio_id: str, path: str):
        return await self.client.delete(self.url(portfolio_id, path), headers=self.headers)

    async def record(self, portfolio_id: str, **fields):
        body = {"commission": "0", **fields}
        return await self.post(portfolio_id, "/transactions", body)

    async def buy(self, portfolio_id: str, symbol: str, quantity, price, on: str, **extra) -> dict:
        response = await self.record(
            portfolio_id, type="BUY", symbol=symbol, quantity=str(quantity), price=str(price), date=on, **extra
        )
        assert response.status_code == 201, response.text
        return response.json()

    async def sell(self, portfolio_id: str, symbol: str, quantity, price, on: str, **extra):
        return await self.record(
            portfolio_id, type="SELL", symbol=symbol, quantity=str(quantity), price=str(price), date=on, **extra
        )

    async def holding(self, portfolio_id: str, symbol: str) -> dict:
        response = await self.get(portfolio_id, f"/holdings/{symbol}")
        assert response.status_code == 200, response.text
        return response.json()

    async def lots(self, portfolio_id: str, symbol: str = None) -> list:
        params = {"symbol": symbol} if symbol else {}
        response = await self.get(portfolio_id, "/tax-lots", **params)
        assert response.status_code == 200, response.text
        return response.json()


@pytest.fixture
def api(client: AsyncClient, user_headers: Dict[str, str]) -> PortfolioApi:
    return PortfolioApi(client, user_headers)
