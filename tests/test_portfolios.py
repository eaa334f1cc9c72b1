"""Portfolio endpoint tests."""

from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.core.errors import PortfolioNotFound
from app.services.portfolio_service import portfolio_service


@pytest.mark.asyncio
async def test_create_portfolio_defaults(client: AsyncClient, user_headers):
    response = await client.post("/api/v1/portfolios", json={"name": "Retirement"}, headers=user_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Retirement"
    assert data["base_currency"] == "USD"
    assert data["cost_basis_method"] == "FIFO"


@pytest.mark.asyncio
async def test_create_portfolio_duplicate_name(client: AsyncClient, user_headers, portfolio_id):
    response = await client.post("/api/v1/portfolios", json={"name": "Main"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "DuplicatePortfolioName"


@pytest.mark.asyncio
async def test_same_name_allowed_for_different_users(client: AsyncClient, other_headers, portfolio_id):
    response = await client.post("/api/v1/portfolios", json={"name": "Main"}, headers=other_headers)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_create_portfolio_invalid_currency(client: AsyncClient, user_headers):
    response = await client.post(
        "/api/v1/portfolios", json={"name": "Bad", "base_currency": "EURO"}, headers=user_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_only_own_portfolios(client: AsyncClient, user_headers, other_headers, portfolio_id):
    await client.post("/api/v1/portfolios", json={"name": "Theirs"}, headers=other_headers)

    response = await client.get("/api/v1/portfolios", headers=user_headers)
    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [portfolio_id]


@pytest.mark.asyncio
async def test_foreign_portfolio_looks_missing(client: AsyncClient, other_headers, portfolio_id):
    """Someone else's portfolio answers exactly like one that does not exist."""
    foreign = await client.get(f"/api/v1/portfolios/{portfolio_id}", headers=other_headers)
    missing = await client.get(
        "/api/v1/portfolios/00000000-0000-0000-0000-000000000000", headers=other_headers
    )
    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json()


@pytest.mark.asyncio
async def test_foreign_portfolio_cannot_be_written(client: AsyncClient, other_headers, portfolio_id):
    response = await client.post(
        f"/api/v1/portfolios/{portfolio_id}/transactions",
        json={"type": "BUY", "symbol": "AAPL", "date": "2024-01-02", "quantity": "1", "price": "10"},
        headers=other_headers,
    )
    assert response.status_code == 404

    response = await client.delete(f"/api/v1/portfolios/{portfolio_id}", headers=other_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_portfolio(client: AsyncClient, user_headers, portfolio_id):
    response = await client.patch(
        f"/api/v1/portfolios/{portfolio_id}",
        json={"name": "Renamed", "cost_basis_method": "LIFO"},
        headers=user_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Renamed"
    assert data["cost_basis_method"] == "LIFO"
    assert data["base_currency"] == "USD"


@pytest.mark.asyncio
async def test_update_to_existing_name(client: AsyncClient, user_headers, portfolio_id, lifo_portfolio_id):
    response = await client.patch(
        f"/api/v1/portfolios/{lifo_portfolio_id}", json={"name": "Main"}, headers=user_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delete_portfolio_removes_derived_state(client: AsyncClient, api, portfolio_id):
    await api.buy(portfolio_id, "AAPL", 10, 100, "2024-01-02")

    response = await client.delete(f"/api/v1/portfolios/{portfolio_id}", headers=api.headers)
    assert response.status_code == 204

    response = await client.get(f"/api/v1/portfolios/{portfolio_id}", headers=api.headers)
    assert response.status_code == 404
    response = await client.get("/api/v1/portfolios", headers=api.headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_unscoped_lookup_of_missing_portfolio(db_session):
    with pytest.raises(PortfolioNotFound) as exc:
        await portfolio_service.get(db_session, uuid4())
    assert exc.value.status_code == 404
    assert exc.value.code == "PortfolioNotFound"
