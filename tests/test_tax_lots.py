"""Tax lot views, sale previews and tax reports."""

from decimal import Decimal

import pytest

from app.services.market_data_service import market_data_service

D = Decimal


@pytest.fixture
def prices(monkeypatch):
    """Serve fixed quotes instead of calling a provider."""
    quotes = {}

    async def fake_get_prices(symbols):
        return {s: quotes[s] for s in symbols if s in quotes}

    monkeypatch.setattr(market_data_service, "get_prices", fake_get_prices)
    return quotes


@pytest.mark.asyncio
async def test_lot_detail_and_long_term_flag(api, portfolio_id):
    await api.buy(portfolio_id, "AAPL", 10, 100, "2023-01-02")
    lot_id = (await api.lots(portfolio_id))[0]["id"]

    early = await api.get(portfolio_id, f"/tax-lots/{lot_id}", as_of="2023-06-01")
    assert early.status_code == 200
    assert early.json()["is_long_term"] is False

    later = await api.get(portfolio_id, f"/tax-lots/{lot_id}", as_of="2024-01-02")
    assert later.json()["is_long_term"] is True


@pytest.mark.asyncio
async def test_unknown_lot(api, portfolio_id):
    response = await api.get(portfolio_id, "/tax-lots/00000000-0000-0000-0000-000000000001")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_lots_are_grouped_by_symbol(api, portfolio_id):
    await api.buy(portfolio_id, "MSFT", 1, 300, "2023-01-02")
    await api.buy(portfolio_id, "AAPL", 2, 100, "2023-03-02")
    await api.buy(portfolio_id, "AAPL", 3, 110, "2023-02-02")

    lots = await api.lots(portfolio_id)
    assert [(lot["symbol"], lot["purchase_date"]) for lot in lots] == [
        ("AAPL", "2023-02-02"),
        ("AAPL", "2023-03-02"),
        ("MSFT", "2023-01-02"),
    ]


@pytest.mark.asyncio
async def test_allocation_preview_records_nothing(api, portfolio_id):
    await api.buy(portfolio_id, "AAPL", 10, 100, "2023-01-01")
    await api.buy(portfolio_id, "AAPL", 5, 120, "2023-06-01")

    response = await api.post(
        portfolio_id,
        "/tax-lots/allocate",
        {"symbol": "aapl", "quantity": "12", "price": "150", "sale_date": "2024-02-01"},
    )
    assert response.status_code == 200, response.text
    preview = response.json()
    assert preview["method"] == "FIFO"
    assert [D(a["quantity"]) for a in preview["allocations"]] == [D("10"), D("2")]
    assert [a["holding_period"] for a in preview["allocations"]] == ["LONG", "SHORT"]
    assert D(preview["total_cost_basis"]) == D("1240")
    assert D(preview["total_gain"]) == D("560")

    assert D((await api.holding(portfolio_id, "AAPL"))["quantity"]) == D("15")
    assert (await api.get(portfolio_id, "/realized-gains")).json() == []


@pytest.mark.asyncio
async def test_allocation_preview_with_other_method(api, portfolio_id):
    await api.buy(portfolio_id, "AAPL", 10, 100, "2023-01-01")
    await api.buy(portfolio_id, "AAPL", 5, 120, "2023-06-01")

    response = await api.post(
        portfolio_id, "/tax-lots/allocate", {"symbol": "AAPL", "quantity": "5", "method": "LIFO"}
    )
    preview = response.json()
    assert preview["method"] == "LIFO"
    assert D(preview["total_cost_basis"]) == D("600")
    assert preview["total_proceeds"] is None


@pytest.mark.asyncio
async def test_allocation_preview_oversell(api, portfolio_id):
    await api.buy(portfolio_id, "AAPL", 1, 100, "2023-01-01")
    response = await api.post(portfolio_id, "/tax-lots/allocate", {"symbol": "AAPL", "quantity": "2"})
    assert response.status_code == 409
    assert response.json()["code"] == "InsufficientShares"


@pytest.mark.asyncio
async def test_realized_gains_and_tax_report(api, portfolio_id):
    await api.buy(portfolio_id, "AAPL", 10, 100, "2022-01-03")
    await api.buy(portfolio_id, "AAPL", 10, 100, "2023-06-01")
    await api.sell(portfolio_id, "AAPL", 5, 130, "2023-03-01")
    await api.sell(portfolio_id, "AAPL", 10, 90, "2024-02-01")

    all_gains = (await api.get(portfolio_id, "/realized-gains")).json()
    assert len(all_gains) == 3

    gains_2023 = (await api.get(portfolio_id, "/realized-gains", year=2023)).json()
    assert len(gains_2023) == 1
    assert D(gains_2023[0]["gain"]) == D("150")

    report = (await api.get(portfolio_id, "/tax-report", year=2024)).json()
    assert report["year"] == 2024
    assert len(report["long_term_gains"]) == 1
    assert len(report["short_term_gains"]) == 1
    assert D(report["total_long_term_gain"]) == D("-50")
    assert D(report["total_short_term_gain"]) == D("-50")
    assert D(report["total_gain"]) == D("-100")


@pytest.mark.asyncio
async def test_tax_report_requires_year(api, portfolio_id):
    response = await api.get(portfolio_id, "/tax-report")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_tax_loss_opportunities(api, portfolio_id, prices):
    await api.buy(portfolio_id, "AAPL", 10, 100, "2023-01-02")
    await api.buy(portfolio_id, "MSFT", 10, 100, "2023-01-02")
    await api.buy(portfolio_id, "KO", 10, 100, "2023-01-02")
    await api.buy(portfolio_id, "NOPRICE", 10, 100, "2023-01-02")
    prices.update({"AAPL": D("80"), "MSFT": D("98"), "KO": D("120")})

    response = await api.get(portfolio_id, "/tax-loss-opportunities")
    assert response.status_code == 200
    opportunities = response.json()
    assert [o["symbol"] for o in opportunities] == ["AAPL"]
    assert D(opportunities[0]["unrealized_loss"]) == D("200")
    assert D(opportunities[0]["loss_percent"]) == D("20")

    lenient = (await api.get(portfolio_id, "/tax-loss-opportunities", min_loss_percent="1")).json()
    assert [o["symbol"] for o in lenient] == ["AAPL", "MSFT"]


@pytest.mark.asyncio
async def test_portfolio_value_uses_quotes(api, portfolio_id, prices):
    await api.buy(portfolio_id, "AAPL", 10, 100, "2023-01-02")
    await api.buy(portfolio_id, "MSFT", 2, 50, "2023-01-02")
    prices["AAPL"] = D("150")

    value = (await api.get(portfolio_id, "/value")).json()
    assert D(value["total_cost_basis"]) == D("1100")
    assert D(value["total_value"]) == D("1600")
    assert D(value["unrealized_gain"]) == D("500")

    by_symbol = {h["symbol"]: h for h in value["holdings"]}
    assert D(by_symbol["AAPL"]["current_price"]) == D("150")
    assert by_symbol["MSFT"]["current_price"] is None
    assert D(by_symbol["MSFT"]["market_value"]) == D("100")


@pytest.mark.asyncio
async def test_closed_holdings_are_hidden_by_default(api, portfolio_id):
    await api.buy(portfolio_id, "AAPL", 1, 100, "2023-01-02")
    await api.buy(portfolio_id, "MSFT", 1, 100, "2023-01-02")
    await api.sell(portfolio_id, "MSFT", 1, 100, "2023-02-02")

    open_only = (await api.get(portfolio_id, "/holdings")).json()
    assert [h["symbol"] for h in open_only] == ["AAPL"]
    everything = (await api.get(portfolio_id, "/holdings", include_closed="true")).json()
    assert [h["symbol"] for h in everything] == ["AAPL", "MSFT"]
