"""Tests for the quote provider and the quote cache."""

from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest

from app.core.errors import MarketDataUnavailable
from app.schemas.market_data import Quote
from app.services.market_data_service import (
    AlphaVantageProvider,
    MarketDataProvider,
    MarketDataService,
)

GLOBAL_QUOTE = {
    "Global Quote": {
        "01. symbol": "AAPL",
        "02. open": "189.0000",
        "03. high": "191.5000",
        "04. low": "188.2000",
        "05. price": "190.6400",
        "06. volume": "51234567",
        "08. previous close": "188.9000",
        "09. change": "1.7400",
        "10. change percent": "0.9211%",
    }
}

DAILY_SERIES = {
    "Time Series (Daily)": {
        "2024-01-04": {"1. open": "10", "2. high": "12", "3. low": "9", "4. close": "11", "6. volume": "100"},
        "2024-01-02": {"1. open": "9", "2. high": "10", "3. low": "8", "4. close": "10", "6. volume": "100"},
        "2023-12-29": {"4. close": "9"},
    }
}


def _provider(payload, status_code=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(dict(request.url.params))
        return httpx.Response(status_code, json=payload)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AlphaVantageProvider("demo-key", client=client)


class TestAlphaVantageProvider:
    @pytest.mark.asyncio
    async def test_parses_global_quote(self):
        seen = []
        provider = _provider(GLOBAL_QUOTE, seen=seen)
        quote = await provider.get_quote("AAPL")
        await provider.close()

        assert quote.symbol == "AAPL"
        assert quote.price == Decimal("190.6400")
        assert quote.change_percent == Decimal("0.9211")
        assert quote.volume == 51234567
        assert seen[0]["function"] == "GLOBAL_QUOTE"
        assert seen[0]["apikey"] == "demo-key"

    @pytest.mark.asyncio
    async def test_empty_quote(self):
        provider = _provider({"Global Quote": {}})
        with pytest.raises(MarketDataUnavailable):
            await provider.get_quote("NOPE")

    @pytest.mark.asyncio
    async def test_rate_limit_note(self):
        provider = _provider({"Note": "Thank you for using Alpha Vantage!"})
        with pytest.raises(MarketDataUnavailable) as exc:
            await provider.get_quote("AAPL")
        assert "rate limit" in exc.value.message

    @pytest.mark.asyncio
    async def test_http_error(self):
        provider = _provider({}, status_code=500)
        with pytest.raises(MarketDataUnavailable):
            await provider.get_quote("AAPL")

    @pytest.mark.asyncio
    async def test_history_is_filtered_and_sorted(self):
        provider = _provider(DAILY_SERIES)
        prices = await provider.get_historical_prices("AAPL", date(2024, 1, 1), date(2024, 1, 31))
        assert [p.date for p in prices] == [date(2024, 1, 2), date(2024, 1, 4)]
        assert prices[-1].close == Decimal("11")

    def test_unavailable_without_key(self):
        assert not AlphaVantageProvider("", client=httpx.AsyncClient()).is_available()


class CountingProvider(MarketDataProvider):
    name = "counting"

    def __init__(self):
        self.calls = 0

    def is_available(self) -> bool:
        return True

    async def get_quote(self, symbol: str) -> Quote:
        if symbol == "MISSING":
            raise MarketDataUnavailable(f"No quote data for {symbol}")
        self.calls += 1
        return Quote(symbol=symbol, price=Decimal("10"), last_updated=datetime.now(timezone.utc))


class TestMarketDataService:
    @pytest.mark.asyncio
    async def test_quotes_are_cached(self):
        provider = CountingProvider()
        service = MarketDataService(provider=provider, ttl_seconds=60)
        await service.get_quote("aapl")
        await service.get_quote("AAPL")
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_expired_entries_are_refetched(self):
        provider = CountingProvider()
        service = MarketDataService(provider=provider, ttl_seconds=0)
        await service.get_quote("AAPL")
        service._cache["AAPL"] = (service._cache["AAPL"][0] - 1, service._cache["AAPL"][1])
        await service.get_quote("AAPL")
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self):
        provider = CountingProvider()
        service = MarketDataService(provider=provider, ttl_seconds=60)
        await service.get_quote("AAPL")
        await service.refresh("AAPL")
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_clear_cache_counts_entries(self):
        service = MarketDataService(provider=CountingProvider(), ttl_seconds=60)
        await service.get_quote("AAPL")
        await service.get_quote("MSFT")
        assert service.clear_cache() == 2
        assert service.clear_cache() == 0

    @pytest.mark.asyncio
    async def test_missing_symbols_are_reported(self):
        service = MarketDataService(provider=CountingProvider(), ttl_seconds=60)
        quotes, missing = await service.get_quotes(["aapl", "MISSING", "AAPL"])
        assert list(quotes) == ["AAPL"]
        assert missing == ["MISSING"]

    @pytest.mark.asyncio
    async def test_get_prices_without_provider(self):
        service = MarketDataService(provider=MarketDataProvider(), ttl_seconds=60)
        assert await service.get_prices(["AAPL"]) == {}
