"""Market data: quote providers and a per-symbol TTL cache in front of them."""

import logging
import threading
import time
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple

import httpx

from app.core.config import settings
from app.core.errors import Internal, MarketDataUnavailable
from app.core.retry import with_retry
from app.schemas.market_data import HistoricalPrice, Quote

logger = logging.getLogger(__name__)


def _decimal(value: Optional[str]) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value).strip().rstrip("%"))
    except InvalidOperation:
        return None


def _int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class MarketDataProvider:
    """Interface every quote source implements."""

    name = "none"

    def is_available(self) -> bool:
        return False

    async def get_quote(self, symbol: str) -> Quote:
        raise MarketDataUnavailable(f"No market data provider configured for {symbol}")

    async def get_quotes(self, symbols: Iterable[str]) -> Dict[str, Quote]:
        quotes = {}
        for symbol in symbols:
            try:
                quotes[symbol] = await self.get_quote(symbol)
            except MarketDataUnavailable as e:
                logger.debug(f"Skipping {symbol}: {e.message}")
        return quotes

    async def get_historical_prices(self, symbol: str, start_date: date, end_date: date) -> List[HistoricalPrice]:
        raise MarketDataUnavailable(f"No market data provider configured for {symbol}")

    async def close(self) -> None:
        pass


class AlphaVantageProvider(MarketDataProvider):
    """Alpha Vantage over httpx."""

    name = "alphavantage"
    BASE_URL = "https://www.alphavantage.co/query"

    def __init__(self, api_key: str, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.http_client = client or httpx.AsyncClient(
            timeout=settings.MARKET_DATA_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"},
        )

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def close(self) -> None:
        await self.http_client.aclose()

    async def _query(self, params: Dict[str, str]) -> Dict:
        if not self.is_available():
            raise MarketDataUnavailable("Alpha Vantage API key not configured")

        response = await self.http_client.get(self.BASE_URL, params={**params, "apikey": self.api_key})
        if response.status_code != 200:
            raise MarketDataUnavailable(f"Alpha Vantage returned status {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise MarketDataUnavailable("Alpha Vantage returned an unreadable response") from e

        if data.get("Error Message"):
            raise MarketDataUnavailable(f"Alpha Vantage error: {data['Error Message']}")
        if data.get("Note"):
            raise MarketDataUnavailable(f"Alpha Vantage rate limit exceeded: {data['Note']}")
        return data

    async def get_quote(self, symbol: str) -> Quote:
        data = await self._query({"function": "GLOBAL_QUOTE", "symbol": symbol})
        quote = data.get("Global Quote") or {}
        price = _decimal(quote.get("05. price"))
        if not quote.get("01. symbol") or price is None:
            raise MarketDataUnavailable(f"No quote data for {symbol}")

        return Quote(
            symbol=quote["01. symbol"].upper(),
            price=price,
            open=_decimal(quote.get("02. open")),
            high=_decimal(quote.get("03. high")),
            low=_decimal(quote.get("04. low")),
            volume=_int(quote.get("06. volume")),
            previous_close=_decimal(quote.get("08. previous close")),
            change=_decimal(quote.get("09. change")),
            change_percent=_decimal(quote.get("10. change percent")),
            last_updated=datetime.now(timezone.utc),
        )

    async def get_historical_prices(self, symbol: str, start_date: date, end_date: date) -> List[HistoricalPrice]:
        data = await self._query(
            {"function": "TIME_SERIES_DAILY_ADJUSTED", "symbol": symbol, "outputsize": "full"}
        )
        series = data.get("Time Series (Daily)") or {}

        prices = []
        for day, bar in series.items():
            try:
                bar_date = date.fromisoformat(day)
            except ValueError:
                continue
            if bar_date < start_date or bar_date > end_date:
                continue
            close = _decimal(bar.get("4. close"))
            if close is None:
                continue
            prices.append(
                HistoricalPrice(
                    date=bar_date,
                    open=_decimal(bar.get("1. open")),
                    high=_decimal(bar.get("2. high")),
                    low=_decimal(bar.get("3. low")),
                    close=close,
                    adj_close=_decimal(bar.get("5. adjusted close")),
                    volume=_int(bar.get("6. volume")),
                )
            )
        prices.sort(key=lambda p: p.date)
        return prices


def build_provider() -> MarketDataProvider:
    provider = settings.MARKET_DATA_PROVIDER.lower()
    if provider == "alphavantage":
        return AlphaVantageProvider(settings.MARKET_DATA_API_KEY)
    if provider != "none":
        logger.warning(f"Unknown market data provider '{provider}', market data disabled")
    return MarketDataProvider()


class MarketDataService:
    """Service for fetching quotes through a TTL cache.

    The cache is shared by every request in the process; a plain lock guards
    it so the Celery worker's per-task event loops can use it too.
    """

    def __init__(self, provider: Optional[MarketDataProvider] = None, ttl_seconds: Optional[int] = None):
        self.provider = provider or build_provider()
        self.ttl_seconds = settings.MARKET_DATA_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._cache: Dict[str, Tuple[float, Quote]] = {}
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.provider.is_available()

    def _cached(self, symbol: str) -> Optional[Quote]:
        with self._lock:
            entry = self._cache.get(symbol)
            if entry is None:
                return None
            stored_at, quote = entry
            if time.monotonic() - stored_at > self.ttl_seconds:
                del self._cache[symbol]
                return None
            return quote

    def _store(self, symbol: str, quote: Quote) -> None:
        with self._lock:
            self._cache[symbol] = (time.monotonic(), quote)

    def clear_cache(self) -> int:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
        logger.info(f"Cleared {count} cached quotes")
        return count

    async def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.strip().upper()
        cached = self._cached(symbol)
        if cached is not None:
            return cached

        quote = await with_retry(lambda: self.provider.get_quote(symbol), f"Quote fetch for {symbol}")
        self._store(symbol, quote)
        return quote

    async def refresh(self, symbol: str) -> Quote:
        symbol = symbol.strip().upper()
        with self._lock:
            self._cache.pop(symbol, None)
        return await self.get_quote(symbol)

    async def get_quotes(self, symbols: Iterable[str]) -> Tuple[Dict[str, Quote], List[str]]:
        """Quotes for every symbol that has one, plus the symbols that failed."""
        quotes = {}
        missing = []
        for symbol in dict.fromkeys(s.strip().upper() for s in symbols):
            try:
                quotes[symbol] = await self.get_quote(symbol)
            except (MarketDataUnavailable, Internal) as e:
                logger.warning(f"No quote for {symbol}: {e.message}")
                missing.append(symbol)
        return quotes, missing

    async def get_prices(self, symbols: Iterable[str]) -> Dict[str, Decimal]:
        """Current prices keyed by symbol. Empty when no provider is configured."""
        if not self.is_available():
            return {}
        quotes, _ = await self.get_quotes(symbols)
        return {symbol: quote.price for symbol, quote in quotes.items()}

    async def get_historical_prices(self, symbol: str, start_date: date, end_date: date) -> List[HistoricalPrice]:
        symbol = symbol.strip().upper()
        return await with_retry(
            lambda: self.provider.get_historical_prices(symbol, start_date, end_date),
            f"Price history fetch for {symbol}",
        )


market_data_service = MarketDataService()
