"""Market data schemas."""

from datetime import date as date_type
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Quote(BaseModel):
    symbol: str
    price: Decimal
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    previous_close: Optional[Decimal] = None
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    volume: Optional[int] = None
    last_updated: datetime


class HistoricalPrice(BaseModel):
    date: date_type
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Decimal
    adj_close: Optional[Decimal] = None
    volume: Optional[int] = None


class QuotesRequest(BaseModel):
    symbols: List[str] = Field(..., min_length=1, max_length=100)


class QuotesResponse(BaseModel):
    quotes: Dict[str, Quote]
    missing: List[str] = []
