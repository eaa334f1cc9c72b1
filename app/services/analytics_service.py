"""Performance analytics over portfolio snapshots: TWR, MWR, annualized return, benchmark."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from scipy import optimize as sp_optimize
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import money
from app.core.errors import InsufficientData, MarketDataUnavailable
from app.models.performance_snapshot import PerformanceSnapshot
from app.models.transaction import ACQUISITION_TYPES, Transaction, TransactionType
from app.services.market_data_service import market_data_service
from app.services.snapshot_service import snapshot_service

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25
# How far from the requested date a snapshot may be to stand in for it
SNAPSHOT_SEARCH_DAYS = 7


@dataclass(frozen=True)
class CashFlow:
    date: date
    amount: Decimal


def _to_decimal(value: float) -> Decimal:
    return money.quantize(Decimal(repr(value)))


def years_between(start_date: date, end_date: date) -> float:
    return (end_date - start_date).days / DAYS_PER_YEAR


def annualize(growth: float, years: float) -> Optional[float]:
    """Turn a period growth factor (1.10 for +10%) into an annual rate."""
    if years <= 0 or growth <= 0:
        return None
    return growth ** (1.0 / years) - 1.0


def transaction_cash_flow(tx: Transaction) -> Decimal:
    """Money into the portfolio is positive, money out negative."""
    if tx.type in ACQUISITION_TYPES:
        return tx.total_cost
    if tx.type == TransactionType.SELL:
        return -tx.proceeds
    return money.ZERO


def cash_flow_between(transactions: Sequence[Transaction], start: date, end: date) -> Decimal:
    """Net external flow for transactions dated in (start, end]."""
    return money.total(
        transaction_cash_flow(tx) for tx in transactions if start < tx.date <= end
    )


def time_weighted_return(
    snapshots: Sequence[PerformanceSnapshot],
    transactions: Sequence[Transaction],
) -> Tuple[Decimal, int]:
    """Chain sub-period returns between consecutive snapshots.

    Each period's end value is reduced by the cash that came in during it.
    Periods starting from zero value are skipped.
    """
    ordered = sorted(snapshots, key=lambda s: s.date)
    growth = Decimal("1")
    for prev, curr in zip(ordered, ordered[1:]):
        if money.is_zero(prev.total_value):
            continue
        flow = cash_flow_between(transactions, prev.date, curr.date)
        growth *= (curr.total_value - flow) / prev.total_value
    return money.quantize(growth - 1), len(ordered) - 1


def xirr(cash_flows: Sequence[CashFlow]) -> Optional[float]:
    """
    Annual internal rate of return of dated cash flows.

    Outflows (investments) are negative, inflows positive. Returns the
    rate as a decimal (0.12 = 12%), or None when no root is found.
    """
    if len(cash_flows) < 2:
        return None

    d0 = min(cf.date for cf in cash_flows)
    points = [((cf.date - d0).days / DAYS_PER_YEAR, float(cf.amount)) for cf in cash_flows]

    def npv(rate: float) -> float:
        return sum(amount / (1.0 + rate) ** t for t, amount in points)

    try:
        return float(sp_optimize.brentq(npv, -0.99, 10.0, maxiter=200))
    except (ValueError, RuntimeError):
        try:
            # Newton-Raphson from 10%, as a fallback when the bracket has no sign change
            return float(sp_optimize.newton(npv, 0.1, maxiter=200))
        except (ValueError, RuntimeError, OverflowError):
            return None


class AnalyticsService:
    """Service for return calculations over stored snapshots."""

    async def _transactions(self, db: AsyncSession, portfolio_id, start_date: date, end_date: date) -> List[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(
                Transaction.portfolio_id == portfolio_id,
                Transaction.date >= start_date,
                Transaction.date <= end_date,
            )
            .order_by(Transaction.date)
        )
        return list(result.scalars().all())

    async def snapshot_near(self, db: AsyncSession, portfolio_id, target: date) -> PerformanceSnapshot:
        """The snapshot on ``target``, else the closest one within a week either side."""
        exact = await snapshot_service.get_by_date(db, portfolio_id, target)
        if exact is not None:
            return exact

        window = timedelta(days=SNAPSHOT_SEARCH_DAYS)
        candidates = await snapshot_service.get_range(db, portfolio_id, target - window, target + window)
        if not candidates:
            raise InsufficientData(f"No snapshot found near {target.isoformat()}")
        return min(candidates, key=lambda s: abs((s.date - target).days))

    @staticmethod
    def _check_range(start_date: date, end_date: date) -> None:
        if end_date <= start_date:
            raise InsufficientData("end_date must be after start_date")

    async def calculate_twr(self, db: AsyncSession, portfolio_id, start_date: date, end_date: date) -> Dict:
        self._check_range(start_date, end_date)
        snapshots = await snapshot_service.get_range(db, portfolio_id, start_date, end_date)
        if len(snapshots) < 2:
            raise InsufficientData("Need at least 2 snapshots for a time-weighted return")

        transactions = await self._transactions(db, portfolio_id, start_date, end_date)
        twr, periods = time_weighted_return(snapshots, transactions)

        annual = annualize(float(twr + 1), years_between(start_date, end_date))
        return {
            "start_date": start_date,
            "end_date": end_date,
            "twr": twr,
            "twr_percent": money.quantize(twr * money.HUNDRED),
            "annualized_twr": _to_decimal(annual * 100) if annual is not None else money.ZERO,
            "num_periods": periods,
            "starting_value": snapshots[0].total_value,
            "ending_value": snapshots[-1].total_value,
        }

    async def calculate_mwr(self, db: AsyncSession, portfolio_id, start_date: date, end_date: date) -> Dict:
        self._check_range(start_date, end_date)
        start_snapshot = await self.snapshot_near(db, portfolio_id, start_date)
        end_snapshot = await self.snapshot_near(db, portfolio_id, end_date)
        # The starting value already reflects anything traded on start_date
        transactions = [
            tx for tx in await self._transactions(db, portfolio_id, start_date, end_date)
            if tx.date > start_date
        ]

        flows = [CashFlow(start_date, -start_snapshot.total_value)]
        for tx in transactions:
            amount = transaction_cash_flow(tx)
            if not money.is_zero(amount):
                flows.append(CashFlow(tx.date, -amount))
        flows.append(CashFlow(end_date, end_snapshot.total_value))
        flows.sort(key=lambda cf: cf.date)

        rate = xirr(flows)
        if rate is None:
            raise InsufficientData("Money-weighted return did not converge")

        years = years_between(start_date, end_date)
        period_return = (1.0 + rate) ** years - 1.0
        return {
            "start_date": start_date,
            "end_date": end_date,
            "mwr": _to_decimal(period_return),
            "mwr_percent": _to_decimal(period_return * 100),
            "annualized_mwr": _to_decimal(rate * 100),
            "total_cash_flow": money.total(transaction_cash_flow(tx) for tx in transactions),
            "starting_value": start_snapshot.total_value,
            "ending_value": end_snapshot.total_value,
        }

    async def calculate_annualized_return(self, db: AsyncSession, portfolio_id, start_date: date, end_date: date) -> Dict:
        self._check_range(start_date, end_date)
        start_snapshot = await self.snapshot_near(db, portfolio_id, start_date)
        end_snapshot = await self.snapshot_near(db, portfolio_id, end_date)

        starting_value = start_snapshot.total_value
        ending_value = end_snapshot.total_value
        total_return = ending_value - starting_value
        years = years_between(start_date, end_date)

        annual = None
        if not money.is_zero(starting_value):
            annual = annualize(float(ending_value / starting_value), years)

        return {
            "start_date": start_date,
            "end_date": end_date,
            "total_return": total_return,
            "total_return_pct": money.percent(total_return, starting_value),
            "annualized_return": _to_decimal(annual * 100) if annual is not None else money.ZERO,
            "years": years,
        }

    async def compare_to_benchmark(
        self,
        db: AsyncSession,
        portfolio_id,
        benchmark_symbol: str,
        start_date: date,
        end_date: date,
    ) -> Dict:
        portfolio = await self.calculate_annualized_return(db, portfolio_id, start_date, end_date)

        try:
            prices = await market_data_service.get_historical_prices(benchmark_symbol, start_date, end_date)
        except MarketDataUnavailable as e:
            raise InsufficientData(f"No benchmark data for {benchmark_symbol.upper()}: {e.message}") from e
        if len(prices) < 2 or money.is_zero(prices[0].close):
            raise InsufficientData(f"Not enough benchmark data for {benchmark_symbol.upper()}")

        benchmark_growth = prices[-1].close / prices[0].close
        benchmark_return_pct = money.quantize((benchmark_growth - 1) * money.HUNDRED)
        annual = annualize(float(benchmark_growth), portfolio["years"])
        benchmark_annualized = _to_decimal(annual * 100) if annual is not None else money.ZERO

        return {
            "start_date": start_date,
            "end_date": end_date,
            "benchmark_symbol": benchmark_symbol.upper(),
            "portfolio_return": portfolio["total_return_pct"],
            "benchmark_return": benchmark_return_pct,
            "alpha": portfolio["annualized_return"] - benchmark_annualized,
            "portfolio_annualized": portfolio["annualized_return"],
            "benchmark_annualized": benchmark_annualized,
            "outperformance": portfolio["total_return_pct"] - benchmark_return_pct,
        }

    async def get_metrics(self, db: AsyncSession, portfolio_id, start_date: date, end_date: date) -> Dict:
        """Everything at once. TWR and MWR are left empty when they cannot be computed."""
        annual = await self.calculate_annualized_return(db, portfolio_id, start_date, end_date)
        start_snapshot = await self.snapshot_near(db, portfolio_id, start_date)
        end_snapshot = await self.snapshot_near(db, portfolio_id, end_date)

        try:
            twr = (await self.calculate_twr(db, portfolio_id, start_date, end_date))["twr_percent"]
        except InsufficientData as e:
            logger.debug(f"TWR unavailable for portfolio {portfolio_id}: {e.message}")
            twr = None
        try:
            mwr = (await self.calculate_mwr(db, portfolio_id, start_date, end_date))["mwr_percent"]
        except InsufficientData as e:
            logger.debug(f"MWR unavailable for portfolio {portfolio_id}: {e.message}")
            mwr = None

        transactions = await self._transactions(db, portfolio_id, start_date, end_date)
        deposits = money.total(tx.total_cost for tx in transactions if tx.type in ACQUISITION_TYPES)
        withdrawals = money.total(tx.proceeds for tx in transactions if tx.type == TransactionType.SELL)

        return {
            "start_date": start_date,
            "end_date": end_date,
            "starting_value": start_snapshot.total_value,
            "ending_value": end_snapshot.total_value,
            "total_return": annual["total_return"],
            "total_return_pct": annual["total_return_pct"],
            "time_weighted_return": twr,
            "money_weighted_return": mwr,
            "annualized_return": annual["annualized_return"],
            "total_deposits": deposits,
            "total_withdrawals": withdrawals,
            "net_cash_flow": deposits - withdrawals,
            "years": annual["years"],
        }


analytics_service = AnalyticsService()
