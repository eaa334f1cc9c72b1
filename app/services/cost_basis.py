"""Cost-basis lot selection.

Pure functions: nothing here touches the database or mutates a lot. The
ledger asks for a plan, then applies it.

The method is a tagged variant rather than a class hierarchy:

    Fifo()                 oldest purchase first
    Lifo()                 newest purchase first
    SpecificLots(ids)      caller's lots, in the caller's order
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence, Tuple, Union
from uuid import UUID

from app.core import money
from app.core.errors import InsufficientShares, InvalidLotSelection
from app.models.portfolio import CostBasisMethod
from app.models.realized_gain import HoldingPeriod


class LotLike(Protocol):
    id: UUID
    portfolio_id: UUID
    symbol: str
    purchase_date: date
    quantity: Decimal
    cost_basis: Decimal
    created_at: Optional[datetime]


@dataclass(frozen=True)
class Fifo:
    pass


@dataclass(frozen=True)
class Lifo:
    pass


@dataclass(frozen=True)
class SpecificLots:
    lot_ids: Tuple[UUID, ...]


LotSelection = Union[Fifo, Lifo, SpecificLots]


def selection_for(method: CostBasisMethod, lot_ids: Optional[Sequence[UUID]] = None) -> LotSelection:
    """Build the variant for a portfolio method.

    Lot ids are required for SPECIFIC_LOT and refused for the other methods.
    """
    if method == CostBasisMethod.SPECIFIC_LOT:
        if not lot_ids:
            raise InvalidLotSelection("SPECIFIC_LOT portfolios must name the lots to sell", field="lot_ids")
        return SpecificLots(tuple(lot_ids))
    if lot_ids:
        raise InvalidLotSelection(
            f"lot_ids are only accepted for SPECIFIC_LOT portfolios, not {method.value}",
            field="lot_ids",
        )
    if method == CostBasisMethod.LIFO:
        return Lifo()
    return Fifo()


@dataclass(frozen=True)
class LotTake:
    lot: LotLike
    take: Decimal


@dataclass(frozen=True)
class SaleSlice:
    lot: LotLike
    take: Decimal
    cost_basis: Decimal
    proceeds: Decimal
    gain: Decimal
    holding_period: HoldingPeriod


def _creation_key(lot: LotLike) -> float:
    return lot.created_at.timestamp() if lot.created_at else 0.0


def _chronological_key(lot: LotLike):
    return (lot.purchase_date, _creation_key(lot), str(lot.id))


def order_fifo(lots: Sequence[LotLike]) -> List[LotLike]:
    return sorted(lots, key=_chronological_key)


def order_lifo(lots: Sequence[LotLike]) -> List[LotLike]:
    return sorted(lots, key=_chronological_key, reverse=True)


def _order_specific(
    lots: Sequence[LotLike],
    lot_ids: Tuple[UUID, ...],
    quantity: Decimal,
    symbol: str,
) -> List[LotLike]:
    by_id = {lot.id: lot for lot in lots}
    seen = set()
    ordered = []
    for lot_id in lot_ids:
        if lot_id in seen:
            raise InvalidLotSelection(f"Tax lot {lot_id} is listed more than once", field="lot_ids")
        seen.add(lot_id)
        lot = by_id.get(lot_id)
        if lot is None:
            raise InvalidLotSelection(
                f"Tax lot {lot_id} is not an open lot of {symbol} in this portfolio",
                field="lot_ids",
            )
        ordered.append(lot)

    available = money.total(lot.quantity for lot in ordered)
    if available < quantity:
        raise InsufficientShares(symbol, quantity, available)
    return ordered


def plan_sale(
    lots: Sequence[LotLike],
    quantity: Decimal,
    selection: LotSelection,
    symbol: str,
) -> List[LotTake]:
    """Decide which lots a sale of ``quantity`` consumes and how much of each.

    ``lots`` must be the open lots of one (portfolio, symbol). The returned
    takes sum exactly to ``quantity``.
    """
    quantity = money.to_decimal(quantity)
    open_lots = [lot for lot in lots if money.is_positive(lot.quantity)]

    if isinstance(selection, SpecificLots):
        ordered = _order_specific(open_lots, selection.lot_ids, quantity, symbol)
    else:
        available = money.total(lot.quantity for lot in open_lots)
        if available < quantity:
            raise InsufficientShares(symbol, quantity, available)
        ordered = order_fifo(open_lots) if isinstance(selection, Fifo) else order_lifo(open_lots)

    plan = []
    remaining = quantity
    for lot in ordered:
        if remaining <= money.ZERO:
            break
        take = min(remaining, lot.quantity)
        plan.append(LotTake(lot=lot, take=take))
        remaining -= take
    return plan


def consumed_cost(lot: LotLike, take: Decimal) -> Decimal:
    """Cost basis leaving a lot when ``take`` shares are sold from it.

    Taking the whole lot takes its whole basis so no rounding dust is left
    behind on a closed lot.
    """
    if take >= lot.quantity:
        return lot.cost_basis
    cost_per_share = money.div(lot.cost_basis, lot.quantity)
    return money.mul(cost_per_share, take)


def price_sale(
    plan: Sequence[LotTake],
    price: Decimal,
    commission: Decimal,
    sale_date: date,
) -> List[SaleSlice]:
    """Attach cost, proceeds and gain to each planned take.

    Commission is prorated by ``take / total``; the last slice absorbs the
    rounding residual so slice commissions sum to the input exactly.
    """
    sale_quantity = money.total(t.take for t in plan)
    price = money.to_decimal(price)
    commission = money.to_decimal(commission)

    slices = []
    commission_left = commission
    for index, item in enumerate(plan):
        if index == len(plan) - 1:
            share = commission_left
        else:
            share = money.quantize(commission * item.take / sale_quantity)
            commission_left -= share

        cost = consumed_cost(item.lot, item.take)
        proceeds = money.quantize(price * item.take - share)
        period = (
            HoldingPeriod.LONG
            if money.is_long_term(item.lot.purchase_date, sale_date)
            else HoldingPeriod.SHORT
        )
        slices.append(
            SaleSlice(
                lot=item.lot,
                take=item.take,
                cost_basis=cost,
                proceeds=proceeds,
                gain=proceeds - cost,
                holding_period=period,
            )
        )
    return slices
