"""Tests for lot selection and sale pricing."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from app.core.errors import InsufficientShares, InvalidLotSelection
from app.models.portfolio import CostBasisMethod
from app.models.realized_gain import HoldingPeriod
from app.services import cost_basis

D = Decimal


@dataclass
class FakeLot:
    purchase_date: date
    quantity: Decimal
    cost_basis: Decimal
    symbol: str = "AAPL"
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    portfolio_id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: Optional[datetime] = None


@pytest.fixture
def two_lots():
    """10 @ 100 bought Jan 2023, 5 @ 120 bought Jun 2023."""
    return [
        FakeLot(date(2023, 6, 1), D("5"), D("600")),
        FakeLot(date(2023, 1, 1), D("10"), D("1000")),
    ]


class TestSelectionFor:
    def test_fifo_and_lifo(self):
        assert isinstance(cost_basis.selection_for(CostBasisMethod.FIFO), cost_basis.Fifo)
        assert isinstance(cost_basis.selection_for(CostBasisMethod.LIFO), cost_basis.Lifo)

    def test_specific_requires_ids(self):
        with pytest.raises(InvalidLotSelection):
            cost_basis.selection_for(CostBasisMethod.SPECIFIC_LOT)

    def test_specific_keeps_order(self):
        ids = [uuid.uuid4(), uuid.uuid4()]
        selection = cost_basis.selection_for(CostBasisMethod.SPECIFIC_LOT, ids)
        assert selection == cost_basis.SpecificLots(tuple(ids))

    def test_ids_refused_for_fifo(self):
        with pytest.raises(InvalidLotSelection) as exc:
            cost_basis.selection_for(CostBasisMethod.FIFO, [uuid.uuid4()])
        assert exc.value.field == "lot_ids"


class TestPlanSale:
    def test_fifo_takes_oldest_first(self, two_lots):
        plan = cost_basis.plan_sale(two_lots, D("12"), cost_basis.Fifo(), "AAPL")
        assert [(t.lot.purchase_date, t.take) for t in plan] == [
            (date(2023, 1, 1), D("10")),
            (date(2023, 6, 1), D("2")),
        ]

    def test_lifo_takes_newest_first(self, two_lots):
        plan = cost_basis.plan_sale(two_lots, D("8"), cost_basis.Lifo(), "AAPL")
        assert [(t.lot.purchase_date, t.take) for t in plan] == [
            (date(2023, 6, 1), D("5")),
            (date(2023, 1, 1), D("3")),
        ]

    def test_same_day_lots_ordered_by_creation(self):
        first = FakeLot(date(2023, 1, 1), D("1"), D("10"), created_at=datetime(2023, 1, 1, 9, tzinfo=timezone.utc))
        second = FakeLot(date(2023, 1, 1), D("1"), D("20"), created_at=datetime(2023, 1, 1, 10, tzinfo=timezone.utc))
        plan = cost_basis.plan_sale([second, first], D("1"), cost_basis.Fifo(), "AAPL")
        assert plan[0].lot is first

    def test_takes_sum_to_quantity(self, two_lots):
        plan = cost_basis.plan_sale(two_lots, D("15"), cost_basis.Fifo(), "AAPL")
        assert sum(t.take for t in plan) == D("15")

    def test_oversell(self, two_lots):
        with pytest.raises(InsufficientShares) as exc:
            cost_basis.plan_sale(two_lots, D("16"), cost_basis.Fifo(), "AAPL")
        assert exc.value.available == D("15")
        assert exc.value.shortfall == D("1")

    def test_specific_unknown_lot(self, two_lots):
        selection = cost_basis.SpecificLots((uuid.uuid4(),))
        with pytest.raises(InvalidLotSelection):
            cost_basis.plan_sale(two_lots, D("1"), selection, "AAPL")

    def test_specific_duplicate_lot(self, two_lots):
        lot_id = two_lots[0].id
        with pytest.raises(InvalidLotSelection):
            cost_basis.plan_sale(two_lots, D("1"), cost_basis.SpecificLots((lot_id, lot_id)), "AAPL")

    def test_specific_follows_caller_order(self, two_lots):
        newer, older = two_lots
        selection = cost_basis.SpecificLots((newer.id, older.id))
        plan = cost_basis.plan_sale(two_lots, D("7"), selection, "AAPL")
        assert [(t.lot, t.take) for t in plan] == [(newer, D("5")), (older, D("2"))]

    def test_plan_does_not_mutate_lots(self, two_lots):
        cost_basis.plan_sale(two_lots, D("12"), cost_basis.Fifo(), "AAPL")
        assert [lot.quantity for lot in two_lots] == [D("5"), D("10")]


class TestPriceSale:
    def test_gains_and_holding_period(self, two_lots):
        plan = cost_basis.plan_sale(two_lots, D("12"), cost_basis.Fifo(), "AAPL")
        slices = cost_basis.price_sale(plan, D("150"), D("0"), date(2024, 2, 1))
        assert [(s.cost_basis, s.proceeds, s.gain) for s in slices] == [
            (D("1000"), D("1500"), D("500")),
            (D("240"), D("300"), D("60")),
        ]
        assert [s.holding_period for s in slices] == [HoldingPeriod.LONG, HoldingPeriod.SHORT]

    def test_commission_residual_goes_to_last_slice(self):
        lots = [FakeLot(date(2023, 1, 1), D("1"), D("100")) for _ in range(3)]
        plan = cost_basis.plan_sale(lots, D("3"), cost_basis.Fifo(), "AAPL")
        slices = cost_basis.price_sale(plan, D("100"), D("1"), date(2023, 2, 1))
        assert sum(D("100") - s.proceeds for s in slices) == D("1")
        assert slices[-1].proceeds == D("99.66666666")

    def test_whole_lot_takes_whole_basis(self):
        lot = FakeLot(date(2023, 1, 1), D("3"), D("100"))
        assert cost_basis.consumed_cost(lot, D("3")) == D("100")
        assert cost_basis.consumed_cost(lot, D("1")) == D("33.33333333")
