"""Transaction ingest and the tax-lot ledger.

Every mutation keeps, for each (portfolio, symbol):

    holding.quantity   == sum(open lot.quantity)
    holding.cost_basis == sum(open lot.cost_basis)

Writes only flush; the request-scoped session commits or rolls back the whole
unit, so a failed sale or a failed import row leaves nothing behind.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import money
from app.core.errors import (
    InsufficientShares,
    Irreversible,
    LotConsumed,
    PortfolioError,
    ResourceNotFound,
    TransactionValidation,
)
from app.models.portfolio import Portfolio
from app.models.realized_gain import RealizedGain
from app.models.tax_lot import TaxLot
from app.models.transaction import (
    ACQUISITION_TYPES,
    CORPORATE_ACTION_TYPES,
    Transaction,
    TransactionType,
)
from app.schemas.transaction import TransactionCreate
from app.services import cost_basis
from app.services.holding_service import holding_service

logger = logging.getLogger(__name__)

SYMBOL_PATTERN = re.compile(r"^[A-Z0-9.\-]+$")
CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
# Numeric(20, 8) leaves 12 integer digits
MAX_AMOUNT = Decimal(10) ** 12

PRICED_TYPES = frozenset({TransactionType.BUY, TransactionType.SELL, TransactionType.DIVIDEND_REINVEST})


@dataclass(frozen=True)
class ValidatedTransaction:
    type: TransactionType
    symbol: str
    date: date
    quantity: Decimal
    price: Optional[Decimal]
    commission: Decimal
    currency: str
    notes: Optional[str]
    lot_ids: Tuple[UUID, ...]


def _check_amount(value: Decimal, field: str) -> Decimal:
    if not value.is_finite():
        raise TransactionValidation(f"{field} must be a finite number", field=field)
    if value != money.quantize(value):
        raise TransactionValidation(f"{field} has more than {money.SCALE} decimal places", field=field)
    if abs(value) >= MAX_AMOUNT:
        raise TransactionValidation(f"{field} is too large", field=field)
    return money.quantize(value)


def validate_transaction(data: TransactionCreate, base_currency: str) -> ValidatedTransaction:
    """Check and normalize one ingest row. Pure; raises TransactionValidation."""
    if data.type in CORPORATE_ACTION_TYPES:
        raise TransactionValidation(
            f"{data.type.value} transactions are created by corporate actions only",
            field="type",
        )

    symbol = (data.symbol or "").strip().upper()
    if not symbol:
        raise TransactionValidation("Symbol is required", field="symbol")
    if len(symbol) > 20 or not SYMBOL_PATTERN.match(symbol):
        raise TransactionValidation(
            "Symbol may only contain letters, digits, '.' and '-'", field="symbol"
        )

    quantity = _check_amount(data.quantity, "quantity")
    if not money.is_positive(quantity):
        raise TransactionValidation("Quantity must be greater than zero", field="quantity")

    price = data.price
    if data.type in PRICED_TYPES:
        if price is None:
            raise TransactionValidation(f"Price is required for {data.type.value}", field="price")
    if price is not None:
        price = _check_amount(price, "price")
        if not money.is_positive(price):
            raise TransactionValidation("Price must be greater than zero", field="price")

    commission = _check_amount(data.commission if data.commission is not None else money.ZERO, "commission")
    if money.is_negative(commission):
        raise TransactionValidation("Commission cannot be negative", field="commission")

    currency = (data.currency or base_currency).strip().upper()
    if not CURRENCY_PATTERN.match(currency):
        raise TransactionValidation("Currency must be a 3-letter code", field="currency")

    lot_ids = tuple(data.lot_ids or ())
    if lot_ids and data.type != TransactionType.SELL:
        raise TransactionValidation("lot_ids only apply to SELL transactions", field="lot_ids")

    return ValidatedTransaction(
        type=data.type,
        symbol=symbol,
        date=data.date,
        quantity=quantity,
        price=price,
        commission=commission,
        currency=currency,
        notes=data.notes,
        lot_ids=lot_ids,
    )


class LedgerService:
    """Service for recording transactions against the lot ledger."""

    async def open_lots(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        symbol: str,
    ) -> List[TaxLot]:
        result = await db.execute(
            select(TaxLot)
            .where(
                TaxLot.portfolio_id == portfolio_id,
                TaxLot.symbol == symbol,
                TaxLot.quantity > 0,
            )
            .order_by(TaxLot.purchase_date, TaxLot.created_at)
        )
        return list(result.scalars().all())

    def _new_transaction(
        self,
        portfolio: Portfolio,
        tx: ValidatedTransaction,
        import_batch_id: Optional[UUID],
    ) -> Transaction:
        return Transaction(
            portfolio_id=portfolio.id,
            type=tx.type,
            symbol=tx.symbol,
            date=tx.date,
            quantity=tx.quantity,
            price=tx.price,
            commission=tx.commission,
            currency=tx.currency,
            notes=tx.notes,
            import_batch_id=import_batch_id,
        )

    async def _apply_acquisition(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        tx: ValidatedTransaction,
        import_batch_id: Optional[UUID],
    ) -> Transaction:
        holding = await holding_service.lock(db, portfolio.id, tx.symbol, create=True)

        transaction = self._new_transaction(portfolio, tx, import_batch_id)
        db.add(transaction)
        await db.flush()

        lot_cost = money.quantize(transaction.total_cost)
        db.add(
            TaxLot(
                portfolio_id=portfolio.id,
                symbol=tx.symbol,
                purchase_date=tx.date,
                quantity=tx.quantity,
                cost_basis=lot_cost,
                transaction_id=transaction.id,
            )
        )
        holding_service.add(holding, tx.quantity, lot_cost)
        return transaction

    async def _apply_sale(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        tx: ValidatedTransaction,
        import_batch_id: Optional[UUID],
    ) -> Tuple[Transaction, List[RealizedGain]]:
        selection = cost_basis.selection_for(portfolio.cost_basis_method, tx.lot_ids)

        holding = await holding_service.lock(db, portfolio.id, tx.symbol)
        if holding is None:
            raise InsufficientShares(tx.symbol, tx.quantity, money.ZERO)

        lots = await self.open_lots(db, portfolio.id, tx.symbol)
        # Planning raises before anything is written
        plan = cost_basis.plan_sale(lots, tx.quantity, selection, tx.symbol)
        slices = cost_basis.price_sale(plan, tx.price, tx.commission, tx.date)

        transaction = self._new_transaction(portfolio, tx, import_batch_id)
        db.add(transaction)
        await db.flush()

        gains = []
        for item in slices:
            lot = item.lot
            gain = RealizedGain(
                portfolio_id=portfolio.id,
                sell_transaction_id=transaction.id,
                tax_lot_id=lot.id,
                symbol=tx.symbol,
                purchase_date=lot.purchase_date,
                sale_date=tx.date,
                quantity=item.take,
                cost_basis=item.cost_basis,
                proceeds=item.proceeds,
                gain=item.gain,
                holding_period=item.holding_period,
            )
            db.add(gain)
            gains.append(gain)

            lot.quantity = lot.quantity - item.take
            lot.cost_basis = lot.cost_basis - item.cost_basis
            if money.is_zero(lot.quantity):
                await db.delete(lot)

        holding_service.remove(
            holding,
            tx.quantity,
            money.total(item.cost_basis for item in slices),
        )
        return transaction, gains

    async def _record(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        tx: ValidatedTransaction,
        import_batch_id: Optional[UUID] = None,
    ) -> Tuple[Transaction, List[RealizedGain]]:
        if tx.type in ACQUISITION_TYPES:
            transaction = await self._apply_acquisition(db, portfolio, tx, import_batch_id)
            gains = []
        elif tx.type == TransactionType.SELL:
            transaction, gains = await self._apply_sale(db, portfolio, tx, import_batch_id)
        else:
            # Cash dividend: recorded for income history, lots untouched
            transaction = self._new_transaction(portfolio, tx, import_batch_id)
            db.add(transaction)
            gains = []
        await db.flush()
        return transaction, gains

    async def record_transaction(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        data: TransactionCreate,
    ) -> Tuple[Transaction, List[RealizedGain]]:
        """Validate and apply one transaction. Returns it with any realized gains."""
        tx = validate_transaction(data, portfolio.base_currency)
        transaction, gains = await self._record(db, portfolio, tx)
        logger.info(
            f"Recorded {tx.type.value} {tx.quantity} {tx.symbol} in portfolio {portfolio.id}"
            + (f" ({len(gains)} lots consumed)" if gains else "")
        )
        return transaction, gains

    async def record_batch(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        rows: Sequence[TransactionCreate],
    ) -> Tuple[UUID, List[Transaction]]:
        """Apply a list of transactions under one import batch id.

        Rows are applied in date order (stable for equal dates), so a sale may
        follow its purchase within the same file. Any failing row aborts the
        whole batch; the error message names the row.
        """
        validated = []
        for index, row in enumerate(rows):
            try:
                validated.append((index, validate_transaction(row, portfolio.base_currency)))
            except TransactionValidation as e:
                raise TransactionValidation(f"Row {index + 1}: {e.message}", field=e.field) from e

        batch_id = uuid.uuid4()
        transactions = []
        for index, tx in sorted(validated, key=lambda pair: pair[1].date):
            try:
                transaction, _ = await self._record(db, portfolio, tx, import_batch_id=batch_id)
            except PortfolioError as e:
                logger.warning(f"Import into portfolio {portfolio.id} failed at row {index + 1}: {e.message}")
                e.message = f"Row {index + 1}: {e.message}"
                raise
            transactions.append(transaction)

        logger.info(f"Imported {len(transactions)} transactions into portfolio {portfolio.id} as batch {batch_id}")
        return batch_id, transactions

    async def list_transactions(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        symbol: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Transaction]:
        query = select(Transaction).where(Transaction.portfolio_id == portfolio_id)
        if symbol:
            query = query.where(Transaction.symbol == symbol.upper())
        if transaction_type:
            query = query.where(Transaction.type == transaction_type)
        if start_date:
            query = query.where(Transaction.date >= start_date)
        if end_date:
            query = query.where(Transaction.date <= end_date)

        query = query.order_by(Transaction.date.desc(), Transaction.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_transaction(self, db: AsyncSession, portfolio_id: UUID, transaction_id: UUID) -> Transaction:
        result = await db.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.portfolio_id == portfolio_id,
            )
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise ResourceNotFound("Transaction not found")
        return transaction

    async def realized_gains_for(self, db: AsyncSession, transaction_id: UUID) -> List[RealizedGain]:
        result = await db.execute(
            select(RealizedGain)
            .where(RealizedGain.sell_transaction_id == transaction_id)
            .order_by(RealizedGain.purchase_date)
        )
        return list(result.scalars().all())

    async def _lot_opened_by(self, db: AsyncSession, transaction: Transaction) -> Optional[TaxLot]:
        result = await db.execute(
            select(TaxLot)
            .where(TaxLot.transaction_id == transaction.id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _reverse_acquisition(self, db: AsyncSession, transaction: Transaction) -> None:
        """Remove the lot a BUY opened, provided no share of it was ever sold.

        The lot is read again once the holding is locked, so a sale committed
        in between is seen before anything is deleted.
        """
        lot = await self._lot_opened_by(db, transaction)
        if lot is None:
            raise LotConsumed(transaction.id, "The tax lot opened by this transaction has been fully sold")

        holding = await holding_service.lock(db, transaction.portfolio_id, lot.symbol)
        lot = await self._lot_opened_by(db, transaction)
        if lot is None:
            raise LotConsumed(transaction.id, "The tax lot opened by this transaction has been fully sold")

        sold = await db.execute(select(RealizedGain.id).where(RealizedGain.tax_lot_id == lot.id).limit(1))
        if sold.first() is not None:
            raise LotConsumed(lot.id)

        await db.delete(lot)
        await db.flush()
        if holding is not None:
            lots = await self.open_lots(db, transaction.portfolio_id, lot.symbol)
            holding_service.recompute_from_lots(holding, lots)

    async def delete_transaction(self, db: AsyncSession, transaction: Transaction) -> None:
        """Delete a committed transaction.

        BUY and DIVIDEND_REINVEST can be undone while their lot is untouched.
        Cash dividends carry no ledger state. Sales and corporate-action
        entries are history and raise Irreversible.
        """
        if transaction.type == TransactionType.SELL or transaction.type in CORPORATE_ACTION_TYPES:
            raise Irreversible(f"{transaction.type.value} transactions cannot be deleted")

        if transaction.type in ACQUISITION_TYPES:
            await self._reverse_acquisition(db, transaction)

        await db.delete(transaction)
        await db.flush()
        logger.info(f"Deleted {transaction.type.value} transaction {transaction.id}")

    async def list_import_batches(self, db: AsyncSession, portfolio_id: UUID) -> List[dict]:
        result = await db.execute(
            select(
                Transaction.import_batch_id,
                func.count(Transaction.id),
                func.min(Transaction.date),
                func.max(Transaction.date),
                func.min(Transaction.created_at),
            )
            .where(
                Transaction.portfolio_id == portfolio_id,
                Transaction.import_batch_id.is_not(None),
            )
            .group_by(Transaction.import_batch_id)
            .order_by(func.min(Transaction.created_at).desc())
        )
        return [
            {
                "import_batch_id": batch_id,
                "transaction_count": count,
                "first_date": first_date,
                "last_date": last_date,
                "imported_at": imported_at,
            }
            for batch_id, count, first_date, last_date, imported_at in result.all()
        ]

    async def delete_import_batch(self, db: AsyncSession, portfolio_id: UUID, batch_id: UUID) -> int:
        """Remove every transaction of an import batch, all or nothing.

        Refused when the batch contains a sale or when any lot it opened has
        been sold from since.
        """
        result = await db.execute(
            select(Transaction)
            .where(
                Transaction.portfolio_id == portfolio_id,
                Transaction.import_batch_id == batch_id,
            )
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
        )
        transactions = list(result.scalars().all())
        if not transactions:
            raise ResourceNotFound("Import batch not found")

        for transaction in transactions:
            if transaction.type == TransactionType.SELL:
                raise Irreversible("Import batches containing sales cannot be deleted")

        for transaction in transactions:
            if transaction.type in ACQUISITION_TYPES:
                await self._reverse_acquisition(db, transaction)

        await db.execute(delete(Transaction).where(Transaction.id.in_([t.id for t in transactions])))
        await db.flush()
        logger.info(f"Deleted import batch {batch_id} ({len(transactions)} transactions) from portfolio {portfolio_id}")
        return len(transactions)


ledger_service = LedgerService()
