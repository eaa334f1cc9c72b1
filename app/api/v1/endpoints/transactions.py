"""Transaction endpoints: single entries, bulk imports and their reversal."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_owned_portfolio
from app.core.database import get_db
from app.core.rate_limit import limiter, RATE_LIMITS
from app.models.portfolio import Portfolio
from app.models.transaction import Transaction, TransactionType
from app.schemas.tax_lot import RealizedGainResponse
from app.schemas.transaction import (
    ImportBatchSummary,
    ImportResult,
    TransactionBatchCreate,
    TransactionCreate,
    TransactionResponse,
    TransactionResult,
)
from app.services.ledger_service import ledger_service

router = APIRouter()


def _result(transaction: Transaction, gains) -> TransactionResult:
    return TransactionResult(
        **TransactionResponse.model_validate(transaction).model_dump(),
        realized_gains=[RealizedGainResponse.model_validate(g) for g in gains],
    )


# Imports come first so "/imports" is not taken for a transaction id

@router.post("/import", response_model=ImportResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["bulk_import"])
async def import_transactions(
    request: Request,
    batch: TransactionBatchCreate,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> ImportResult:
    """Import many transactions at once. A failing row aborts the whole batch."""
    batch_id, transactions = await ledger_service.record_batch(db, portfolio, batch.transactions)
    return ImportResult(
        import_batch_id=batch_id,
        count=len(transactions),
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
    )


@router.get("/imports", response_model=List[ImportBatchSummary])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_imports(
    request: Request,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[ImportBatchSummary]:
    return await ledger_service.list_import_batches(db, portfolio.id)


@router.delete("/imports/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["api_write"])
async def delete_import(
    request: Request,
    batch_id: UUID,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
):
    """Reverse every transaction of an import batch."""
    await ledger_service.delete_import_batch(db, portfolio.id, batch_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("", response_model=TransactionResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["api_write"])
async def create_transaction(
    request: Request,
    transaction_in: TransactionCreate,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> TransactionResult:
    """Record a transaction and update lots and holdings."""
    transaction, gains = await ledger_service.record_transaction(db, portfolio, transaction_in)
    return _result(transaction, gains)


@router.get("", response_model=List[TransactionResponse])
@limiter.limit(RATE_LIMITS["api_read"])
async def list_transactions(
    request: Request,
    symbol: Optional[str] = None,
    transaction_type: Optional[TransactionType] = Query(None, alias="type"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> List[TransactionResponse]:
    """List transactions, newest first."""
    return await ledger_service.list_transactions(
        db,
        portfolio.id,
        symbol=symbol,
        transaction_type=transaction_type,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )


@router.get("/{transaction_id}", response_model=TransactionResult)
@limiter.limit(RATE_LIMITS["api_read"])
async def get_transaction(
    request: Request,
    transaction_id: UUID,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
) -> TransactionResult:
    transaction = await ledger_service.get_transaction(db, portfolio.id, transaction_id)
    gains = await ledger_service.realized_gains_for(db, transaction.id)
    return _result(transaction, gains)


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["api_write"])
async def delete_transaction(
    request: Request,
    transaction_id: UUID,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    db: AsyncSession = Depends(get_db),
):
    """Delete a transaction. Only unsold purchases and dividends can be removed."""
    transaction = await ledger_service.get_transaction(db, portfolio.id, transaction_id)
    await ledger_service.delete_transaction(db, transaction)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
