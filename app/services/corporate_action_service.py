"""Corporate actions and the per-portfolio proposal workflow.

A proposal moves PENDING -> APPROVED -> APPLIED, or PENDING -> REJECTED.
Nothing touches a portfolio's lots until its owner approves. If applying
fails (the position was sold in the meantime, say) the proposal ends up
REJECTED with the reason in its notes and other portfolios are unaffected.
"""

import asyncio
import logging
import re
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import money
from app.core.errors import (
    CorporateActionValidation,
    InvalidProposalState,
    OperationCancelled,
    PortfolioError,
    ProposalAlreadyExists,
    ResourceNotFound,
)
from app.core.security import utcnow
from app.models.corporate_action import CorporateAction, CorporateActionType
from app.models.holding import Holding
from app.models.portfolio import Portfolio
from app.models.portfolio_action import TERMINAL_STATUSES, PortfolioActionProposal, ProposalStatus
from app.models.tax_lot import TaxLot
from app.models.transaction import Transaction, TransactionType
from app.models.user import User
from app.schemas.corporate_action import CorporateActionCreate
from app.services.email_service import email_service
from app.services.holding_service import holding_service
from app.services.ledger_service import ledger_service

logger = logging.getLogger(__name__)

SYMBOL_PATTERN = re.compile(r"^[A-Z0-9.\-]+$")

# A proposal in any of these states blocks a new one for the same pair
BLOCKING_STATUSES = (ProposalStatus.PENDING, ProposalStatus.APPROVED, ProposalStatus.APPLIED)


def _symbol(value: Optional[str], field: str) -> str:
    symbol = (value or "").strip().upper()
    if not symbol or len(symbol) > 20 or not SYMBOL_PATTERN.match(symbol):
        raise CorporateActionValidation(f"{field} must be a valid ticker symbol", field=field)
    return symbol


def _positive(value: Optional[Decimal], field: str, action_type: CorporateActionType) -> Decimal:
    if value is None:
        raise CorporateActionValidation(f"{field} is required for {action_type.value}", field=field)
    if not value.is_finite() or value != money.quantize(value):
        raise CorporateActionValidation(f"{field} has more than {money.SCALE} decimal places", field=field)
    if not money.is_positive(value):
        raise CorporateActionValidation(f"{field} must be greater than zero", field=field)
    return money.quantize(value)


def validate_corporate_action(data: CorporateActionCreate) -> Dict:
    """Per-type field rules. Returns normalized column values."""
    action_type = data.type
    values = {
        "symbol": _symbol(data.symbol, "symbol"),
        "type": action_type,
        "date": data.date,
        "ratio": None,
        "amount": None,
        "new_symbol": None,
        "currency": data.currency.upper() if data.currency else None,
        "cost_allocation_pct": None,
        "description": data.description,
    }

    if action_type == CorporateActionType.SPLIT:
        values["ratio"] = _positive(data.ratio, "ratio", action_type)
        if values["ratio"] == 1:
            raise CorporateActionValidation("A split ratio of 1 leaves every position unchanged", field="ratio")
    elif action_type == CorporateActionType.DIVIDEND:
        values["amount"] = _positive(data.amount, "amount", action_type)
    elif action_type in (CorporateActionType.MERGER, CorporateActionType.SPINOFF):
        values["new_symbol"] = _symbol(data.new_symbol, "new_symbol")
        values["ratio"] = _positive(data.ratio, "ratio", action_type)
    elif action_type == CorporateActionType.TICKER_CHANGE:
        values["new_symbol"] = _symbol(data.new_symbol, "new_symbol")

    if values["new_symbol"] and values["new_symbol"] == values["symbol"]:
        raise CorporateActionValidation("new_symbol must differ from symbol", field="new_symbol")

    if action_type == CorporateActionType.SPINOFF:
        pct = data.cost_allocation_pct if data.cost_allocation_pct is not None else money.ZERO
        if pct < money.ZERO or pct > money.HUNDRED:
            raise CorporateActionValidation(
                "cost_allocation_pct must be between 0 and 100", field="cost_allocation_pct"
            )
        values["cost_allocation_pct"] = money.quantize(pct)
    elif data.cost_allocation_pct is not None:
        raise CorporateActionValidation(
            "cost_allocation_pct only applies to SPINOFF", field="cost_allocation_pct"
        )

    return values


def describe_action(action: CorporateAction, quantity: Decimal) -> str:
    """Human readable summary stored on each proposal."""
    symbol = action.symbol
    if action.type == CorporateActionType.SPLIT:
        return f"Stock split {action.ratio} for {symbol}. Your {quantity} shares will be adjusted."
    if action.type == CorporateActionType.DIVIDEND:
        total = money.mul(action.amount, quantity)
        return f"Dividend of {action.amount} per share ({total} total) for {symbol}"
    if action.type == CorporateActionType.MERGER:
        return f"Merger: {symbol} is being acquired. Shares will be converted to {action.new_symbol}"
    if action.type == CorporateActionType.SPINOFF:
        return (
            f"Spinoff: You will receive {action.ratio} shares of {action.new_symbol} "
            f"for your {symbol} holdings"
        )
    if action.type == CorporateActionType.TICKER_CHANGE:
        return f"Ticker change: {symbol} is changing to {action.new_symbol}"
    return f"Corporate action for {symbol}"


class CorporateActionService:
    """Service for corporate actions, detection and proposal review."""

    # Actions

    async def create_action(self, db: AsyncSession, data: CorporateActionCreate) -> CorporateAction:
        """Register an action. An existing (symbol, type, date) is returned as is."""
        values = validate_corporate_action(data)

        result = await db.execute(
            select(CorporateAction).where(
                CorporateAction.symbol == values["symbol"],
                CorporateAction.type == values["type"],
                CorporateAction.date == values["date"],
            )
        )
        existing = result.scalars().first()
        if existing is not None:
            logger.info(f"Corporate action already exists for {values['symbol']} on {values['date']}")
            return existing

        action = CorporateAction(**values, applied=False)
        db.add(action)
        await db.flush()
        await db.refresh(action)
        logger.info(f"Created {action.type.value} corporate action {action.id} for {action.symbol}")
        return action

    async def list_actions(
        self,
        db: AsyncSession,
        symbol: Optional[str] = None,
        applied: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[CorporateAction]:
        query = select(CorporateAction)
        if symbol:
            query = query.where(CorporateAction.symbol == symbol.upper())
        if applied is not None:
            query = query.where(CorporateAction.applied == applied)
        query = query.order_by(CorporateAction.date.desc(), CorporateAction.symbol).offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_action(self, db: AsyncSession, action_id: UUID) -> CorporateAction:
        result = await db.execute(select(CorporateAction).where(CorporateAction.id == action_id))
        action = result.scalar_one_or_none()
        if action is None:
            raise ResourceNotFound("Corporate action not found")
        return action

    async def _close_if_settled(self, db: AsyncSession, action: CorporateAction) -> bool:
        """Mark the action applied once every proposal for it is terminal."""
        result = await db.execute(
            select(PortfolioActionProposal.status).where(
                PortfolioActionProposal.corporate_action_id == action.id
            )
        )
        statuses = [row[0] for row in result.all()]
        if statuses and all(s in TERMINAL_STATUSES for s in statuses):
            action.applied = True
            await db.flush()
            logger.info(f"Corporate action {action.id} settled for all portfolios")
            return True
        return False

    # Detection

    async def propose(
        self,
        db: AsyncSession,
        action: CorporateAction,
        holding: Holding,
    ) -> PortfolioActionProposal:
        """Insert a PENDING proposal unless the portfolio already has a live one for this action."""
        result = await db.execute(
            select(PortfolioActionProposal.id)
            .where(
                PortfolioActionProposal.portfolio_id == holding.portfolio_id,
                PortfolioActionProposal.corporate_action_id == action.id,
                PortfolioActionProposal.status.in_(BLOCKING_STATUSES),
            )
            .limit(1)
        )
        if result.first() is not None:
            raise ProposalAlreadyExists()

        proposal = PortfolioActionProposal(
            portfolio_id=holding.portfolio_id,
            corporate_action_id=action.id,
            status=ProposalStatus.PENDING,
            affected_symbol=action.symbol,
            shares_at_detection=holding.quantity,
            detected_at=utcnow(),
            notes=describe_action(action, holding.quantity),
        )
        db.add(proposal)
        await db.flush()
        return proposal

    async def _notify_owner(self, db: AsyncSession, proposal: PortfolioActionProposal) -> None:
        if not email_service.is_configured:
            return
        result = await db.execute(
            select(Portfolio.name, User.email)
            .join(User, User.id == Portfolio.user_id)
            .where(Portfolio.id == proposal.portfolio_id)
        )
        row = result.first()
        if row is not None:
            await email_service.send_proposal_notice(row.email, row.name, proposal.notes)

    async def _process_action(self, db: AsyncSession, action: CorporateAction) -> int:
        logger.info(f"Processing {action.type.value} for symbol {action.symbol} on {action.date}")
        holdings = await holding_service.holdings_for_symbol(db, action.symbol)
        if not holdings:
            logger.info(f"No portfolios hold symbol {action.symbol}, skipping")
            return 0

        created = 0
        for holding in holdings:
            try:
                proposal = await self.propose(db, action, holding)
            except ProposalAlreadyExists:
                logger.debug(f"Proposal already exists for portfolio {holding.portfolio_id}, skipping")
                continue
            created += 1
            logger.info(
                f"Created pending proposal for portfolio {holding.portfolio_id} "
                f"({holding.quantity} shares affected)"
            )
            await self._notify_owner(db, proposal)
        return created

    async def detect(self, db: AsyncSession, cancel_event: Optional[asyncio.Event] = None) -> Dict:
        """Scan unapplied actions and create proposals for every portfolio holding the symbol.

        ``cancel_event`` is checked between actions; when set the run stops
        with OperationCancelled and the caller rolls back.
        """
        result = await db.execute(
            select(CorporateAction)
            .where(CorporateAction.applied.is_(False))
            .order_by(CorporateAction.date, CorporateAction.created_at)
        )
        actions = list(result.scalars().all())
        logger.info(f"Found {len(actions)} unapplied corporate actions")

        created = 0
        closed = 0
        for action in actions:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Corporate action detection cancelled")
                raise OperationCancelled("Corporate action detection cancelled")
            created += await self._process_action(db, action)
            if await self._close_if_settled(db, action):
                closed += 1

        logger.info(f"Corporate action detection completed: {created} proposals created")
        return {"actions_scanned": len(actions), "proposals_created": created, "actions_closed": closed}

    # Proposals

    async def list_proposals(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        status: Optional[ProposalStatus] = None,
    ) -> List[PortfolioActionProposal]:
        query = select(PortfolioActionProposal).where(PortfolioActionProposal.portfolio_id == portfolio_id)
        if status is not None:
            query = query.where(PortfolioActionProposal.status == status)
        result = await db.execute(query.order_by(PortfolioActionProposal.detected_at.desc()))
        return list(result.scalars().all())

    async def get_proposal(
        self,
        db: AsyncSession,
        portfolio_id: UUID,
        proposal_id: UUID,
        for_update: bool = False,
    ) -> PortfolioActionProposal:
        query = select(PortfolioActionProposal).where(
            PortfolioActionProposal.id == proposal_id,
            PortfolioActionProposal.portfolio_id == portfolio_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        proposal = result.scalar_one_or_none()
        if proposal is None:
            raise ResourceNotFound("Proposal not found")
        return proposal

    async def with_actions(
        self,
        db: AsyncSession,
        proposals: Sequence[PortfolioActionProposal],
    ) -> List[Dict]:
        """Pair each proposal with its corporate action for display."""
        action_ids = {p.corporate_action_id for p in proposals}
        actions = {}
        if action_ids:
            result = await db.execute(select(CorporateAction).where(CorporateAction.id.in_(action_ids)))
            actions = {a.id: a for a in result.scalars().all()}
        return [
            {
                "id": p.id,
                "portfolio_id": p.portfolio_id,
                "corporate_action_id": p.corporate_action_id,
                "status": p.status,
                "affected_symbol": p.affected_symbol,
                "shares_at_detection": p.shares_at_detection,
                "detected_at": p.detected_at,
                "reviewed_at": p.reviewed_at,
                "applied_at": p.applied_at,
                "reviewed_by_user_id": p.reviewed_by_user_id,
                "notes": p.notes,
                "corporate_action": actions[p.corporate_action_id],
            }
            for p in proposals
        ]

    async def approve(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        proposal_id: UUID,
        reviewer_id: UUID,
    ) -> PortfolioActionProposal:
        """Approve and apply in one unit. A failed application rejects the proposal instead."""
        proposal = await self.get_proposal(db, portfolio.id, proposal_id, for_update=True)
        if proposal.status != ProposalStatus.PENDING:
            raise InvalidProposalState(f"Proposal is {proposal.status.value}, only PENDING can be approved")

        action = await self.get_action(db, proposal.corporate_action_id)
        now = utcnow()
        proposal.status = ProposalStatus.APPROVED
        proposal.reviewed_at = now
        proposal.reviewed_by_user_id = reviewer_id
        await db.flush()

        try:
            async with db.begin_nested():
                await self._apply(db, portfolio, action)
        except PortfolioError as e:
            logger.warning(f"Applying corporate action {action.id} to portfolio {portfolio.id} failed: {e.message}")
            proposal.status = ProposalStatus.REJECTED
            proposal.notes = f"Automatically rejected: {e.message}"
        else:
            proposal.status = ProposalStatus.APPLIED
            proposal.applied_at = utcnow()
            logger.info(f"Applied {action.type.value} {action.id} to portfolio {portfolio.id}")

        await db.flush()
        await self._close_if_settled(db, action)
        await db.refresh(proposal)
        return proposal

    async def reject(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        proposal_id: UUID,
        reviewer_id: UUID,
        reason: Optional[str] = None,
    ) -> PortfolioActionProposal:
        proposal = await self.get_proposal(db, portfolio.id, proposal_id, for_update=True)
        if proposal.status != ProposalStatus.PENDING:
            raise InvalidProposalState(f"Proposal is {proposal.status.value}, only PENDING can be rejected")

        proposal.status = ProposalStatus.REJECTED
        proposal.reviewed_at = utcnow()
        proposal.reviewed_by_user_id = reviewer_id
        if reason:
            proposal.notes = reason
        await db.flush()

        action = await self.get_action(db, proposal.corporate_action_id)
        await self._close_if_settled(db, action)
        await db.refresh(proposal)
        logger.info(f"Proposal {proposal.id} rejected by user {reviewer_id}")
        return proposal

    # Application

    async def _position(self, db: AsyncSession, portfolio: Portfolio, symbol: str):
        holding = await holding_service.lock(db, portfolio.id, symbol)
        lots = await ledger_service.open_lots(db, portfolio.id, symbol)
        if holding is None or not lots:
            raise CorporateActionValidation(f"No open lots of {symbol} remain in this portfolio", field="symbol")
        return holding, lots

    def _audit_transaction(
        self,
        portfolio: Portfolio,
        action: CorporateAction,
        transaction_type: TransactionType,
        symbol: str,
        quantity: Decimal,
        notes: str,
        currency: Optional[str] = None,
    ) -> Transaction:
        return Transaction(
            portfolio_id=portfolio.id,
            type=transaction_type,
            symbol=symbol,
            date=action.date,
            quantity=quantity,
            price=None,
            commission=money.ZERO,
            currency=currency or portfolio.base_currency,
            notes=notes,
            corporate_action_id=action.id,
        )

    async def _rename_position(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        holding: Holding,
        lots: List[TaxLot],
        new_symbol: str,
    ) -> Holding:
        """Move lots to ``new_symbol``; the holding row follows unless one already exists there."""
        for lot in lots:
            lot.symbol = new_symbol

        target = await holding_service.lock(db, portfolio.id, new_symbol)
        if target is None:
            holding.symbol = new_symbol
            target = holding
        else:
            holding_service.set_totals(holding, money.ZERO, money.ZERO)
        await db.flush()

        holding_service.recompute_from_lots(target, await ledger_service.open_lots(db, portfolio.id, new_symbol))
        return target

    @staticmethod
    def _scaled_quantities(lots: List[TaxLot], ratio: Decimal) -> List[Decimal]:
        """Post-action quantity of every lot. Checked before any lot is touched."""
        scaled = [money.mul(lot.quantity, ratio) for lot in lots]
        if any(not money.is_positive(q) for q in scaled):
            raise CorporateActionValidation(f"Ratio {ratio} leaves a tax lot with no shares", field="ratio")
        return scaled

    async def _apply(self, db: AsyncSession, portfolio: Portfolio, action: CorporateAction) -> None:
        holding, lots = await self._position(db, portfolio, action.symbol)

        if action.type == CorporateActionType.SPLIT:
            scaled = self._scaled_quantities(lots, action.ratio)
            added = money.total(scaled) - money.total(lot.quantity for lot in lots)
            if money.is_zero(added):
                raise CorporateActionValidation(
                    f"Split ratio {action.ratio} does not change the share count of this position", field="ratio"
                )
            for lot, quantity in zip(lots, scaled):
                lot.quantity = quantity
            holding_service.recompute_from_lots(holding, lots)
            db.add(
                self._audit_transaction(
                    portfolio, action, TransactionType.SPLIT, action.symbol, abs(added),
                    f"Stock split: {action.ratio} ratio applied",
                )
            )

        elif action.type == CorporateActionType.DIVIDEND:
            total = money.mul(action.amount, holding.quantity)
            db.add(
                self._audit_transaction(
                    portfolio, action, TransactionType.DIVIDEND, action.symbol, total,
                    f"Cash dividend: {total}",
                    currency=action.currency,
                )
            )

        elif action.type == CorporateActionType.MERGER:
            scaled = self._scaled_quantities(lots, action.ratio)
            for lot, quantity in zip(lots, scaled):
                lot.quantity = quantity
            await self._rename_position(db, portfolio, holding, lots, action.new_symbol)
            db.add(
                self._audit_transaction(
                    portfolio, action, TransactionType.MERGER, action.symbol,
                    money.total(lot.quantity for lot in lots),
                    f"Merger: {action.symbol} converted to {action.new_symbol} at {action.ratio}",
                )
            )

        elif action.type == CorporateActionType.SPINOFF:
            await self._apply_spinoff(db, portfolio, action, holding, lots)

        elif action.type == CorporateActionType.TICKER_CHANGE:
            quantity = holding.quantity
            await self._rename_position(db, portfolio, holding, lots, action.new_symbol)
            db.add(
                self._audit_transaction(
                    portfolio, action, TransactionType.TICKER_CHANGE, action.new_symbol, quantity,
                    f"Ticker change: {action.symbol} to {action.new_symbol}",
                )
            )

        await db.flush()

    async def _apply_spinoff(
        self,
        db: AsyncSession,
        portfolio: Portfolio,
        action: CorporateAction,
        holding: Holding,
        lots: List[TaxLot],
    ) -> None:
        """Parent lots stay; each gets a child lot under the new symbol with the same purchase date."""
        pct = action.cost_allocation_pct or money.ZERO
        transaction = self._audit_transaction(
            portfolio, action, TransactionType.SPINOFF, action.new_symbol, money.ZERO, ""
        )
        db.add(transaction)
        await db.flush()

        received = money.ZERO
        for lot in lots:
            child_quantity = money.mul(lot.quantity, action.ratio)
            if not money.is_positive(child_quantity):
                continue
            child_cost = money.quantize(lot.cost_basis * pct / money.HUNDRED)
            lot.cost_basis = lot.cost_basis - child_cost
            db.add(
                TaxLot(
                    portfolio_id=portfolio.id,
                    symbol=action.new_symbol,
                    purchase_date=lot.purchase_date,
                    quantity=child_quantity,
                    cost_basis=child_cost,
                    transaction_id=transaction.id,
                )
            )
            received += child_quantity

        if not money.is_positive(received):
            raise CorporateActionValidation("Spinoff ratio yields no shares for this position", field="ratio")

        transaction.quantity = received
        transaction.notes = f"Spinoff: received {received} {action.new_symbol} from {action.symbol}"
        holding_service.recompute_from_lots(holding, lots)

        child = await holding_service.lock(db, portfolio.id, action.new_symbol, create=True)
        await db.flush()
        holding_service.recompute_from_lots(child, await ledger_service.open_lots(db, portfolio.id, action.new_symbol))


corporate_action_service = CorporateActionService()
