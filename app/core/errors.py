"""Domain errors and their HTTP mapping."""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PortfolioError(Exception):
    """Base class for every error the accounting engine reports to callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "Error"
    message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.message
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body


# Validation errors (caller-fixable)

class TransactionValidation(PortfolioError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "TransactionValidation"
    message = "Invalid transaction"


class CorporateActionValidation(PortfolioError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "CorporateActionValidation"
    message = "Invalid corporate action"


class InvalidLotSelection(PortfolioError):
    code = "InvalidLotSelection"
    message = "Invalid lot selection"


class DuplicatePortfolioName(PortfolioError):
    code = "DuplicatePortfolioName"
    message = "A portfolio with this name already exists"


# Identity

class EmailTaken(PortfolioError):
    status_code = status.HTTP_409_CONFLICT
    code = "EmailTaken"
    message = "An account with this email already exists"


class InvalidCredentials(PortfolioError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "InvalidCredentials"
    message = "Invalid email or password"


class InvalidRefresh(PortfolioError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "InvalidRefresh"
    message = "Invalid refresh token"


class NotFoundOrRevoked(PortfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NotFoundOrRevoked"
    message = "Refresh token not found or already revoked"


class InvalidResetToken(PortfolioError):
    code = "InvalidResetToken"
    message = "Invalid or expired reset token"


class Forbidden(PortfolioError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "Forbidden"
    message = "Not enough permissions"


# Ownership. Missing and foreign resources look the same to the caller.

class Unauthorized(PortfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "Unauthorized"
    message = "Portfolio not found"


class PortfolioNotFound(Unauthorized):
    code = "PortfolioNotFound"


class ResourceNotFound(PortfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NotFound"
    message = "Resource not found"


# Domain errors

class InsufficientShares(PortfolioError):
    status_code = status.HTTP_409_CONFLICT
    code = "InsufficientShares"

    def __init__(self, symbol: str, requested: Decimal, available: Decimal):
        self.symbol = symbol
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient shares of {symbol}: requested {requested}, "
            f"available {available} (short by {self.shortfall})",
            field="quantity",
        )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update(
            symbol=self.symbol,
            requested=str(self.requested),
            available=str(self.available),
            shortfall=str(self.shortfall),
        )
        return body


class LotConsumed(PortfolioError):
    status_code = status.HTTP_409_CONFLICT
    code = "LotConsumed"

    def __init__(self, lot_id, message: Optional[str] = None):
        self.lot_id = lot_id
        super().__init__(message or f"Tax lot {lot_id} has already been partially or fully sold")

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["lot_id"] = str(self.lot_id)
        return body


class Irreversible(PortfolioError):
    status_code = status.HTTP_409_CONFLICT
    code = "Irreversible"
    message = "This transaction cannot be reversed"


class ProposalAlreadyExists(PortfolioError):
    status_code = status.HTTP_409_CONFLICT
    code = "ProposalAlreadyExists"
    message = "A pending proposal already exists for this portfolio and corporate action"


class InvalidProposalState(PortfolioError):
    status_code = status.HTTP_409_CONFLICT
    code = "InvalidProposalState"
    message = "Proposal cannot make this transition"


class SnapshotExists(PortfolioError):
    status_code = status.HTTP_409_CONFLICT
    code = "SnapshotExists"
    message = "A snapshot already exists for this portfolio and date"


class InsufficientData(PortfolioError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "InsufficientData"
    message = "Not enough data for this calculation"


class MarketDataUnavailable(PortfolioError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "MarketDataUnavailable"
    message = "Market data is unavailable"


# Infrastructure

class OperationCancelled(PortfolioError):
    status_code = 499
    code = "OperationCancelled"
    message = "Operation cancelled"


class Internal(PortfolioError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "Internal"
    message = "Internal server error"


async def portfolio_error_handler(request: Request, exc: PortfolioError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortfolioError, portfolio_error_handler)
