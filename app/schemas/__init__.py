"""Pydantic schemas."""

from app.schemas.user import UserResponse
from app.schemas.auth import (
    AccessToken,
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshTokenRequest,
    RegisterRequest,
    Token,
    TokenPayload,
)
from app.schemas.portfolio import (
    PortfolioCreate,
    PortfolioUpdate,
    PortfolioResponse,
)
from app.schemas.tax_lot import (
    AllocateSaleRequest,
    AllocationPreview,
    HoldingResponse,
    HoldingValuation,
    LotAllocation,
    PortfolioValue,
    RealizedGainResponse,
    TaxLossOpportunity,
    TaxLotResponse,
    TaxReport,
)
from app.schemas.transaction import (
    ImportBatchSummary,
    ImportResult,
    TransactionBatchCreate,
    TransactionCreate,
    TransactionResponse,
    TransactionResult,
)
from app.schemas.corporate_action import (
    CorporateActionCreate,
    CorporateActionResponse,
    DetectionResult,
    ProposalRejectRequest,
    ProposalResponse,
    ProposalWithAction,
)
from app.schemas.performance import (
    AnnualizedReturnResult,
    BenchmarkComparison,
    MWRResult,
    PerformanceMetrics,
    SnapshotCreate,
    SnapshotResponse,
    TWRResult,
)
from app.schemas.market_data import HistoricalPrice, Quote, QuotesRequest, QuotesResponse

__all__ = [
    "UserResponse",
    "AccessToken",
    "AuthResponse",
    "LoginRequest",
    "LogoutRequest",
    "MessageResponse",
    "PasswordResetConfirm",
    "PasswordResetRequest",
    "RefreshTokenRequest",
    "RegisterRequest",
    "Token",
    "TokenPayload",
    "PortfolioCreate",
    "PortfolioUpdate",
    "PortfolioResponse",
    "AllocateSaleRequest",
    "AllocationPreview",
    "HoldingResponse",
    "HoldingValuation",
    "LotAllocation",
    "PortfolioValue",
    "RealizedGainResponse",
    "TaxLossOpportunity",
    "TaxLotResponse",
    "TaxReport",
    "ImportBatchSummary",
    "ImportResult",
    "TransactionBatchCreate",
    "TransactionCreate",
    "TransactionResponse",
    "TransactionResult",
    "CorporateActionCreate",
    "CorporateActionResponse",
    "DetectionResult",
    "ProposalRejectRequest",
    "ProposalResponse",
    "ProposalWithAction",
    "AnnualizedReturnResult",
    "BenchmarkComparison",
    "MWRResult",
    "PerformanceMetrics",
    "SnapshotCreate",
    "SnapshotResponse",
    "TWRResult",
    "HistoricalPrice",
    "Quote",
    "QuotesRequest",
    "QuotesResponse",
]
