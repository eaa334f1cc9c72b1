"""API v1 router."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    auth,
    portfolios,
    transactions,
    holdings,
    tax_lots,
    proposals,
    corporate_actions,
    performance,
    market_data,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(portfolios.router, prefix="/portfolios", tags=["Portfolios"])
api_router.include_router(
    transactions.router, prefix="/portfolios/{portfolio_id}/transactions", tags=["Transactions"]
)
api_router.include_router(holdings.router, prefix="/portfolios/{portfolio_id}", tags=["Holdings"])
api_router.include_router(tax_lots.router, prefix="/portfolios/{portfolio_id}", tags=["Tax Lots"])
api_router.include_router(
    proposals.router, prefix="/portfolios/{portfolio_id}/proposals", tags=["Corporate Actions"]
)
api_router.include_router(
    corporate_actions.router, prefix="/corporate-actions", tags=["Corporate Actions"]
)
api_router.include_router(performance.router, prefix="/portfolios/{portfolio_id}", tags=["Performance"])
api_router.include_router(market_data.router, prefix="/market-data", tags=["Market Data"])
