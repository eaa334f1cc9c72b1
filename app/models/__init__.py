"""SQLAlchemy models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import all models so Base.metadata.create_all() picks them up
from app.models.user import User  # noqa: E402, F401
from app.models.refresh_credential import RefreshCredential  # noqa: E402, F401
from app.models.password_reset_ticket import PasswordResetTicket  # noqa: E402, F401
from app.models.portfolio import Portfolio  # noqa: E402, F401
from app.models.transaction import Transaction  # noqa: E402, F401
from app.models.holding import Holding  # noqa: E402, F401
from app.models.tax_lot import TaxLot  # noqa: E402, F401
from app.models.realized_gain import RealizedGain  # noqa: E402, F401
from app.models.corporate_action import CorporateAction  # noqa: E402, F401
from app.models.portfolio_action import PortfolioActionProposal  # noqa: E402, F401
from app.models.performance_snapshot import PerformanceSnapshot  # noqa: E402, F401
