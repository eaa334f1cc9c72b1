"""Minimal conftest for unit tests - no database, no app dependencies."""

import os

# Set required env vars before any app imports
os.environ.setdefault("SECRET_KEY", "testsecretkey_for_unit_tests_only_1234567890")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_portfolios.db")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("MARKET_DATA_PROVIDER", "none")
os.environ.setdefault("SMTP_HOST", "")
