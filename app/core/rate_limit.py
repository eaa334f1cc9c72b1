"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Create limiter instance
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    storage_uri=settings.rate_limit_storage,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)

_AUTH_LIMIT = f"{settings.RATE_LIMIT_REQUESTS}/{settings.RATE_LIMIT_WINDOW}"

# Specific rate limits for different endpoint types
RATE_LIMITS = {
    # Authentication - stricter limits to prevent brute force
    "auth_login": _AUTH_LIMIT,
    "auth_register": _AUTH_LIMIT,
    "auth_password_reset": _AUTH_LIMIT,
    "auth_refresh": "30/minute",

    # Standard API endpoints
    "api_read": "120/minute",
    "api_write": "60/minute",

    # Heavy operations
    "bulk_import": "10/minute",

    # Price/external API calls (to respect external rate limits)
    "price_fetch": "30/minute",
}
