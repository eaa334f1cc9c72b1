"""Bounded retry for idempotent operations that hit transient infrastructure errors."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx
from sqlalchemy.exc import DBAPIError, OperationalError

from app.core.config import settings
from app.core.errors import Internal

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    OperationalError,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, TRANSIENT_ERRORS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    description: str,
    retries: Optional[int] = None,
    backoff: Optional[float] = None,
) -> T:
    """Run ``operation``, retrying transient failures with exponential backoff.

    Only use this for idempotent work (reads, cleanup, quote fetches). After the
    last attempt the cause is logged and surfaced as ``Internal``.
    """
    retries = settings.DB_RETRY_ATTEMPTS if retries is None else max(0, retries)
    backoff = settings.DB_RETRY_BACKOFF_SECONDS if backoff is None else max(0.0, backoff)

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_transient(exc):
                raise
            attempt += 1
            if attempt > retries:
                logger.error(f"{description} failed after {attempt} attempts: {type(exc).__name__}: {exc}")
                raise Internal(f"{description} failed") from exc
            sleep_for = backoff * (2 ** (attempt - 1))
            logger.warning(
                "%s failed (attempt %s/%s): %s; retrying in %.2fs",
                description,
                attempt,
                retries + 1,
                exc,
                sleep_for,
            )
            if sleep_for:
                await asyncio.sleep(sleep_for)
