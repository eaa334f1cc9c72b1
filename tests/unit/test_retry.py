"""Bounded retry of transient failures."""

import httpx
import pytest

from app.core.errors import Internal
from app.core.retry import with_retry


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused")
        return "ok"

    assert await with_retry(flaky, "Quote fetch", retries=2, backoff=0) == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_two_retries():
    calls = []

    async def down():
        calls.append(1)
        raise httpx.ReadTimeout("timed out")

    with pytest.raises(Internal):
        await with_retry(down, "Quote fetch", retries=2, backoff=0)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    async def broken():
        calls.append(1)
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await with_retry(broken, "Quote fetch", retries=2, backoff=0)
    assert len(calls) == 1
