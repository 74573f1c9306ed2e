"""
Tests for the retry decorator.
"""
import asyncio

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from trickle.utility.exceptions import SourceConnectionError, SourceReadError
from trickle.utility.retry import with_retry


@pytest.mark.asyncio
async def test_retries_until_success():
    calls = []

    @with_retry(retries=3, delay=0, exceptions=(SourceConnectionError,))
    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise SourceConnectionError("not yet")
        return "ok"

    assert await flaky() == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_reraises_last_error():
    calls = []

    @with_retry(retries=2, delay=0, exceptions=(SourceConnectionError,))
    async def always_fails():
        calls.append(1)
        raise SourceConnectionError(f"attempt {len(calls)}")

    with pytest.raises(SourceConnectionError, match="attempt 2"):
        await always_fails()


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    @with_retry(retries=3, delay=0, exceptions=(SourceConnectionError,))
    async def broken():
        calls.append(1)
        raise SourceReadError("bad query")

    with pytest.raises(SourceReadError):
        await broken()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retry_if_func():
    calls = []

    @with_retry(retries=3, delay=0, retry_if_func=lambda e: "transient" in str(e))
    async def sometimes():
        calls.append(1)
        raise ValueError("permanent")

    with pytest.raises(ValueError):
        await sometimes()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_timeout_per_attempt():
    @with_retry(timeout=0.01, retries=1, delay=0)
    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(TimeoutError, match="slow timed out"):
        await slow()


@pytest.mark.asyncio
async def test_transient_errors_are_retried_by_default():
    calls = []

    @with_retry(retries=3, delay=0)
    async def flaky():
        calls.append(1)
        if len(calls) < 2:
            raise HttpResponseError("503")
        return "ok"

    assert await flaky() == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_give_up_on_overrides_retried_types():
    calls = []

    @with_retry(retries=3, delay=0, give_up_on=ResourceNotFoundError)
    async def missing():
        calls.append(1)
        raise ResourceNotFoundError("gone")

    with pytest.raises(ResourceNotFoundError):
        await missing()
    assert len(calls) == 1
