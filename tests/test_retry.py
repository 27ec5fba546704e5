"""Tests for the retry combinator."""

import pytest

from common.exceptions import EncodingError, NetworkError
from uploader.retry import retry


class Flaky:
    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return value * 2


@pytest.mark.asyncio
async def test_returns_first_success():
    fn = Flaky([NetworkError('a')])
    failures = []

    async def on_failure(attempt, error):
        failures.append((attempt, str(error)))

    assert await retry(fn, 21, attempts=3, on_failure=on_failure) == 42
    assert fn.calls == 2
    assert failures == [(1, 'a')]


@pytest.mark.asyncio
async def test_raises_last_error_after_all_attempts():
    fn = Flaky([NetworkError('first'), NetworkError('second'), NetworkError('third')])
    failures = []

    async def on_failure(attempt, error):
        failures.append(attempt)

    with pytest.raises(NetworkError, match='third'):
        await retry(fn, 1, attempts=3, on_failure=on_failure)
    assert fn.calls == 3
    assert failures == [1, 2, 3]


@pytest.mark.asyncio
async def test_encoding_errors_are_not_retried():
    fn = Flaky([EncodingError('bad length'), NetworkError('never reached')])

    with pytest.raises(EncodingError):
        await retry(fn, 1, attempts=5)
    assert fn.calls == 1


@pytest.mark.asyncio
async def test_backoff_still_succeeds():
    fn = Flaky([NetworkError('a'), NetworkError('b')])

    assert await retry(fn, 1, attempts=3, backoff=0.001) == 2


@pytest.mark.asyncio
async def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        await retry(Flaky([]), 1, attempts=0)
