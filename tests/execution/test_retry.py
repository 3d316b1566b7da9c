"""Tests for RetryPolicy and cancellable_sleep."""

import asyncio
import re
import time

import pytest

from waypoint.core.errors import ConfigError, ProviderError, StorageError, ValidationError
from waypoint.execution.retry import RetryPolicy, cancellable_sleep, error_message


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.max_attempts == 4
        assert policy.initial_delay_ms == 1000
        assert policy.backoff_multiplier == 2

    def test_exponential_delays(self):
        policy = RetryPolicy(initial_delay_ms=100, backoff_multiplier=3)
        assert [policy.delay_ms(n) for n in range(3)] == [100.0, 300.0, 900.0]
        assert policy.delay_seconds(1) == 0.3

    def test_all_errors_retryable_without_filter(self):
        assert RetryPolicy().is_retryable(ValueError("anything"))
        assert RetryPolicy(retryable_errors=[]).is_retryable(ValueError("anything"))

    def test_substring_filter(self):
        policy = RetryPolicy(retryable_errors=["timeout", "ECONNRESET"])
        assert policy.is_retryable(RuntimeError("read timeout after 30s"))
        assert policy.is_retryable(OSError("socket ECONNRESET"))
        assert not policy.is_retryable(ValueError("invalid input"))

    def test_pattern_filter(self):
        policy = RetryPolicy(retryable_errors=[re.compile(r"HTTP 5\d\d")])
        assert policy.is_retryable(RuntimeError("HTTP 503 from provider"))
        assert not policy.is_retryable(RuntimeError("HTTP 404"))

    def test_waypoint_errors_follow_their_retryable_flag(self):
        policy = RetryPolicy(retryable_errors=["timeout"])
        assert policy.is_retryable(ProviderError("rate limited"))
        assert not policy.is_retryable(ValidationError("timeout"))
        assert not RetryPolicy().is_retryable(ConfigError("missing key"))
        assert RetryPolicy().is_retryable(StorageError("disk full", retryable=True))

    def test_should_retry_respects_budget(self):
        policy = RetryPolicy(max_retries=2)
        err = RuntimeError("x")
        assert policy.should_retry(0, err)
        assert policy.should_retry(1, err)
        assert not policy.should_retry(2, err)

    def test_zero_retries(self):
        assert not RetryPolicy(max_retries=0).should_retry(0, RuntimeError("x"))

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_retries": -1}, {"initial_delay_ms": -5}, {"backoff_multiplier": 0}],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_frozen(self):
        with pytest.raises(AttributeError):
            RetryPolicy().max_retries = 5  # type: ignore[misc]


def test_error_message_falls_back_to_type_name():
    assert error_message(RuntimeError("boom")) == "boom"
    assert error_message(asyncio.CancelledError()) == "CancelledError"


class TestCancellableSleep:
    @pytest.mark.asyncio
    async def test_full_sleep_without_event(self):
        assert await cancellable_sleep(0.01) is True

    @pytest.mark.asyncio
    async def test_full_sleep_with_unset_event(self):
        assert await cancellable_sleep(0.01, asyncio.Event()) is True

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        event = asyncio.Event()
        event.set()
        assert await cancellable_sleep(10, event) is False

    @pytest.mark.asyncio
    async def test_cancelled_midway(self):
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.02, event.set)

        started = time.monotonic()
        assert await cancellable_sleep(10, event) is False
        assert time.monotonic() - started < 5
