"""Tests for the exponential-backoff retry helper."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from agentchat.services.retry import is_retryable, with_retry


class TestIsRetryable:
    @pytest.mark.parametrize(
        "message",
        [
            'function public.match_documents(vector, integer) does not exist',
            "Could not find the function public.match_documents in the schema cache",
            "Missing configuration: SUPABASE_URL",
        ],
    )
    def test_configuration_failures_are_permanent(self, message):
        assert is_retryable(RuntimeError(message)) is False

    def test_transient_failures_are_retryable(self):
        assert is_retryable(ConnectionError("connection reset by peer")) is True


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        operation = AsyncMock(side_effect=[ConnectionError("boom"), ConnectionError("boom"), "ok"])
        with patch("agentchat.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await with_retry(operation, max_retries=3, base_delay=1.0)

        assert result == "ok"
        assert operation.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_attempts_run_out(self):
        operation = AsyncMock(side_effect=[TimeoutError("1"), TimeoutError("2"), TimeoutError("3")])
        with patch("agentchat.services.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(TimeoutError, match="3"):
                await with_retry(operation, max_retries=3, base_delay=0.5)
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_raised_immediately(self):
        operation = AsyncMock(side_effect=RuntimeError("relation documents does not exist"))
        with patch("agentchat.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(RuntimeError):
                await with_retry(operation, max_retries=3)

        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_attempt_does_not_sleep(self):
        operation = AsyncMock(side_effect=ConnectionError("down"))
        with patch("agentchat.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ConnectionError):
                await with_retry(operation, max_retries=1)
        sleep.assert_not_awaited()
