"""Tests for retry module."""

import pytest

from semblock_core.exceptions import BackendError
from semblock_core.retry import execute_with_retry, is_model_loading_error

pytestmark = pytest.mark.asyncio


class TestExecuteWithRetry:
    """Test execute_with_retry."""

    async def test_success_on_first_attempt(self):
        """Function succeeds on first try - no retries needed."""
        call_count = 0

        async def succeeds(value):
            nonlocal call_count
            call_count += 1
            return value

        assert await execute_with_retry(succeeds, "ok", max_attempts=2, delay=0) == "ok"
        assert call_count == 1

    async def test_success_after_retry(self):
        """Function fails once, then succeeds."""
        call_count = 0

        async def fails_once():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise BackendError("LM Studio", 404, "model_not_found")
            return "success"

        result = await execute_with_retry(fails_once, max_attempts=2, delay=0, should_retry=is_model_loading_error)
        assert result == "success"
        assert call_count == 2

    async def test_last_error_propagates_unchanged(self):
        """After the final attempt the original error is raised."""
        errors = [BackendError("LM Studio", 404, "model_not_found") for _ in range(2)]
        call_count = 0

        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise errors[call_count - 1]

        with pytest.raises(BackendError) as exc_info:
            await execute_with_retry(always_fails, max_attempts=2, delay=0)
        assert exc_info.value is errors[1]
        assert call_count == 2

    async def test_non_retryable_exception(self):
        """Errors rejected by should_retry are raised immediately."""
        call_count = 0

        async def raises_value_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            await execute_with_retry(
                raises_value_error, max_attempts=3, delay=0, should_retry=is_model_loading_error
            )
        assert call_count == 1

    async def test_kwargs_forwarded(self):
        async def echo(a, b=None):
            return (a, b)

        assert await execute_with_retry(echo, 1, b=2, delay=0) == (1, 2)


class TestModelLoadingDetection:

    async def test_markers(self):
        assert is_model_loading_error(RuntimeError("model_not_found: qwen"))
        assert is_model_loading_error(RuntimeError("No models loaded. Please load a model"))
        assert not is_model_loading_error(RuntimeError("internal server error"))

    async def test_body_checked(self):
        error = BackendError("LM Studio", 400, '{"error": {"code": "model_not_found"}}')
        assert is_model_loading_error(error)
