"""Unit tests for retry classification and backoff of collaborator reads."""
import httpx
import pytest
from unittest.mock import AsyncMock

from workout_planner_api.retry import DEFAULT_MAX_ATTEMPTS, create_retry_decorator, is_retryable_error


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.com/blocks/1")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


class TestIsRetryableError:
    """Test error classification for retry decisions."""

    @pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
    def test_transient_status_codes_are_retryable(self, status_code):
        assert is_retryable_error(_status_error(status_code)) is True

    @pytest.mark.parametrize("status_code", [400, 401, 404, 409, 422])
    def test_client_errors_are_not_retryable(self, status_code):
        assert is_retryable_error(_status_error(status_code)) is False

    def test_timeouts_and_network_errors_are_retryable(self):
        assert is_retryable_error(httpx.ReadTimeout("slow")) is True
        assert is_retryable_error(httpx.ConnectError("refused")) is True

    def test_timeout_exception_type_is_retryable(self):
        """Exception with 'timeout' in class name should be retryable."""

        class UpstreamTimeoutError(Exception):
            pass

        assert is_retryable_error(UpstreamTimeoutError("request failed")) is True

    def test_programming_errors_are_not_retryable(self):
        assert is_retryable_error(ValueError("bad payload")) is False
        assert is_retryable_error(KeyError("id")) is False


def _decorated(mock_func):
    @create_retry_decorator(min_wait_seconds=0.01, max_wait_seconds=0.02)
    async def call():
        return await mock_func()

    return call


class TestRetryDecorator:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        mock_func = AsyncMock(side_effect=[_status_error(503), _status_error(502), "ok"])
        decorated = _decorated(mock_func)
        assert await decorated() == "ok"
        assert mock_func.call_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        mock_func = AsyncMock(side_effect=_status_error(500))
        decorated = _decorated(mock_func)
        with pytest.raises(httpx.HTTPStatusError):
            await decorated()
        assert mock_func.call_count == DEFAULT_MAX_ATTEMPTS

    @pytest.mark.asyncio
    async def test_does_not_retry_client_errors(self):
        mock_func = AsyncMock(side_effect=_status_error(404))
        decorated = _decorated(mock_func)
        with pytest.raises(httpx.HTTPStatusError):
            await decorated()
        assert mock_func.call_count == 1
