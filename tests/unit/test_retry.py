"""Unit tests for retry policy."""

import pytest

from govcrawl.core.config import Settings
from govcrawl.core.errors import (
    ExtractionError,
    HttpError,
    NavigationTimeoutError,
    NetworkError,
)
from govcrawl.resilience.retry import RetryPolicy


class TestBackoff:
    """Test exponential backoff delays."""

    def test_default_delays_double_and_cap(self) -> None:
        policy = RetryPolicy()

        assert [policy.get_delay(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]

    def test_custom_multiplier(self) -> None:
        policy = RetryPolicy(base_delay=0.5, backoff_multiplier=3.0, max_delay=10.0)

        assert policy.get_delay(1) == 0.5
        assert policy.get_delay(2) == 1.5
        assert policy.get_delay(3) == 4.5
        assert policy.get_delay(4) == 10.0

    def test_jitter_stays_within_bounds(self) -> None:
        policy = RetryPolicy(jitter=0.5)

        for _ in range(20):
            assert 2.0 <= policy.get_delay(2) <= 3.0

    def test_max_attempts(self) -> None:
        assert RetryPolicy(max_retries=3).max_attempts == 4
        assert RetryPolicy(max_retries=0).max_attempts == 1

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)

    def test_with_max_retries_keeps_backoff(self) -> None:
        policy = RetryPolicy(base_delay=2.0, max_delay=5.0).with_max_retries(1)

        assert policy.max_retries == 1
        assert policy.get_delay(3) == 5.0

    def test_from_settings(self) -> None:
        settings = Settings(retry_base_delay=0.25, backoff_multiplier=4.0, max_retry_delay=2.0)
        policy = RetryPolicy.from_settings(settings, max_retries=5)

        assert policy.max_retries == 5
        assert policy.get_delay(2) == 1.0
        assert policy.get_delay(3) == 2.0


class TestClassification:
    """Test retryable error detection."""

    @pytest.mark.parametrize(
        "error",
        [
            NavigationTimeoutError("TimeoutError: Navigation timeout of 30000 ms exceeded"),
            NetworkError("NetworkError: net::ERR_CONNECTION_RESET"),
            ConnectionResetError("ECONNRESET"),
            TimeoutError(),
            OSError("getaddrinfo ENOTFOUND v04.krds.go.kr"),
        ],
    )
    def test_transient_errors_retry(self, error: BaseException) -> None:
        assert RetryPolicy().is_retryable(error) is True

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_server_errors_retry(self, status: int) -> None:
        assert RetryPolicy().is_retryable(HttpError(status)) is True

    @pytest.mark.parametrize("status", [400, 403, 404, 410, 501, 505])
    def test_client_and_permanent_server_errors_do_not_retry(self, status: int) -> None:
        assert RetryPolicy().is_retryable(HttpError(status)) is False

    def test_unrelated_errors_do_not_retry(self) -> None:
        policy = RetryPolicy()

        assert policy.is_retryable(ExtractionError("selector returned nothing")) is False
        assert policy.is_retryable(ValueError("bad value")) is False

    def test_custom_retryable_fragments(self) -> None:
        policy = RetryPolicy(retryable_errors=["Flaky"])

        assert policy.is_retryable(RuntimeError("flaky upstream")) is True
        assert policy.is_retryable(NetworkError("connection refused")) is False
