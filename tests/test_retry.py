"""Tests for the retry executor."""

import httpx
import pytest

from qgate.errors import ErrorCode, NetworkError
from qgate.utils.retry import RetryPolicy, retry_on_status, with_retry


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def flaky(failures: list[BaseException], value: str = "ok"):
    """Operation that raises the given errors in order, then returns ``value``."""
    calls = {"count": 0}

    async def operation() -> str:
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return value

    return operation, calls


def unavailable() -> NetworkError:
    return NetworkError(ErrorCode.DOWNLOAD_FAILED, "unavailable", status_code=503)


class TestRetryPolicy:
    def test_delay_doubles_from_base(self) -> None:
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0)
        assert [policy.delay_for(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self) -> None:
        policy = RetryPolicy(base_delay=10.0, max_delay=15.0)
        assert policy.delay_for(3) == 15.0


class TestRetryOnStatus:
    def test_retryable_statuses(self) -> None:
        is_retryable = retry_on_status()
        for status in (429, 500, 502, 503, 504):
            assert is_retryable(NetworkError(ErrorCode.AUTH_FAILED, "x", status_code=status))

    def test_client_errors_are_not_retryable(self) -> None:
        is_retryable = retry_on_status()
        assert not is_retryable(NetworkError(ErrorCode.AUTH_FAILED, "x", status_code=401))
        assert not is_retryable(NetworkError(ErrorCode.INSECURE_URL, "x"))

    def test_transport_errors_are_retryable(self) -> None:
        assert retry_on_status()(httpx.ConnectError("refused"))

    def test_response_status_is_inspected(self) -> None:
        request = httpx.Request("GET", "https://example.com")
        response = httpx.Response(502, request=request)
        error = httpx.HTTPStatusError("bad gateway", request=request, response=response)
        assert retry_on_status()(error)

    def test_unrelated_errors_are_not_retryable(self) -> None:
        assert not retry_on_status()(ValueError("boom"))

    def test_custom_status_set(self) -> None:
        is_retryable = retry_on_status({418})
        assert is_retryable(NetworkError(ErrorCode.AUTH_FAILED, "x", status_code=418))
        assert not is_retryable(unavailable())


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_returns_first_success_without_sleeping(self) -> None:
        operation, calls = flaky([])
        sleep = RecordingSleep()

        assert await with_retry(operation, RetryPolicy(), sleep=sleep) == "ok"
        assert calls["count"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self) -> None:
        operation, calls = flaky([unavailable(), unavailable()])
        sleep = RecordingSleep()

        result = await with_retry(operation, RetryPolicy(max_attempts=4), sleep=sleep)

        assert result == "ok"
        assert calls["count"] == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_original_error(self) -> None:
        errors = [unavailable() for _ in range(3)]
        last = errors[-1]
        operation, calls = flaky(list(errors))
        sleep = RecordingSleep()

        with pytest.raises(NetworkError) as exc_info:
            await with_retry(operation, RetryPolicy(max_attempts=3), sleep=sleep)

        assert exc_info.value is last
        assert calls["count"] == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_not_retried(self) -> None:
        error = NetworkError(ErrorCode.INVALID_CREDENTIALS, "denied", status_code=401)
        operation, calls = flaky([error])
        sleep = RecordingSleep()

        with pytest.raises(NetworkError) as exc_info:
            await with_retry(operation, RetryPolicy(), sleep=sleep)

        assert exc_info.value is error
        assert calls["count"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_observer_receives_attempt_error_and_delay(self) -> None:
        error = unavailable()
        operation, _ = flaky([error])
        seen = []

        await with_retry(
            operation,
            RetryPolicy(base_delay=0.5),
            on_retry=lambda attempt, exc, delay: seen.append((attempt, exc, delay)),
            sleep=RecordingSleep(),
        )

        assert seen == [(1, error, 0.5)]

    @pytest.mark.asyncio
    async def test_single_attempt_policy_never_sleeps(self) -> None:
        operation, calls = flaky([unavailable()])
        sleep = RecordingSleep()

        with pytest.raises(NetworkError):
            await with_retry(operation, RetryPolicy(max_attempts=1), sleep=sleep)

        assert calls["count"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_custom_classifier(self) -> None:
        operation, calls = flaky([KeyError("flaky")])
        policy = RetryPolicy(is_retryable=lambda exc: isinstance(exc, KeyError))

        assert await with_retry(operation, policy, sleep=RecordingSleep()) == "ok"
        assert calls["count"] == 2
