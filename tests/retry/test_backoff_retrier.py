from __future__ import annotations

import httpx
import pytest

from tariffsync.common.retry import BackoffRetrier, RetryConfig, compute_delay, is_retryable
from tariffsync.errors import (
    AuthError,
    HttpStatusError,
    RateLimitError,
    RequestTimeoutError,
    ResponseValidationError,
    ServerError,
    TransientNetworkError,
)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FlakyOperation:
    def __init__(self, errors: list[Exception], result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def test_compute_delay_is_exponential_and_capped():
    config = RetryConfig(max_attempts=5, initial_delay=300, max_delay=1800, backoff_multiplier=2)

    assert [compute_delay(i, config) for i in range(4)] == [300, 600, 1200, 1800]


def test_retry_config_rejects_invalid_values():
    with pytest.raises(ValueError):
        RetryConfig(max_attempts=0)
    with pytest.raises(ValueError):
        RetryConfig(initial_delay=0)
    with pytest.raises(ValueError):
        RetryConfig(initial_delay=10, max_delay=5)
    with pytest.raises(ValueError):
        RetryConfig(backoff_multiplier=0.5)


def test_retryable_classification():
    assert is_retryable(TransientNetworkError("down")) is True
    assert is_retryable(RequestTimeoutError("slow")) is True
    assert is_retryable(ServerError("boom", status_code=503)) is True
    assert is_retryable(RateLimitError("slow down", status_code=429)) is True
    assert is_retryable(httpx.ConnectError("refused")) is True

    assert is_retryable(AuthError("nope", status_code=401)) is False
    assert is_retryable(HttpStatusError("bad", status_code=404)) is False
    assert is_retryable(ResponseValidationError("bad schema")) is False
    assert is_retryable(ValueError("bug")) is False


def test_always_failing_operation_runs_max_attempts_and_waits_between():
    sleep = SleepRecorder()
    retrier = BackoffRetrier(sleep=sleep)
    op = FlakyOperation([ServerError("boom", status_code=500) for _ in range(5)])
    config = RetryConfig(max_attempts=3, initial_delay=300, max_delay=1800, backoff_multiplier=2)

    with pytest.raises(ServerError) as exc_info:
        retrier.execute(op, config, label="WB API fetchBoxTariffs")

    assert op.calls == 3
    assert sleep.calls == [300, 600]
    assert exc_info.value.details["attempts"] == 3
    assert exc_info.value.details["operation"] == "WB API fetchBoxTariffs"
    assert exc_info.value.__notes__ == ["WB API fetchBoxTariffs: attempts=3"]


def test_exhausted_plain_exception_carries_label_and_attempts():
    sleep = SleepRecorder()
    retrier = BackoffRetrier(should_retry=lambda exc: isinstance(exc, LookupError), sleep=sleep)
    op = FlakyOperation([KeyError("a"), KeyError("b")])

    with pytest.raises(KeyError) as exc_info:
        retrier.execute(op, RetryConfig(max_attempts=2, initial_delay=1, max_delay=1), label="lookup-label")

    assert op.calls == 2
    assert sleep.calls == [1]
    assert exc_info.value.__notes__ == ["lookup-label: attempts=2"]


def test_exhausted_raw_transport_error_carries_label_and_attempts():
    retrier = BackoffRetrier(sleep=SleepRecorder())
    op = FlakyOperation([httpx.ConnectError("refused"), httpx.ConnectError("refused")])

    with pytest.raises(httpx.ConnectError) as exc_info:
        retrier.execute(op, RetryConfig(max_attempts=2, initial_delay=1, max_delay=1), label="my-label")

    assert exc_info.value.__notes__ == ["my-label: attempts=2"]


def test_non_retryable_plain_exception_is_annotated_after_one_attempt():
    retrier = BackoffRetrier(sleep=SleepRecorder())
    op = FlakyOperation([ValueError("bug")])

    with pytest.raises(ValueError) as exc_info:
        retrier.execute(op, RetryConfig(max_attempts=3, initial_delay=1, max_delay=1), label="op")

    assert exc_info.value.__notes__ == ["op: attempts=1"]


def test_success_after_transient_failure_returns_result():
    sleep = SleepRecorder()
    retrier = BackoffRetrier(sleep=sleep)
    op = FlakyOperation([TransientNetworkError("reset")], result="data")

    result = retrier.execute(op, RetryConfig(max_attempts=3, initial_delay=1, max_delay=10), label="op")

    assert result == "data"
    assert op.calls == 2
    assert sleep.calls == [1]


def test_non_retryable_error_fails_fast_without_waiting():
    sleep = SleepRecorder()
    retrier = BackoffRetrier(sleep=sleep)
    op = FlakyOperation([AuthError("unauthorized", status_code=401)])

    with pytest.raises(AuthError) as exc_info:
        retrier.execute(op, RetryConfig(max_attempts=3, initial_delay=1, max_delay=10), label="op")

    assert op.calls == 1
    assert sleep.calls == []
    assert exc_info.value.details["attempts"] == 1


def test_single_attempt_config_never_sleeps():
    sleep = SleepRecorder()
    retrier = BackoffRetrier(sleep=sleep)
    op = FlakyOperation([TransientNetworkError("down")])

    with pytest.raises(TransientNetworkError):
        retrier.execute(op, RetryConfig(max_attempts=1, initial_delay=1, max_delay=1), label="op")

    assert op.calls == 1
    assert sleep.calls == []


def test_custom_predicate_is_consulted():
    sleep = SleepRecorder()
    retrier = BackoffRetrier(should_retry=lambda exc: isinstance(exc, KeyError), sleep=sleep)
    op = FlakyOperation([KeyError("x"), KeyError("y")], result="done")

    assert retrier.execute(op, RetryConfig(max_attempts=3, initial_delay=2, max_delay=3), label="op") == "done"
    assert sleep.calls == [2, 3]
