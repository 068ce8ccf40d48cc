# src/resilience/tests/test_retry/test_engine.py
import asyncio
import logging

import pytest

from resilience.core.failure_logger import was_logged
from resilience.exceptions.base import RetryCancelledError, StructuredError
from resilience.exceptions.codes import ErrorCode
from resilience.retry.engine import (
    AttemptOutcome,
    is_retryable_error,
    retry_api_call,
    retry_parallel_calls,
    with_retry,
)
from resilience.retry.policy import RetryPolicy


def fast_policy(**kwargs) -> RetryPolicy:
    values = {"max_retries": 3, "base_delay": 0.1, "max_delay": 10.0, "backoff_multiplier": 2.0}
    values.update(kwargs)
    return RetryPolicy(**values)


def no_jitter() -> float:
    return 0.0


class TestIsRetryableError:

    def test_structured_uses_retryable_codes(self):
        exc = StructuredError.of(ErrorCode.SERVICE_UNAVAILABLE, "down")

        assert is_retryable_error(exc, {"SERVICE_UNAVAILABLE"}) is True
        assert is_retryable_error(exc, {"RATE_LIMIT_EXCEEDED"}) is False

    def test_generic_uses_classifier(self):
        assert is_retryable_error(TimeoutError("t")) is True
        assert is_retryable_error(KeyError("k")) is False


@pytest.mark.asyncio
class TestWithRetry:

    async def test_first_try_success(self, make_flaky, sleep_recorder, failure_logger):
        operation = make_flaky(value=7)

        assert await with_retry(operation, fast_policy(), sleep=sleep_recorder, failure_logger=failure_logger) == 7
        assert operation.calls == 1
        assert sleep_recorder.delays == []

    async def test_fails_twice_then_succeeds(self, make_flaky, sleep_recorder, failure_logger):
        """Two network failures, then success: three calls and one on_retry per failed attempt."""
        retries = []
        operation = make_flaky([TimeoutError("t1"), TimeoutError("t2")], value="done")
        policy = fast_policy(on_retry=lambda attempt, error: retries.append((attempt, str(error))))

        result = await with_retry(operation, policy, rng=no_jitter, sleep=sleep_recorder, failure_logger=failure_logger)

        assert result == "done"
        assert operation.calls == 3
        assert retries == [(1, "t1"), (2, "t2")]
        assert sleep_recorder.delays == pytest.approx([0.1, 0.2])

    async def test_attempt_bound_is_max_retries_plus_one(self, make_flaky, sleep_recorder, failure_logger):
        exhausted = []
        operation = make_flaky([TimeoutError(f"t{i}") for i in range(10)])
        policy = fast_policy(max_retries=2, on_exhausted=exhausted.append)

        with pytest.raises(TimeoutError, match="t2"):
            await with_retry(operation, policy, rng=no_jitter, sleep=sleep_recorder, failure_logger=failure_logger)

        assert operation.calls == 3
        assert len(exhausted) == 1
        assert str(exhausted[0]) == "t2"
        assert len(sleep_recorder.delays) == 2

    async def test_zero_retries_single_call(self, make_flaky, sleep_recorder, failure_logger):
        retries, exhausted = [], []
        operation = make_flaky([TimeoutError("t")])
        policy = fast_policy(
            max_retries=0,
            on_retry=lambda attempt, error: retries.append(attempt),
            on_exhausted=exhausted.append,
        )

        with pytest.raises(TimeoutError):
            await with_retry(operation, policy, sleep=sleep_recorder, failure_logger=failure_logger)

        assert operation.calls == 1
        assert retries == []
        assert len(exhausted) == 1

    async def test_non_retryable_fails_fast(self, make_flaky, sleep_recorder, failure_logger):
        retries = []
        operation = make_flaky([StructuredError.of(ErrorCode.VALIDATION_ERROR, "bad input")])
        policy = fast_policy(on_retry=lambda attempt, error: retries.append(attempt))

        with pytest.raises(StructuredError) as exc_info:
            await with_retry(operation, policy, sleep=sleep_recorder, failure_logger=failure_logger)

        assert exc_info.value.code is ErrorCode.VALIDATION_ERROR
        assert operation.calls == 1
        assert retries == []
        assert sleep_recorder.delays == []

    async def test_structured_code_outside_policy_is_not_retried(self, make_flaky, sleep_recorder, failure_logger):
        operation = make_flaky([StructuredError.of(ErrorCode.SERVICE_UNAVAILABLE, "down")])
        policy = fast_policy(retryable_codes={ErrorCode.RATE_LIMIT_EXCEEDED})

        with pytest.raises(StructuredError):
            await with_retry(operation, policy, sleep=sleep_recorder, failure_logger=failure_logger)

        assert operation.calls == 1

    async def test_each_failure_reclassified(self, make_flaky, sleep_recorder, failure_logger):
        """A retryable failure followed by a non-retryable one stops on the second attempt."""
        operation = make_flaky([TimeoutError("t"), StructuredError.of(ErrorCode.NOT_FOUND, "gone")])

        with pytest.raises(StructuredError):
            await with_retry(operation, fast_policy(), sleep=sleep_recorder, failure_logger=failure_logger)

        assert operation.calls == 2
        assert len(sleep_recorder.delays) == 1

    async def test_cancel_event_set_before_wait(self, make_flaky, failure_logger):
        cancel = asyncio.Event()
        operation = make_flaky([TimeoutError("t")] * 5)
        policy = fast_policy(on_retry=lambda attempt, error: cancel.set())

        with pytest.raises(RetryCancelledError) as exc_info:
            await with_retry(operation, policy, cancel_event=cancel, failure_logger=failure_logger)

        assert operation.calls == 1
        assert exc_info.value.attempt == 1
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    async def test_cancel_event_interrupts_wait(self, make_flaky, failure_logger):
        cancel = asyncio.Event()
        operation = make_flaky([TimeoutError("t")] * 5)
        policy = fast_policy(base_delay=5.0, max_delay=5.0)

        asyncio.get_running_loop().call_later(0.01, cancel.set)
        with pytest.raises(RetryCancelledError):
            await asyncio.wait_for(
                with_retry(operation, policy, cancel_event=cancel, failure_logger=failure_logger),
                timeout=2.0,
            )

        assert operation.calls == 1

    async def test_task_cancellation_is_not_a_failure(self, failure_logger):
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await with_retry(operation, fast_policy(), failure_logger=failure_logger)

        assert calls == 1

    async def test_terminal_failure_logged_once(self, make_flaky, sleep_recorder, failure_logger, caplog):
        caplog.set_level(logging.DEBUG, logger="resilience.tests.failures")
        operation = make_flaky([StructuredError.of(ErrorCode.CONFLICT, "exists")])

        with pytest.raises(StructuredError):
            await with_retry(operation, fast_policy(), sleep=sleep_recorder, failure_logger=failure_logger)

        records = [r for r in caplog.records if r.name == "resilience.tests.failures"]
        assert [r.getMessage() for r in records] == ["Non-retryable error encountered"]
        assert records[0].classification["category"] == "business"

    async def test_success_after_retries_logged(self, make_flaky, sleep_recorder, failure_logger, caplog):
        caplog.set_level(logging.DEBUG, logger="resilience.tests.failures")
        operation = make_flaky([TimeoutError("t")])

        await with_retry(operation, fast_policy(), sleep=sleep_recorder, failure_logger=failure_logger)

        messages = [r.getMessage() for r in caplog.records if r.name == "resilience.tests.failures"]
        assert messages[0].startswith("Retrying after error (attempt 1/3)")
        assert messages[-1] == "Operation succeeded after 1 retries"

        success = [r for r in caplog.records if r.name == "resilience.tests.failures"][-1]
        assert success.context == {"attempt": 2, "delay": 0.0, "succeeded": True, "retries": 1}

    async def test_terminal_failures_are_marked_logged(self, make_flaky, sleep_recorder, failure_logger):
        fast_fail = make_flaky([KeyError("k")])
        exhausted = make_flaky([TimeoutError("t")] * 2)

        with pytest.raises(KeyError) as fast_info:
            await with_retry(fast_fail, fast_policy(), sleep=sleep_recorder, failure_logger=failure_logger)
        with pytest.raises(TimeoutError) as exhausted_info:
            await with_retry(exhausted, fast_policy(max_retries=1), sleep=sleep_recorder, failure_logger=failure_logger)

        assert was_logged(fast_info.value)
        assert was_logged(exhausted_info.value)


@pytest.mark.asyncio
class TestRetryApiCall:

    async def test_logs_and_chains_caller_on_retry(self, make_flaky, sleep_recorder, failure_logger, caplog):
        caplog.set_level(logging.DEBUG, logger="resilience.tests.failures")
        seen = []
        operation = make_flaky([StructuredError.of(ErrorCode.RATE_LIMIT_EXCEEDED, "slow")], value={"id": 1})
        policy = fast_policy(on_retry=lambda attempt, error: seen.append(attempt))

        result = await retry_api_call(operation, policy, sleep=sleep_recorder, failure_logger=failure_logger)

        assert result == {"id": 1}
        assert seen == [1]
        assert "API call retry attempt 1" in [r.getMessage() for r in caplog.records]


@pytest.mark.asyncio
class TestRetryParallelCalls:

    async def test_partial_failure_keyed_by_position(self, make_flaky, sleep_recorder, failure_logger):
        calls = [
            make_flaky(value="a"),
            make_flaky([TypeError("bad operand")]),
            make_flaky([TimeoutError("t")], value="c"),
        ]

        batch = await retry_parallel_calls(calls, fast_policy(), sleep=sleep_recorder, failure_logger=failure_logger)

        assert batch.results == {0: "a", 2: "c"}
        assert list(batch.errors) == [1]
        assert isinstance(batch.errors[1], TypeError)
        assert batch.values == ["a", "c"]
        assert batch.all_succeeded is False

    async def test_all_succeed(self, make_flaky, failure_logger):
        batch = await retry_parallel_calls([make_flaky(value=i) for i in range(3)], failure_logger=failure_logger)

        assert batch.values == [0, 1, 2]
        assert batch.failures == []
        assert batch.all_succeeded is True


class TestAttemptOutcome:

    def test_log_context(self):
        outcome = AttemptOutcome(attempt=2, delay=0.12345, error=TimeoutError("t"))

        assert outcome.succeeded is False
        assert outcome.to_log_context() == {"attempt": 2, "delay": 0.123, "succeeded": False, "error_type": "TimeoutError"}
        assert AttemptOutcome(attempt=1, value=3).succeeded is True
