"""
Retry engine: run an async operation under a RetryPolicy.

State machine per `with_retry()` call:

    ATTEMPTING --success--> DONE
        |
      failure
        v
    EVALUATING --attempt > max_retries--> EXHAUSTED   (on_exhausted, log, re-raise)
        |------ not retryable ----------> FAILED_FAST (log, re-raise)
        |
      retryable
        v
    on_retry(attempt, error) -> compute backoff -> wait -> ATTEMPTING (attempt + 1)

The wait is the only suspension point besides the operation itself. Setting
`cancel_event` while waiting aborts the loop with RetryCancelledError (the failure that
caused the wait is chained). Task cancellation (asyncio.CancelledError) is never
treated as a failure and propagates immediately.

Intermediate failures are never raised; they are visible only through `on_retry` and
the log stream.
Terminal failures are logged once here and marked with `mark_logged()` before they are
re-raised.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from resilience.core.failure_logger import FailureLogger, get_failure_logger, mark_logged
from resilience.exceptions.base import RetryCancelledError, as_error_payload
from resilience.exceptions.classifier import classify
from .backoff import calculate_delay
from .policy import DEFAULT_RETRY_POLICY, DEFAULT_RETRYABLE_CODES, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
Sleep = Callable[[float], Awaitable[Any]]


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    EVALUATING = "evaluating"
    DONE = "done"
    EXHAUSTED = "exhausted"
    FAILED_FAST = "failed_fast"


@dataclass(frozen=True)
class AttemptOutcome(Generic[T]):
    """What happened on one attempt. `delay` is the wait scheduled after it (0 if none)."""

    attempt: int
    delay: float = 0.0
    error: BaseException | None = None
    value: T | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_log_context(self) -> dict[str, Any]:
        data: dict[str, Any] = {"attempt": self.attempt, "delay": round(self.delay, 3), "succeeded": self.succeeded}
        if self.error is not None:
            data["error_type"] = type(self.error).__name__
        return data


def is_retryable_error(error: Any, retryable_codes: Iterable[str] = DEFAULT_RETRYABLE_CODES) -> bool:
    """
    Structured failures are retryable iff their code is listed in `retryable_codes`;
    generic exceptions defer to the classifier.
    """
    payload = as_error_payload(error)
    if payload is not None:
        return payload.code_value in {getattr(c, "value", c) for c in retryable_codes}
    return classify(error).is_retryable


async def _wait(delay: float, cancel_event: asyncio.Event | None, sleep: Sleep | None) -> bool:
    """
    Wait `delay` seconds. Returns True when `cancel_event` was set before or during the wait.
    """
    if cancel_event is not None and cancel_event.is_set():
        return True

    if sleep is not None:
        await sleep(delay)
        return cancel_event is not None and cancel_event.is_set()

    if cancel_event is None:
        await asyncio.sleep(delay)
        return False

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


async def with_retry(
    operation: Operation[T],
    policy: RetryPolicy | None = None,
    *,
    cancel_event: asyncio.Event | None = None,
    rng: Callable[[], float] | None = None,
    sleep: Sleep | None = None,
    failure_logger: FailureLogger | None = None,
) -> T:
    """
    Run `operation` until it succeeds, fails with a non-retryable error, or the policy's
    retries are exhausted. Returns the operation's value or raises its last error.

    Args:
        operation: zero-argument callable returning an awaitable (e.g. `lambda: client.get(url)`).
        policy: RetryPolicy; DEFAULT_RETRY_POLICY when omitted.
        cancel_event: when set during a backoff wait, raises RetryCancelledError.
        rng: random source for jitter (defaults to random.random).
        sleep: replacement for the backoff wait (tests); cancel_event is checked after it.
        failure_logger: FailureLogger for terminal failures and retry warnings.
    """
    policy = policy or DEFAULT_RETRY_POLICY
    rng = rng or random.random
    failures = failure_logger or get_failure_logger()

    attempt = 1
    while True:
        try:
            result = await operation()
        except Exception as exc:
            last_error = exc
        else:
            if attempt > 1:
                outcome = AttemptOutcome(attempt=attempt, value=result)
                failures.log_info(
                    f"Operation succeeded after {attempt - 1} retries",
                    {**outcome.to_log_context(), "retries": attempt - 1},
                )
            return result

        if attempt > policy.max_retries:
            if policy.on_exhausted is not None:
                policy.on_exhausted(last_error)
            failures.log_failure(
                last_error,
                f"Operation failed after {policy.max_retries} retries",
                {"total_attempts": attempt, "retry_state": RetryState.EXHAUSTED.value},
            )
            mark_logged(last_error)
            raise last_error

        if not is_retryable_error(last_error, policy.retryable_codes):
            failures.log_failure(
                last_error,
                "Non-retryable error encountered",
                {"attempt": attempt, "retry_state": RetryState.FAILED_FAST.value},
            )
            mark_logged(last_error)
            raise last_error

        if policy.on_retry is not None:
            policy.on_retry(attempt, last_error)

        delay = calculate_delay(attempt, policy.base_delay, policy.max_delay, policy.backoff_multiplier, rng=rng)
        outcome = AttemptOutcome(attempt=attempt, delay=delay, error=last_error)
        failures.log_warning(
            f"Retrying after error (attempt {attempt}/{policy.max_retries})",
            {**outcome.to_log_context(), "next_attempt": attempt + 1},
        )

        if await _wait(delay, cancel_event, sleep):
            logger.info("retry.cancelled", extra={"attempt": attempt})
            raise RetryCancelledError(attempt, last_error) from last_error

        attempt += 1


async def retry_api_call(call: Operation[T], policy: RetryPolicy | None = None, **kwargs) -> T:
    """
    `with_retry` for outbound API calls: every retry is also logged as a warning before
    the caller's own `on_retry` runs.
    """
    policy = policy or DEFAULT_RETRY_POLICY
    failures = kwargs.get("failure_logger") or get_failure_logger()
    caller_on_retry = policy.on_retry

    def on_retry(attempt: int, error: BaseException) -> None:
        failures.log_warning(f"API call retry attempt {attempt}", {"error_type": type(error).__name__})
        if caller_on_retry is not None:
            caller_on_retry(attempt, error)

    return await with_retry(call, policy.with_overrides(on_retry=on_retry), **kwargs)


@dataclass
class BatchResult(Generic[T]):
    """
    Outcome of retry_parallel_calls, keyed by the position of each call.
    """

    results: dict[int, T] = field(default_factory=dict)
    errors: dict[int, BaseException] = field(default_factory=dict)

    @property
    def values(self) -> list[T]:
        return [self.results[i] for i in sorted(self.results)]

    @property
    def failures(self) -> list[BaseException]:
        return [self.errors[i] for i in sorted(self.errors)]

    @property
    def all_succeeded(self) -> bool:
        return not self.errors


async def retry_parallel_calls(
    calls: Iterable[Operation[T]],
    policy: RetryPolicy | None = None,
    **kwargs,
) -> BatchResult[T]:
    """
    Run every call concurrently, each in its own retry loop. One call failing never
    cancels the others and the batch itself never raises for call failures.
    """
    calls = list(calls)
    outcomes = await asyncio.gather(
        *(with_retry(call, policy, **kwargs) for call in calls),
        return_exceptions=True,
    )

    batch: BatchResult[T] = BatchResult()
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            batch.errors[index] = outcome
        else:
            batch.results[index] = outcome
    return batch


__all__ = [
    "RetryState",
    "AttemptOutcome",
    "BatchResult",
    "is_retryable_error",
    "with_retry",
    "retry_api_call",
    "retry_parallel_calls",
]
