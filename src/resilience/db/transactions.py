"""
Transaction helpers on top of an `async_sessionmaker`.

    result = await with_transaction(session_factory, lambda session: create_order(session, data))

    result = await retry_transaction(
        lambda session: transfer(session, source, target, amount),
        session_factory,
        max_retries=3,
        options=TransactionOptions(isolation_level="SERIALIZABLE"),
    )

`retry_transaction()` only retries storage conflicts recognised by their message
(serialization failures and deadlocks). Every other error propagates from the attempt
that raised it, untouched, so callers can still map it with `payload_from_db_error()`.

| Attempt n fails with a conflict | Wait before attempt n + 1 |
| ------------------------------- | ------------------------- |
| 1                               | 0.2 s                     |
| 2                               | 0.4 s                     |
| 3                               | 0.8 s                     |

`max_retries` counts attempts, not retries: max_retries=2 runs the operation at most
twice. Without explicit arguments `retry_transaction()` takes the attempt count and the
timeout from the TX_MAX_RETRIES and TX_TIMEOUT settings.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from resilience.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TransactionFn = Callable[[AsyncSession], Awaitable[T]]
SessionFactory = Callable[[], Any]

TRANSACTION_RETRY_SIGNATURES = (
    "serialization_failure",
    "deadlock_detected",
    "could not serialize access",
)

TRANSACTION_BASE_DELAY = 0.1


@dataclass(frozen=True)
class TransactionOptions:
    """
    - timeout: seconds the operation may run before the transaction is rolled back
    - isolation_level: e.g. "SERIALIZABLE", "REPEATABLE READ"; None keeps the engine default
    """

    timeout: float = 5.0
    isolation_level: str | None = None

    @classmethod
    def from_settings(cls, settings, **overrides) -> "TransactionOptions":
        """TX_TIMEOUT from settings, then keyword overrides."""
        values = {"timeout": settings.TX_TIMEOUT}
        values.update(overrides)
        return cls(**values)


DEFAULT_TRANSACTION_OPTIONS = TransactionOptions()


async def with_transaction(
    client: SessionFactory,
    operation: TransactionFn[T],
    options: TransactionOptions | None = None,
) -> T:
    """
    Run `operation(session)` inside one transaction.

    Commits when the operation returns, rolls back when it raises or exceeds
    `options.timeout` (TimeoutError).
    """
    options = options or DEFAULT_TRANSACTION_OPTIONS

    async with client() as session:
        async with session.begin():
            if options.isolation_level:
                # must be applied before the first statement of the transaction
                await session.connection(execution_options={"isolation_level": options.isolation_level})
            return await asyncio.wait_for(operation(session), timeout=options.timeout)


async def batch_transaction(
    client: SessionFactory,
    operations: Sequence[TransactionFn[Any]],
    options: TransactionOptions | None = None,
) -> list[Any]:
    """
    Run several operations in a single transaction and return their results in order.

    Operations run one after another: an AsyncSession must not be used by concurrent tasks.
    """

    async def _run_all(session: AsyncSession) -> list[Any]:
        results = []
        for operation in operations:
            results.append(await operation(session))
        return results

    return await with_transaction(client, _run_all, options)


def is_transaction_conflict(error: BaseException) -> bool:
    """True when the error message carries a serialization-failure or deadlock signature."""
    message = str(error)
    return any(signature in message for signature in TRANSACTION_RETRY_SIGNATURES)


def transaction_retry_delay(attempt: int) -> float:
    return 2 ** attempt * TRANSACTION_BASE_DELAY


async def retry_transaction(
    operation: TransactionFn[T],
    client: SessionFactory,
    max_retries: int | None = None,
    options: TransactionOptions | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] | None = None,
) -> T:
    """
    Run `operation` in a fresh transaction per attempt, retrying storage conflicts.

    Args:
        operation: receives the AsyncSession of the current attempt.
        client: session factory (async_sessionmaker).
        max_retries: total number of attempts (>= 1); TX_MAX_RETRIES when omitted.
        options: TransactionOptions applied to every attempt; built from TX_TIMEOUT when omitted.
        sleep: replacement for asyncio.sleep (tests).

    Raises:
        ValueError: max_retries < 1.
        The last error, when it is not a conflict or attempts are used up.
    """
    if max_retries is None or options is None:
        settings = get_settings()
        if max_retries is None:
            max_retries = settings.TX_MAX_RETRIES
        if options is None:
            options = TransactionOptions.from_settings(settings)
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1, got {max_retries}")
    sleep = sleep or asyncio.sleep

    attempt = 1
    while True:
        try:
            return await with_transaction(client, operation, options)
        except Exception as exc:
            if not is_transaction_conflict(exc) or attempt >= max_retries:
                raise
            delay = transaction_retry_delay(attempt)
            logger.warning(
                "transaction.retry",
                extra={"attempt": attempt, "max_attempts": max_retries, "delay": delay},
            )

        await sleep(delay)
        attempt += 1


__all__ = [
    "TransactionOptions",
    "DEFAULT_TRANSACTION_OPTIONS",
    "TRANSACTION_RETRY_SIGNATURES",
    "with_transaction",
    "batch_transaction",
    "is_transaction_conflict",
    "transaction_retry_delay",
    "retry_transaction",
]
