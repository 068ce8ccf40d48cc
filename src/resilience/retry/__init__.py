from .backoff import calculate_delay, JITTER_RATIO
from .policy import (
    RetryPolicy,
    DEFAULT_RETRY_POLICY,
    DEFAULT_RETRYABLE_CODES,
    RETRY_STRATEGIES,
    NETWORK_STRATEGY,
    policy_for_error,
)
from .engine import (
    RetryState,
    AttemptOutcome,
    BatchResult,
    is_retryable_error,
    with_retry,
    retry_api_call,
    retry_parallel_calls,
)

__all__ = [
    "calculate_delay",
    "JITTER_RATIO",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "DEFAULT_RETRYABLE_CODES",
    "RETRY_STRATEGIES",
    "NETWORK_STRATEGY",
    "policy_for_error",
    "RetryState",
    "AttemptOutcome",
    "BatchResult",
    "is_retryable_error",
    "with_retry",
    "retry_api_call",
    "retry_parallel_calls",
]
