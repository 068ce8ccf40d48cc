"""
Error classification and resilience core.

    from resilience import classify, with_retry, RetryPolicy, log_failure

    classification = classify(exc)
    user = await with_retry(lambda: client.get_user(user_id), RetryPolicy(max_retries=2))
    log_failure(exc, "Charging card failed", {"order_id": order_id})
"""

from .exceptions import (
    ErrorCode,
    ErrorPayload,
    StructuredError,
    RetryCancelledError,
    InvalidBackoffError,
    Severity,
    Category,
    Classification,
    classify,
    create_error_response,
    get_status_code,
)
from .retry import (
    RetryPolicy,
    DEFAULT_RETRY_POLICY,
    calculate_delay,
    policy_for_error,
    with_retry,
    retry_api_call,
    retry_parallel_calls,
)
from .db.transactions import TransactionOptions, with_transaction, batch_transaction, retry_transaction
from .core.failure_logger import FailureLogger, get_failure_logger, log_failure
from .core.logging.filters import LogContext, bind_log_context

__all__ = [
    "ErrorCode",
    "ErrorPayload",
    "StructuredError",
    "RetryCancelledError",
    "InvalidBackoffError",
    "Severity",
    "Category",
    "Classification",
    "classify",
    "create_error_response",
    "get_status_code",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "calculate_delay",
    "policy_for_error",
    "with_retry",
    "retry_api_call",
    "retry_parallel_calls",
    "TransactionOptions",
    "with_transaction",
    "batch_transaction",
    "retry_transaction",
    "FailureLogger",
    "get_failure_logger",
    "log_failure",
    "LogContext",
    "bind_log_context",
]
