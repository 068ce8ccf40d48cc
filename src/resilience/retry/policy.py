"""
Retry policy values.

A RetryPolicy is built once per call site and never mutated; use `with_overrides()` to
derive a variant. Callbacks are plain callables:

    on_retry(attempt: int, error: BaseException) -> None     # before each backoff wait
    on_exhausted(error: BaseException) -> None               # once, when retries run out
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable

from ..exceptions.base import as_error_payload
from ..exceptions.classifier import Category, classify
from ..exceptions.codes import ErrorCode, to_error_code

OnRetry = Callable[[int, BaseException], Any]
OnExhausted = Callable[[BaseException], Any]

DEFAULT_RETRYABLE_CODES = frozenset({
    ErrorCode.RATE_LIMIT_EXCEEDED.value,
    ErrorCode.SERVICE_UNAVAILABLE.value,
    ErrorCode.EXTERNAL_SERVICE_ERROR.value,
    ErrorCode.DATABASE_ERROR.value,
})


def _normalize_codes(codes: Iterable | str) -> frozenset[str]:
    if isinstance(codes, str):
        # a single code (ErrorCode is a str Enum too), not an iterable of characters
        codes = (codes,)
    return frozenset(c.value if isinstance(c, ErrorCode) else str(c) for c in codes)


@dataclass(frozen=True)
class RetryPolicy:
    """
    - max_retries: retries after the first try (total attempts = max_retries + 1)
    - base_delay / max_delay: seconds, max_delay >= base_delay
    - backoff_multiplier: growth factor per attempt (>= 1)
    - retryable_codes: ErrorCodes retried for structured failures; generic exceptions
      are judged by the classifier instead
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_codes: frozenset[str] = DEFAULT_RETRYABLE_CODES
    on_retry: OnRetry | None = field(default=None, compare=False)
    on_exhausted: OnExhausted | None = field(default=None, compare=False)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError(f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})")
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")
        # accept any iterable of ErrorCode / str, store as frozenset of code strings
        object.__setattr__(self, "retryable_codes", _normalize_codes(self.retryable_codes))

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def is_retryable_code(self, code: ErrorCode | str | None) -> bool:
        known = to_error_code(code)
        value = known.value if known is not None else str(code)
        return value in self.retryable_codes

    def with_overrides(self, **changes) -> "RetryPolicy":
        return replace(self, **changes)

    @classmethod
    def from_settings(cls, settings, **overrides) -> "RetryPolicy":
        """Build a policy from the RETRY_* settings, then apply keyword overrides."""
        values = {
            "max_retries": settings.RETRY_MAX_RETRIES,
            "base_delay": settings.RETRY_BASE_DELAY,
            "max_delay": settings.RETRY_MAX_DELAY,
            "backoff_multiplier": settings.RETRY_BACKOFF_MULTIPLIER,
        }
        values.update(overrides)
        return cls(**values)


DEFAULT_RETRY_POLICY = RetryPolicy()

# Per-code tuning: rate limits back off longer, storage errors give up sooner.
RETRY_STRATEGIES: dict[ErrorCode, dict[str, Any]] = {
    ErrorCode.RATE_LIMIT_EXCEEDED: {"max_retries": 5, "base_delay": 5.0, "max_delay": 60.0, "backoff_multiplier": 2.0},
    ErrorCode.SERVICE_UNAVAILABLE: {"max_retries": 3, "base_delay": 2.0, "max_delay": 20.0, "backoff_multiplier": 2.0},
    ErrorCode.EXTERNAL_SERVICE_ERROR: {"max_retries": 3, "base_delay": 1.0, "max_delay": 15.0, "backoff_multiplier": 1.5},
    ErrorCode.DATABASE_ERROR: {"max_retries": 2, "base_delay": 0.5, "max_delay": 5.0, "backoff_multiplier": 2.0},
}

NETWORK_STRATEGY: dict[str, Any] = {"max_retries": 3, "base_delay": 1.0, "max_delay": 10.0, "backoff_multiplier": 1.5}


def policy_for_error(error: Any, base: RetryPolicy = DEFAULT_RETRY_POLICY) -> RetryPolicy:
    """
    Pick a policy tuned for the kind of failure already observed.

    Structured failures use RETRY_STRATEGIES by code; generic failures classified as
    network problems use NETWORK_STRATEGY; anything else gets `base` unchanged.
    Callbacks and retryable codes of `base` are preserved.
    """
    payload = as_error_payload(error)
    if payload is not None:
        code = to_error_code(payload.code)
        strategy = RETRY_STRATEGIES.get(code) if code is not None else None
        return base.with_overrides(**strategy) if strategy else base

    if classify(error).category is Category.NETWORK:
        return base.with_overrides(**NETWORK_STRATEGY)
    return base


__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "DEFAULT_RETRYABLE_CODES",
    "RETRY_STRATEGIES",
    "NETWORK_STRATEGY",
    "policy_for_error",
]
