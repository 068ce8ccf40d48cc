"""
Error classifier: map any failure to a Classification.

Two levels of input are handled:

  1. Structured errors (ErrorPayload / StructuredError / error envelope dict):
     a fixed lookup table keyed by ErrorCode. Unknown codes fall through to the
     default critical classification.

  2. Generic exceptions: heuristics over the lower-cased exception type name and
     message. The substring rules are deliberately loose and order-sensitive
     (first match wins):

        | Rule | Matches                                                    | Result                         |
        | ---- | ---------------------------------------------------------- | ------------------------------ |
        | 1    | message has "network"/"fetch"/"timeout", name has "timeout" | operational, retryable, network|
        | 2    | name "validationerror", message has "validation"/"invalid" | operational, low, user         |
        | 3    | programming-defect names (TypeError, NameError, ...)       | NOT operational, critical      |
        | 4    | anything else                                              | operational, medium, system    |

`classify()` is total: it never raises, whatever it is given.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .base import ErrorPayload, as_error_payload
from .codes import ErrorCode, to_error_code

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Category(str, Enum):
    USER = "user"
    SYSTEM = "system"
    NETWORK = "network"
    BUSINESS = "business"


@dataclass(frozen=True)
class Classification:
    """
    How a failure should be treated.

    Invariant: a non-operational failure (a programming defect) is always critical.
    Constructing a Classification that breaks it raises ValueError.
    """

    is_operational: bool
    is_retryable: bool
    severity: Severity
    category: Category

    def __post_init__(self):
        if not self.is_operational and self.severity is not Severity.CRITICAL:
            raise ValueError("non-operational failures must be classified as critical")

    def to_dict(self) -> dict:
        return {
            "is_operational": self.is_operational,
            "is_retryable": self.is_retryable,
            "severity": self.severity.value,
            "category": self.category.value,
        }


# =================================================================================================================
# Classification tables
# =================================================================================================================

DEFAULT_CLASSIFICATION = Classification(False, False, Severity.CRITICAL, Category.SYSTEM)

_USER_INPUT = Classification(True, False, Severity.LOW, Category.USER)
_AUTH = Classification(True, False, Severity.MEDIUM, Category.USER)
_NOT_PERMITTED = Classification(True, False, Severity.MEDIUM, Category.BUSINESS)
_MISSING = Classification(True, False, Severity.LOW, Category.USER)
_CONFLICT = Classification(True, False, Severity.MEDIUM, Category.BUSINESS)
_RATE_LIMITED = Classification(True, True, Severity.MEDIUM, Category.SYSTEM)
_UPSTREAM = Classification(True, True, Severity.HIGH, Category.NETWORK)
_STORAGE = Classification(True, True, Severity.HIGH, Category.SYSTEM)

CODE_CLASSIFICATIONS: dict[ErrorCode, Classification] = {
    ErrorCode.VALIDATION_ERROR: _USER_INPUT,
    ErrorCode.INVALID_REQUEST: _USER_INPUT,
    ErrorCode.UNAUTHORIZED: _AUTH,
    ErrorCode.TOKEN_EXPIRED: _AUTH,
    ErrorCode.INVALID_TOKEN: _AUTH,
    ErrorCode.TOKEN_MISSING: _AUTH,
    ErrorCode.FORBIDDEN: _NOT_PERMITTED,
    ErrorCode.OPERATION_NOT_ALLOWED: _NOT_PERMITTED,
    ErrorCode.NOT_FOUND: _MISSING,
    ErrorCode.RESOURCE_NOT_AVAILABLE: _MISSING,
    ErrorCode.CONFLICT: _CONFLICT,
    ErrorCode.RATE_LIMIT_EXCEEDED: _RATE_LIMITED,
    ErrorCode.SERVICE_UNAVAILABLE: _UPSTREAM,
    ErrorCode.EXTERNAL_SERVICE_ERROR: _UPSTREAM,
    ErrorCode.DATABASE_ERROR: _STORAGE,
    # INTERNAL_ERROR and BUSINESS_RULE_VIOLATION use DEFAULT_CLASSIFICATION
}

_NETWORK = Classification(True, True, Severity.MEDIUM, Category.NETWORK)
_GENERIC = Classification(True, False, Severity.MEDIUM, Category.SYSTEM)

NETWORK_MESSAGE_KEYWORDS = ("network", "fetch", "timeout")
VALIDATION_MESSAGE_KEYWORDS = ("validation", "invalid")

# Exception type names that signal a bug in the calling code rather than a runtime condition.
DEFECT_ERROR_NAMES = frozenset({
    "typeerror",
    "nameerror",
    "unboundlocalerror",
    "attributeerror",
    "referenceerror",
    "syntaxerror",
})


# =================================================================================================================
# Classifiers
# =================================================================================================================

def _match_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def classify_payload(payload: ErrorPayload) -> Classification:
    """Classify a structured error by its code."""
    code = to_error_code(payload.code)
    if code is None:
        logger.debug("classifier.unknown_code", extra={"error_code": str(payload.code)})
        return DEFAULT_CLASSIFICATION
    return CODE_CLASSIFICATIONS.get(code, DEFAULT_CLASSIFICATION)


def classify_exception(name: str, message: str) -> Classification:
    """
    Classify a generic failure from its type name and message.
    """
    name = (name or "").lower()
    message = (message or "").lower()

    if _match_any(message, NETWORK_MESSAGE_KEYWORDS) or "timeout" in name:
        return _NETWORK

    if name == "validationerror" or _match_any(message, VALIDATION_MESSAGE_KEYWORDS):
        return _USER_INPUT

    if name in DEFECT_ERROR_NAMES:
        return DEFAULT_CLASSIFICATION

    return _GENERIC


def describe_failure(failure: Any) -> tuple[str, str]:
    """
    Return (name, message) for a generic failure. Non-exception values are described
    by their type name and str().
    """
    return type(failure).__name__, str(failure)


def classify(failure: Any) -> Classification:
    """
    Classify a failure (structured error or generic exception).

    Total function: any internal problem (e.g. an exception whose __str__ raises)
    yields DEFAULT_CLASSIFICATION instead of propagating.
    """
    try:
        payload = as_error_payload(failure)
        if payload is not None:
            return classify_payload(payload)
        return classify_exception(*describe_failure(failure))
    except Exception:
        logger.debug("classifier.fallback", exc_info=True)
        return DEFAULT_CLASSIFICATION


__all__ = [
    "Severity",
    "Category",
    "Classification",
    "DEFAULT_CLASSIFICATION",
    "CODE_CLASSIFICATIONS",
    "classify",
    "classify_payload",
    "classify_exception",
    "describe_failure",
]
