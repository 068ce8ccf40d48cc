from .session import make_session_factory, get_session_factory, get_async_session
from .transactions import (
    TransactionOptions,
    with_transaction,
    batch_transaction,
    is_transaction_conflict,
    retry_transaction,
)

__all__ = [
    "make_session_factory",
    "get_session_factory",
    "get_async_session",
    "TransactionOptions",
    "with_transaction",
    "batch_transaction",
    "is_transaction_conflict",
    "retry_transaction",
]
