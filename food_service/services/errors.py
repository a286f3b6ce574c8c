"""Ошибки жизненного цикла заказа.

Each error carries a stable ``code`` that bots map to user-facing texts and a
``recoverable`` flag: recoverable errors are retried after reloading the
order, the rest are reported to the acting user as is.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "OrderError",
    "NotFound",
    "ConstraintViolation",
    "StorageUnavailable",
    "StaleTransition",
    "IllegalTransition",
    "WouldUsurpDriver",
    "DriverWillComplete",
    "AlreadyClaimed",
    "StalePresence",
    "TransportTransient",
    "DeadlineExceeded",
]


class OrderError(Exception):
    code = "order-error"
    recoverable = False

    def __init__(self, message: str = "", *, order_id: Optional[int] = None) -> None:
        self.order_id = order_id
        super().__init__(message or self.code)


class NotFound(OrderError):
    code = "not-found"


class ConstraintViolation(OrderError):
    code = "constraint-violation"


class StorageUnavailable(OrderError):
    code = "storage-unavailable"
    recoverable = True


class StaleTransition(OrderError):
    code = "stale-transition"
    recoverable = True


class IllegalTransition(OrderError):
    code = "illegal-transition"

    def __init__(
        self,
        message: str = "",
        *,
        order_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.reason = reason
        super().__init__(message, order_id=order_id)


class WouldUsurpDriver(OrderError):
    code = "would-usurp-driver"


class DriverWillComplete(OrderError):
    code = "driver-will-complete"


class AlreadyClaimed(OrderError):
    code = "already-claimed"
    recoverable = True


class StalePresence(OrderError):
    code = "stale-presence"


class TransportTransient(OrderError):
    code = "transport-transient"
    recoverable = True


class DeadlineExceeded(OrderError):
    code = "deadline-exceeded"
