"""Order status workflow.

The transition table below is the single authority for both the generic
status update and the customer cancellation path.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet

from core.errors import InvalidStatusTransition, OrderNotCancellable


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


INITIAL_STATUS = OrderStatus.PENDING

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Timestamp attribute stamped the first time an order reaches the status
STATUS_TIMESTAMPS: Dict[OrderStatus, str] = {
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

STATUS_VALUES = tuple(status.value for status in OrderStatus)


def can_transition(current: str, requested: str) -> bool:
    return OrderStatus(requested) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def can_cancel(current: str) -> bool:
    return can_transition(current, OrderStatus.CANCELLED)


def ensure_transition(current: str, requested: str) -> None:
    if not can_transition(current, requested):
        raise InvalidStatusTransition(OrderStatus(current).value, OrderStatus(requested).value)


def ensure_cancellable(current: str) -> None:
    if not can_cancel(current):
        raise OrderNotCancellable(OrderStatus(current).value)


def apply_status(order, status: str, now: datetime) -> None:
    """Set the status and stamp its timestamp unless one is already recorded.

    The caller is responsible for validating the transition first.
    """
    status = OrderStatus(status)
    order.status = status.value
    attr = STATUS_TIMESTAMPS.get(status)
    if attr and getattr(order, attr) is None:
        setattr(order, attr, now)
    order.updated_at = now
