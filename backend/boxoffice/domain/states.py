"""
Closed status enums and the order transition table.

Order status is never assigned as a free-form string: services call
ensure_order_transition() first and then perform a guarded UPDATE whose
WHERE clause pins the source status, so a racing writer cannot slip an
illegal transition in between.
"""

from enum import Enum

from boxoffice.core.errors import InvalidStateError


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class SaleStatus(str, Enum):
    NOT_ON_SALE = "NOT_ON_SALE"
    ON_SALE = "ON_SALE"
    SOLD_OUT = "SOLD_OUT"
    CLOSED = "CLOSED"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.EXPIRED}),
    OrderStatus.PAID: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[OrderStatus(current)]


def ensure_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    current = OrderStatus(current)
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Order cannot move from {current.value} to {target.value}",
            current=current.value,
            target_status=target.value,
        )
