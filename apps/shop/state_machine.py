"""Order lifecycle. PENDING is the only initial state; DELIVERED and CANCELLED are terminal.

Payment and shipping progress are tracked beside the lifecycle, each with its
own forward-only table.
"""
from .exceptions import InvalidTransitionError
from .models import OrderStatus, PaymentStatus, ShippingStatus

TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

SHIPPING_TRANSITIONS: dict[str, frozenset[str]] = {
    ShippingStatus.NOT_SHIPPED: frozenset({ShippingStatus.SHIPPED}),
    ShippingStatus.SHIPPED: frozenset({ShippingStatus.IN_TRANSIT, ShippingStatus.DELIVERED}),
    ShippingStatus.IN_TRANSIT: frozenset({ShippingStatus.DELIVERED}),
    ShippingStatus.DELIVERED: frozenset(),
}

INITIAL = OrderStatus.PENDING


def allowed_transitions(current: str, table=TRANSITIONS) -> frozenset[str]:
    return table.get(current, frozenset())


def is_terminal(status: str, table=TRANSITIONS) -> bool:
    return not allowed_transitions(status, table)


def can_transition(current: str, requested: str, table=TRANSITIONS) -> bool:
    return requested in allowed_transitions(current, table)


def check_transition(current: str, requested: str, table=TRANSITIONS, field: str = "status") -> None:
    if not can_transition(current, requested, table):
        raise InvalidTransitionError(current, requested, field=field)


def check_payment_transition(current: str, requested: str) -> None:
    check_transition(current, requested, PAYMENT_TRANSITIONS, field="payment_status")


def check_shipping_transition(current: str, requested: str) -> None:
    check_transition(current, requested, SHIPPING_TRANSITIONS, field="shipping_status")


def releases_stock(current: str, requested: str) -> bool:
    """True when moving ``current`` -> ``requested`` must give the order's stock back."""
    return requested == OrderStatus.CANCELLED and not is_terminal(current)
