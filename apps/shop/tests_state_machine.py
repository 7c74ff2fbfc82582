import pytest

from .exceptions import InvalidTransitionError
from .models import OrderStatus as S
from .models import PaymentStatus as P
from .models import ShippingStatus as H
from .state_machine import (
    PAYMENT_TRANSITIONS,
    allowed_transitions,
    check_payment_transition,
    check_shipping_transition,
    check_transition,
    is_terminal,
    releases_stock,
)


def test_happy_path_walks_to_delivered():
    path = [S.PENDING, S.CONFIRMED, S.PROCESSING, S.SHIPPED, S.DELIVERED]
    for current, nxt in zip(path, path[1:]):
        check_transition(current, nxt)


def test_pending_cannot_jump_to_shipped():
    with pytest.raises(InvalidTransitionError) as info:
        check_transition(S.PENDING, S.SHIPPED)
    assert info.value.current == S.PENDING
    assert info.value.requested == S.SHIPPED
    assert "PENDING" in str(info.value) and "SHIPPED" in str(info.value)


@pytest.mark.parametrize("status", [S.DELIVERED, S.CANCELLED])
def test_terminal_states_go_nowhere(status):
    assert is_terminal(status)
    assert allowed_transitions(status) == frozenset()
    with pytest.raises(InvalidTransitionError):
        check_transition(status, S.CANCELLED)


def test_shipped_orders_cannot_be_cancelled():
    with pytest.raises(InvalidTransitionError):
        check_transition(S.SHIPPED, S.CANCELLED)


def test_same_state_is_not_a_transition():
    with pytest.raises(InvalidTransitionError):
        check_transition(S.CONFIRMED, S.CONFIRMED)


def test_plain_strings_are_accepted():
    check_transition("PENDING", "CONFIRMED")
    assert not is_terminal("PROCESSING")


def test_only_cancellation_from_a_live_state_releases_stock():
    assert releases_stock(S.PENDING, S.CANCELLED)
    assert releases_stock(S.CONFIRMED, S.CANCELLED)
    assert releases_stock(S.PROCESSING, S.CANCELLED)
    assert not releases_stock(S.CANCELLED, S.CANCELLED)
    assert not releases_stock(S.SHIPPED, S.DELIVERED)


def test_payment_moves_forward_only():
    check_payment_transition(P.PENDING, P.PAID)
    check_payment_transition(P.PAID, P.REFUNDED)
    check_payment_transition(P.FAILED, P.PENDING)

    with pytest.raises(InvalidTransitionError) as info:
        check_payment_transition(P.PENDING, P.REFUNDED)
    assert info.value.field == "payment_status"
    assert is_terminal(P.REFUNDED, PAYMENT_TRANSITIONS)


def test_shipping_moves_forward_only():
    path = [H.NOT_SHIPPED, H.SHIPPED, H.IN_TRANSIT, H.DELIVERED]
    for current, nxt in zip(path, path[1:]):
        check_shipping_transition(current, nxt)

    with pytest.raises(InvalidTransitionError) as info:
        check_shipping_transition(H.DELIVERED, H.IN_TRANSIT)
    assert info.value.field == "shipping_status"
    assert "shipping_status" in str(info.value)
