from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction

from . import services
from .events import order_event_committed, publish_event, redeliver_failed_events
from .exceptions import (
    EmptyOrderError,
    IllegalDeleteError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidTransitionError,
    ProductInUseError,
    UnknownAddressError,
    UnknownCustomerError,
    UnknownSkuError,
)
from .models import (
    Address,
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    OutboxEvent,
    PaymentStatus,
    Product,
    ShippingStatus,
)

pytestmark = pytest.mark.django_db


def stock_of(sku):
    return Product.objects.get(sku=sku).stock


def assert_totals_consistent(order):
    order.refresh_from_db()
    assert order.subtotal == sum(item.line_total for item in order.items.all())
    assert order.total == order.subtotal + order.tax + order.shipping


@pytest.fixture
def xy(make_product):
    make_product("X", price="10.00", stock=5)
    make_product("Y", price="20.00", stock=5)


def place(customer, *lines, **kwargs):
    return services.create_order(
        customer_id=customer.pk,
        items=[{"sku": sku, "quantity": qty} for sku, qty in lines],
        **kwargs,
    )


def test_totals_follow_tax_rate_and_shipping_fee(customer, xy):
    order = place(customer, ("X", 2), ("Y", 1))

    assert order.status == OrderStatus.PENDING
    assert order.subtotal == Decimal("40.00")
    assert order.tax == Decimal("4.00")
    assert order.shipping == Decimal("10.00")
    assert order.total == Decimal("54.00")
    assert order.order_number.startswith("ORD-")
    assert [(i.product.sku, i.quantity, i.unit_price) for i in order.items.all()] == [
        ("X", 2, Decimal("10.00")),
        ("Y", 1, Decimal("20.00")),
    ]
    assert stock_of("X") == 3
    assert stock_of("Y") == 4
    assert_totals_consistent(order)


def test_tax_rate_comes_from_configuration(customer, xy, settings):
    settings.SHOP = {"TAX_RATE": Decimal("0.08"), "SHIPPING_FEE": Decimal("0"), "LOCK_TIMEOUT": 5}

    order = place(customer, ("X", 2), ("Y", 1))

    assert order.tax == Decimal("3.20")
    assert order.shipping == Decimal("0.00")
    assert order.total == Decimal("43.20")


def test_tax_is_rounded_to_cents(customer, make_product):
    make_product("Z", price="0.35", stock=10)
    order = place(customer, ("Z", 1))
    # 0.035 rounds half up
    assert order.tax == Decimal("0.04")
    assert order.total == Decimal("10.39")


def test_unit_price_is_a_snapshot(customer, xy):
    order = place(customer, ("X", 2))
    Product.objects.filter(sku="X").update(price=Decimal("99.00"))

    order.refresh_from_db()
    item = order.items.get()
    assert item.unit_price == Decimal("10.00")
    assert item.line_total == Decimal("20.00")
    assert order.subtotal == Decimal("20.00")


def test_empty_order_is_rejected(customer, xy):
    with pytest.raises(EmptyOrderError):
        services.create_order(customer_id=customer.pk, items=[])
    assert Order.objects.count() == 0


def test_unknown_sku_is_named_and_nothing_changes(customer, xy):
    with pytest.raises(UnknownSkuError) as info:
        place(customer, ("X", 1), ("NOPE", 1))
    assert info.value.sku == "NOPE"
    assert Order.objects.count() == 0
    assert stock_of("X") == 5


def test_unknown_customer(xy):
    with pytest.raises(UnknownCustomerError):
        services.create_order(customer_id="not-a-uuid", items=[{"sku": "X", "quantity": 1}])
    assert stock_of("X") == 5


def test_address_must_belong_to_customer(customer, xy):
    other = Customer.objects.create(email="other@test.com", first_name="A", last_name="B")
    foreign = Address.objects.create(customer=other, line1="x", city="y", postal_code="1", country="KR")

    with pytest.raises(UnknownAddressError):
        place(customer, ("X", 1), shipping_address_id=foreign.pk)
    assert stock_of("X") == 5


def test_address_and_notes_are_kept(customer, address, xy):
    order = place(customer, ("X", 1), shipping_address_id=address.pk, notes="leave at door")
    order.refresh_from_db()
    assert order.shipping_address == address
    assert order.notes == "leave at door"


def test_insufficient_stock_on_one_line_changes_nothing(customer, xy):
    with pytest.raises(InsufficientStockError) as info:
        place(customer, ("X", 2), ("Y", 6))

    assert info.value.sku == "Y"
    assert Order.objects.count() == 0
    assert OrderItem.objects.count() == 0
    assert stock_of("X") == 5
    assert stock_of("Y") == 5


def test_failed_persistence_rolls_back_the_decrement(customer, xy, monkeypatch):
    def boom(*args, **kwargs):
        raise IntegrityError("simulated insert failure")

    monkeypatch.setattr(OrderItem.objects, "bulk_create", boom)

    with pytest.raises(IntegrityError):
        place(customer, ("X", 2), ("Y", 1))

    assert Order.objects.count() == 0
    assert OutboxEvent.objects.count() == 0
    assert stock_of("X") == 5
    assert stock_of("Y") == 5


def test_sequential_orders_cannot_overdraw(customer, make_product):
    make_product("X", stock=5)

    place(customer, ("X", 3))
    with pytest.raises(InsufficientStockError):
        place(customer, ("X", 3))

    assert stock_of("X") == 2


def test_full_lifecycle(customer, xy):
    order = place(customer, ("X", 1))

    for status in [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]:
        order = services.transition_order(order_id=order.pk, status=status)
        assert order.status == status
        assert_totals_consistent(order)

    # delivery keeps the stock taken at placement
    assert stock_of("X") == 4


def test_pending_to_shipped_is_rejected(customer, xy):
    order = place(customer, ("X", 1))

    with pytest.raises(InvalidTransitionError):
        services.transition_order(order_id=order.pk, status=OrderStatus.SHIPPED)

    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING


def test_cancelling_confirmed_order_restores_each_line(customer, xy):
    order = place(customer, ("X", 2), ("Y", 3))
    services.transition_order(order_id=order.pk, status=OrderStatus.CONFIRMED)
    assert (stock_of("X"), stock_of("Y")) == (3, 2)

    services.transition_order(order_id=order.pk, status=OrderStatus.CANCELLED)
    assert (stock_of("X"), stock_of("Y")) == (5, 5)

    # second cancel is refused, not replayed
    with pytest.raises(InvalidTransitionError):
        services.transition_order(order_id=order.pk, status=OrderStatus.CANCELLED)
    assert (stock_of("X"), stock_of("Y")) == (5, 5)


def test_cancel_after_shipping_is_rejected(customer, xy):
    order = place(customer, ("X", 2))
    for status in [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED]:
        services.transition_order(order_id=order.pk, status=status)

    with pytest.raises(InvalidTransitionError):
        services.transition_order(order_id=order.pk, status=OrderStatus.CANCELLED)
    assert stock_of("X") == 3


def test_notes_only_update_keeps_status(customer, xy):
    order = place(customer, ("X", 1))
    order = services.transition_order(order_id=order.pk, notes="call first")

    assert order.status == OrderStatus.PENDING
    assert Order.objects.get(pk=order.pk).notes == "call first"
    assert not OutboxEvent.objects.filter(event_type="OrderStatusChanged").exists()


def test_transition_missing_order():
    with pytest.raises(Order.DoesNotExist):
        services.transition_order(order_id="5b6f1a9e-3d3c-4c8e-9a44-0f2b8f8f3b10", status=OrderStatus.CONFIRMED)


def test_deleting_processing_order_is_refused(customer, xy):
    order = place(customer, ("X", 2))
    services.transition_order(order_id=order.pk, status=OrderStatus.CONFIRMED)
    services.transition_order(order_id=order.pk, status=OrderStatus.PROCESSING)

    with pytest.raises(IllegalDeleteError):
        services.delete_order(order_id=order.pk)

    assert Order.objects.filter(pk=order.pk).exists()
    assert stock_of("X") == 3


def test_deleting_pending_order_restores_stock(customer, xy):
    order = place(customer, ("X", 2), ("Y", 1))

    services.delete_order(order_id=order.pk)

    assert not Order.objects.filter(pk=order.pk).exists()
    assert OrderItem.objects.count() == 0
    assert (stock_of("X"), stock_of("Y")) == (5, 5)


def test_product_with_order_lines_cannot_be_deleted(customer, xy):
    place(customer, ("X", 1))

    with pytest.raises(ProductInUseError):
        services.delete_product(sku="X")
    assert Product.objects.filter(sku="X").exists()

    services.delete_product(sku="Y")
    assert not Product.objects.filter(sku="Y").exists()

    with pytest.raises(UnknownSkuError):
        services.delete_product(sku="Y")


def test_mutations_write_outbox_events(customer, xy):
    order = place(customer, ("X", 1))
    services.transition_order(order_id=order.pk, status=OrderStatus.CANCELLED)

    events = {e.event_type: e for e in OutboxEvent.objects.filter(aggregate_id=str(order.pk))}
    assert set(events) == {"OrderCreated", "OrderStatusChanged"}
    assert events["OrderCreated"].payload["total"] == "21.00"
    assert events["OrderStatusChanged"].payload == {
        "order_id": str(order.pk),
        "order_number": order.order_number,
        "previous": "PENDING",
        "status": "CANCELLED",
    }


def test_events_are_published_only_after_commit(customer, xy, django_capture_on_commit_callbacks):
    received = []

    def listener(sender, event, **kwargs):
        received.append(event.event_type)

    order_event_committed.connect(listener)
    try:
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            place(customer, ("X", 1))
        assert received == []
        assert len(callbacks) == 1

        callbacks[0]()
        assert received == ["OrderCreated"]
        assert OutboxEvent.objects.get().status == "sent"

        # a row already sent is not delivered twice
        publish_event(OutboxEvent.objects.get().pk)
        assert received == ["OrderCreated"]
        assert OutboxEvent.objects.get().attempts == 1
    finally:
        order_event_committed.disconnect(listener)


@pytest.mark.django_db(transaction=True)
def test_failing_event_receiver_does_not_reach_the_caller(customer, xy):
    def broken(sender, event, **kwargs):
        raise RuntimeError("downstream is down")

    order_event_committed.connect(broken)
    try:
        order = place(customer, ("X", 1))
    finally:
        order_event_committed.disconnect(broken)

    assert isinstance(order, Order)
    assert Order.objects.filter(pk=order.pk).exists()
    assert stock_of("X") == 4
    event = OutboxEvent.objects.get()
    assert (event.status, event.attempts) == ("failed", 1)

    # once the receiver is gone the row goes out on redelivery
    assert redeliver_failed_events() == 1
    event.refresh_from_db()
    assert (event.status, event.attempts) == ("sent", 2)


def test_hand_edited_total_is_refused_by_the_database(customer, xy):
    order = place(customer, ("X", 1))

    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Order.objects.filter(pk=order.pk).update(total=Decimal("999.00"))

    assert Order.objects.get(pk=order.pk).total == Decimal("21.00")


@pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, True])
def test_bad_quantity_is_a_domain_error(customer, xy, quantity):
    with pytest.raises(InvalidQuantityError) as info:
        services.create_order(customer_id=customer.pk, items=[{"sku": "X", "quantity": quantity}])

    assert info.value.sku == "X"
    assert Order.objects.count() == 0
    assert stock_of("X") == 5


def test_new_orders_start_unpaid_and_unshipped(customer, xy):
    order = Order.objects.get(pk=place(customer, ("X", 1)).pk)
    assert order.payment_status == PaymentStatus.PENDING
    assert order.shipping_status == ShippingStatus.NOT_SHIPPED


def test_payment_shipping_and_address_updates(customer, address, xy):
    order = place(customer, ("X", 1))

    order = services.transition_order(
        order_id=order.pk, payment_status=PaymentStatus.PAID, shipping_address_id=address.pk
    )
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PAID
    assert Order.objects.get(pk=order.pk).shipping_address == address

    updated = OutboxEvent.objects.get(event_type="OrderUpdated")
    assert updated.payload["changes"] == {"payment_status": ["PENDING", "PAID"], "shipping_address_id": address.pk}

    with pytest.raises(InvalidTransitionError) as info:
        services.transition_order(order_id=order.pk, shipping_status=ShippingStatus.DELIVERED)
    assert info.value.field == "shipping_status"

    services.transition_order(order_id=order.pk, shipping_status=ShippingStatus.SHIPPED)
    assert Order.objects.get(pk=order.pk).shipping_status == ShippingStatus.SHIPPED


def test_rejected_update_changes_nothing(customer, xy):
    order = place(customer, ("X", 1))
    other = Customer.objects.create(email="other@test.com", first_name="A", last_name="B")
    foreign = Address.objects.create(customer=other, line1="x", city="y", postal_code="1", country="KR")

    with pytest.raises(UnknownAddressError):
        services.transition_order(order_id=order.pk, payment_status=PaymentStatus.PAID, shipping_address_id=foreign.pk)
    with pytest.raises(InvalidTransitionError):
        services.transition_order(order_id=order.pk, payment_status=PaymentStatus.REFUNDED)

    order.refresh_from_db()
    assert order.payment_status == PaymentStatus.PENDING
    assert order.shipping_address is None
    assert not OutboxEvent.objects.filter(event_type="OrderUpdated").exists()
