"""Order use cases. Each public function is one all-or-nothing unit of work."""
import logging
import uuid

from django.core.exceptions import ValidationError
from django.db.models import ProtectedError
from django.utils import timezone

from .conf import get_shop_settings
from .events import ORDER_CREATED, ORDER_DELETED, ORDER_STATUS_CHANGED, ORDER_UPDATED, record_order_event
from .exceptions import (
    EmptyOrderError,
    IllegalDeleteError,
    InvalidQuantityError,
    ProductInUseError,
    UnknownAddressError,
    UnknownCustomerError,
    UnknownSkuError,
)
from .inventory import StockLine, ledger
from .locking import serialized
from .models import Address, Customer, Order, OrderItem, OrderStatus, Product
from .state_machine import check_payment_transition, check_shipping_transition, check_transition, releases_stock

logger = logging.getLogger("shop")


def _order_number() -> str:
    return f"ORD-{timezone.now():%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6].upper()}"


def _stock_lines(order: Order) -> list[StockLine]:
    return [
        StockLine(sku=sku, quantity=qty)
        for sku, qty in order.items.values_list("product__sku", "quantity")
    ]


def _lock_order(order_id) -> Order:
    return Order.objects.select_for_update().get(pk=order_id)


def _resolve_customer(customer_id) -> Customer:
    try:
        return Customer.objects.get(pk=customer_id)
    except (Customer.DoesNotExist, ValidationError):
        raise UnknownCustomerError(customer_id) from None


def _resolve_address(address_id, customer: Customer):
    if address_id is None:
        return None
    address = Address.objects.filter(pk=address_id, customer=customer).first()
    if address is None:
        raise UnknownAddressError(address_id, customer.pk)
    return address


def _requested_line(item: dict) -> StockLine:
    sku, quantity = item["sku"], item["quantity"]
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(sku, quantity)
    return StockLine(sku=sku, quantity=quantity)


def create_order(*, customer_id, items: list[dict], shipping_address_id=None, notes: str = "") -> Order:
    """items = [{'sku': 'A', 'quantity': 2}, ...]"""
    lines = [_requested_line(it) for it in items]
    if not lines:
        raise EmptyOrderError()
    cfg = get_shop_settings()

    with serialized():
        customer = _resolve_customer(customer_id)
        address = _resolve_address(shipping_address_id, customer)

        catalog = {p.sku: p for p in Product.objects.filter(sku__in={line.sku for line in lines})}
        for line in lines:
            if line.sku not in catalog:
                raise UnknownSkuError(line.sku)

        order = Order(
            order_number=_order_number(),
            customer=customer,
            shipping_address=address,
            notes=notes or "",
            status=OrderStatus.PENDING,
        )
        # prices are frozen here; later catalog changes never touch this order
        order_items = [
            OrderItem.snapshot(order=order, product=catalog[line.sku], quantity=line.quantity, position=pos)
            for pos, line in enumerate(lines)
        ]
        line_totals = [item.line_total for item in order_items]
        order.apply_totals(line_totals, tax_rate=cfg.tax_rate, shipping_fee=cfg.shipping_fee)

        ledger.reserve_and_decrement(lines)

        order.save()
        OrderItem.objects.bulk_create(order_items)
        order.verify_totals(order.items.values_list("line_total", flat=True))
        record_order_event(
            order,
            ORDER_CREATED,
            customer_id=str(customer.pk),
            total=str(order.total),
            items=[{"sku": line.sku, "quantity": line.quantity} for line in lines],
        )

    logger.info("order created: %s customer=%s total=%s", order.order_number, customer.pk, order.total)
    return order


def transition_order(
    *,
    order_id,
    status=None,
    notes=None,
    payment_status=None,
    shipping_status=None,
    shipping_address_id=None,
) -> Order:
    """Move an order along the lifecycle; cancelling gives its stock back in the same transaction.

    ``payment_status`` and ``shipping_status`` follow their own forward-only
    tables. A new shipping address must belong to the order's customer.
    Arguments left as ``None`` are not touched.
    """
    with serialized():
        order = _lock_order(order_id)
        previous = order.status
        update_fields = ["updated_at"]
        changes = {}

        if status is not None:
            check_transition(previous, status)
            if releases_stock(previous, status):
                ledger.restore(_stock_lines(order))
            order.status = status
            update_fields.append("status")
        if payment_status is not None:
            check_payment_transition(order.payment_status, payment_status)
            changes["payment_status"] = [str(order.payment_status), str(payment_status)]
            order.payment_status = payment_status
            update_fields.append("payment_status")
        if shipping_status is not None:
            check_shipping_transition(order.shipping_status, shipping_status)
            changes["shipping_status"] = [str(order.shipping_status), str(shipping_status)]
            order.shipping_status = shipping_status
            update_fields.append("shipping_status")
        if shipping_address_id is not None:
            order.shipping_address = _resolve_address(shipping_address_id, order.customer)
            changes["shipping_address_id"] = order.shipping_address_id
            update_fields.append("shipping_address")
        if notes is not None:
            order.notes = notes
            update_fields.append("notes")

        order.save(update_fields=update_fields)
        order.verify_totals(order.items.values_list("line_total", flat=True))
        if status is not None:
            record_order_event(order, ORDER_STATUS_CHANGED, previous=str(previous), status=str(status))
        if changes:
            record_order_event(order, ORDER_UPDATED, changes=changes)

    if status is not None:
        logger.info("order %s: %s -> %s", order.order_number, previous, status)
    return order


def delete_order(*, order_id) -> None:
    with serialized():
        order = _lock_order(order_id)
        if order.status != OrderStatus.PENDING:
            logger.warning("delete refused: %s is %s", order.order_number, order.status)
            raise IllegalDeleteError(order.pk, order.status)
        lines = _stock_lines(order)
        record_order_event(
            order,
            ORDER_DELETED,
            items=[{"sku": line.sku, "quantity": line.quantity} for line in lines],
        )
        ledger.restore(lines)
        order.delete()

    logger.info("order deleted: %s", order.order_number)


def delete_product(*, sku: str) -> None:
    """Remove a SKU from the catalog; refused while any order line references it."""
    with serialized():
        product = Product.objects.select_for_update().filter(sku=sku).first()
        if product is None:
            raise UnknownSkuError(sku)
        if product.order_items.exists():
            raise ProductInUseError(sku)
        try:
            product.delete()
        except ProtectedError:
            raise ProductInUseError(sku) from None

    logger.info("product deleted: %s", sku)
