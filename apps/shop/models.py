import uuid
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import models

CENTS = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class Customer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    phone = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.first_name} {self.last_name} <{self.email}>"


class Address(models.Model):
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="addresses")
    line1 = models.CharField(max_length=200)
    line2 = models.CharField(max_length=200, blank=True)
    city = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=20)
    country = models.CharField(max_length=2)

    def __str__(self):
        return f"{self.line1}, {self.city} {self.postal_code} {self.country}"


class Product(models.Model):
    """A stock-keeping unit. ``stock`` is on-hand; only the inventory ledger writes it."""

    sku = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock = models.PositiveIntegerField(default=0)
    reserved = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(stock__gte=0), name="product_stock_non_negative"),
            models.CheckConstraint(condition=models.Q(reserved__gte=0), name="product_reserved_non_negative"),
            models.CheckConstraint(
                condition=models.Q(reserved__lte=models.F("stock")),
                name="product_reserved_le_stock",
            ),
        ]

    def __str__(self):
        return f"{self.sku} ({self.stock})"

    @property
    def available(self) -> int:
        return self.stock - self.reserved


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"


class ShippingStatus(models.TextChoices):
    NOT_SHIPPED = "NOT_SHIPPED", "Not shipped"
    SHIPPED = "SHIPPED", "Shipped"
    IN_TRANSIT = "IN_TRANSIT", "In transit"
    DELIVERED = "DELIVERED", "Delivered"


# half a cent either way; SQLite compares decimals as floating point
TOTAL_TOLERANCE = Decimal("0.005")
_COMPONENTS = models.F("subtotal") + models.F("tax") + models.F("shipping")


class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=40, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="orders")
    shipping_address = models.ForeignKey(
        Address, on_delete=models.SET_NULL, null=True, blank=True, related_name="orders"
    )
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    shipping_status = models.CharField(
        max_length=20, choices=ShippingStatus.choices, default=ShippingStatus.NOT_SHIPPED
    )
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "created_at"], name="order_status_created_idx")]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total__gte=_COMPONENTS - TOTAL_TOLERANCE)
                & models.Q(total__lte=_COMPONENTS + TOTAL_TOLERANCE),
                name="order_total_is_sum_of_parts",
            ),
        ]

    def __str__(self):
        return f"{self.order_number} [{self.status}]"

    def apply_totals(self, line_totals, *, tax_rate: Decimal, shipping_fee: Decimal) -> None:
        """Derive subtotal, tax, shipping and total from the line totals."""
        self.subtotal = to_cents(sum(line_totals, Decimal("0.00")))
        self.tax = to_cents(self.subtotal * tax_rate)
        self.shipping = to_cents(shipping_fee)
        self.total = self.subtotal + self.tax + self.shipping

    def verify_totals(self, line_totals) -> None:
        expected = to_cents(sum(line_totals, Decimal("0.00")))
        if self.subtotal != expected:
            raise ValueError(f"order {self.pk}: subtotal {self.subtotal} != sum of lines {expected}")
        if self.total != self.subtotal + self.tax + self.shipping:
            raise ValueError(
                f"order {self.pk}: total {self.total} != {self.subtotal} + {self.tax} + {self.shipping}"
            )


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    position = models.PositiveIntegerField()
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["order", "position"]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="orderitem_quantity_positive"),
        ]

    def __str__(self):
        return f"{self.quantity}x {self.product_id} @ {self.unit_price}"

    @classmethod
    def snapshot(cls, *, order, product, quantity, position):
        """Build a line priced at the product's current price."""
        return cls(
            order=order,
            product=product,
            position=position,
            quantity=quantity,
            unit_price=product.price,
            line_total=to_cents(product.price * quantity),
        )


class OutboxEvent(models.Model):
    """Order events written in the same transaction as the change they describe."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    aggregate_type = models.CharField(max_length=50)
    aggregate_id = models.CharField(max_length=64)
    event_type = models.CharField(max_length=50)
    payload = models.JSONField()
    status = models.CharField(max_length=20, default="pending")  # pending/sent/failed
    attempts = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [models.Index(fields=["aggregate_type", "aggregate_id"], name="outbox_aggregate_idx")]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=128)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    request_hash = models.CharField(max_length=64)
    status_code = models.PositiveSmallIntegerField()
    response_body = models.JSONField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "key"], name="idempotencykey_unique_per_user"),
        ]
