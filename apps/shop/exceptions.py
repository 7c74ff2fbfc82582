"""Domain errors raised by the inventory ledger, order state machine and order builder.

None of them is fatal: the API layer turns each one into a client-facing
response (see ``apps.shop.errors``).
"""


class DomainError(Exception):
    code = "domain_error"


class UnknownSkuError(DomainError):
    code = "unknown_sku"

    def __init__(self, sku):
        self.sku = sku
        super().__init__(f"Unknown SKU: {sku}")


class UnknownCustomerError(DomainError):
    code = "unknown_customer"

    def __init__(self, customer_id):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class UnknownAddressError(DomainError):
    code = "unknown_address"

    def __init__(self, address_id, customer_id):
        self.address_id = address_id
        self.customer_id = customer_id
        super().__init__(f"Address {address_id} does not belong to customer {customer_id}")


class EmptyOrderError(DomainError):
    code = "empty_order"

    def __init__(self):
        super().__init__("At least one item is required.")


class InvalidQuantityError(DomainError):
    code = "invalid_quantity"

    def __init__(self, sku, quantity):
        self.sku = sku
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer (sku {sku}, got {quantity!r})")


class InsufficientStockError(DomainError):
    code = "insufficient_stock"

    def __init__(self, sku, requested, available):
        self.sku = sku
        self.requested = requested
        self.available = available
        super().__init__(f"Out of stock: {sku} (requested {requested}, available {available})")


class InvalidTransitionError(DomainError):
    code = "invalid_transition"

    def __init__(self, current, requested, field="status"):
        self.current = current
        self.requested = requested
        self.field = field
        what = "order" if field == "status" else f"order {field}"
        super().__init__(f"Cannot move {what} from {current} to {requested}")


class IllegalDeleteError(DomainError):
    code = "illegal_delete"

    def __init__(self, order_id, status):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Only pending orders can be deleted (order {order_id} is {status})")


class ProductInUseError(DomainError):
    code = "product_in_use"

    def __init__(self, sku):
        self.sku = sku
        super().__init__(
            f"Cannot delete product {sku} with existing orders. "
            "Consider marking it as discontinued instead."
        )


class ConcurrencyTimeoutError(DomainError):
    code = "concurrency_timeout"

    def __init__(self, timeout):
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for a stock lock")
