import pytest
from django.db import OperationalError

from .exceptions import ConcurrencyTimeoutError, InsufficientStockError, UnknownSkuError
from .inventory import InventoryLedger, StockLine
from .locking import is_lock_timeout, serialized
from .models import Product

pytestmark = pytest.mark.django_db


def stock_of(sku):
    return Product.objects.get(sku=sku).stock


def test_decrements_every_line(make_product):
    make_product("A", stock=5)
    make_product("B", stock=3)

    InventoryLedger().reserve_and_decrement([StockLine("A", 2), StockLine("B", 3)])

    assert stock_of("A") == 3
    assert stock_of("B") == 0


def test_one_short_line_leaves_every_sku_untouched(make_product):
    make_product("A", stock=5)
    make_product("B", stock=1)
    make_product("C", stock=9)

    with pytest.raises(InsufficientStockError) as info:
        InventoryLedger().reserve_and_decrement([StockLine("A", 2), StockLine("B", 2), StockLine("C", 1)])

    assert info.value.sku == "B"
    assert (info.value.requested, info.value.available) == (2, 1)
    assert [stock_of(s) for s in "ABC"] == [5, 1, 9]


def test_names_first_failing_sku_in_request_order(make_product):
    make_product("A", stock=0)
    make_product("B", stock=0)

    with pytest.raises(InsufficientStockError) as info:
        InventoryLedger().reserve_and_decrement([StockLine("B", 1), StockLine("A", 1)])
    assert info.value.sku == "B"


def test_repeated_sku_is_checked_against_its_total(make_product):
    make_product("A", stock=5)

    with pytest.raises(InsufficientStockError):
        InventoryLedger().reserve_and_decrement([StockLine("A", 3), StockLine("A", 3)])
    assert stock_of("A") == 5


def test_exact_stock_can_be_taken(make_product):
    make_product("A", stock=4)
    InventoryLedger().reserve_and_decrement([StockLine("A", 4)])
    assert stock_of("A") == 0


def test_reserved_units_are_not_available(make_product):
    product = make_product("A", stock=5)
    Product.objects.filter(pk=product.pk).update(reserved=2)

    with pytest.raises(InsufficientStockError):
        InventoryLedger().reserve_and_decrement([StockLine("A", 4)])
    assert InventoryLedger().get_available("A") == 3


def test_unknown_sku_fails_before_any_write(make_product):
    make_product("A", stock=5)

    with pytest.raises(UnknownSkuError) as info:
        InventoryLedger().reserve_and_decrement([StockLine("A", 1), StockLine("NOPE", 1)])
    assert info.value.sku == "NOPE"
    assert stock_of("A") == 5


def test_restore_adds_quantities_back(make_product):
    make_product("A", stock=1)
    make_product("B", stock=0)

    InventoryLedger().restore([StockLine("A", 2), StockLine("B", 3), StockLine("A", 1)])

    assert stock_of("A") == 4
    assert stock_of("B") == 3


def test_restore_unknown_sku():
    with pytest.raises(UnknownSkuError):
        InventoryLedger().restore([StockLine("GHOST", 1)])


def test_get_available(make_product):
    make_product("A", stock=7)
    assert InventoryLedger().get_available("A") == 7
    with pytest.raises(UnknownSkuError):
        InventoryLedger().get_available("missing")


def test_stock_line_needs_positive_quantity():
    with pytest.raises(ValueError):
        StockLine("A", 0)


def test_lock_wait_becomes_concurrency_timeout():
    with pytest.raises(ConcurrencyTimeoutError) as info:
        with serialized():
            raise OperationalError("database is locked")
    assert info.value.timeout == 5


def test_other_operational_errors_propagate():
    with pytest.raises(OperationalError):
        with serialized():
            raise OperationalError("no such table: shop_product")


class FakePgError(Exception):
    pgcode = "55P03"


def test_lock_timeout_detection():
    assert is_lock_timeout(OperationalError("Lock wait timeout exceeded; try restarting transaction"))
    wrapped = OperationalError("canceling statement due to lock timeout")
    wrapped.__cause__ = FakePgError()
    assert is_lock_timeout(wrapped)
    assert not is_lock_timeout(OperationalError("disk I/O error"))


def test_available_is_on_hand_while_nothing_is_reserved(make_product):
    make_product("A", stock=7)
    InventoryLedger().reserve_and_decrement([StockLine("A", 3)])

    product = Product.objects.get(sku="A")
    assert product.reserved == 0
    assert InventoryLedger().get_available("A") == product.stock == 4
