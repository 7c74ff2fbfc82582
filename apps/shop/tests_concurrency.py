import threading

import pytest
from django.db import connection, transaction

from . import services
from .exceptions import ConcurrencyTimeoutError, InsufficientStockError
from .models import Order, Product

# threads need committed data and their own connections
pytestmark = pytest.mark.django_db(transaction=True)


def run_concurrently(fn, n):
    barrier = threading.Barrier(n)
    results = []
    lock = threading.Lock()

    def worker():
        try:
            barrier.wait()
            fn()
            outcome = "ok"
        except InsufficientStockError:
            outcome = "insufficient"
        except Exception as exc:
            outcome = repr(exc)
        finally:
            connection.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return sorted(results)


def test_two_buyers_cannot_both_take_the_last_units(customer, make_product):
    make_product("X", stock=5)

    results = run_concurrently(
        lambda: services.create_order(customer_id=customer.pk, items=[{"sku": "X", "quantity": 3}]), 2
    )

    assert results == ["insufficient", "ok"]
    assert Product.objects.get(sku="X").stock == 2
    assert Order.objects.count() == 1


def test_stock_never_goes_negative_under_load(customer, make_product):
    make_product("A", stock=4)
    make_product("B", stock=10)

    results = run_concurrently(
        lambda: services.create_order(
            customer_id=customer.pk, items=[{"sku": "B", "quantity": 1}, {"sku": "A", "quantity": 1}]
        ),
        6,
    )

    assert results.count("ok") == 4
    assert results.count("insufficient") == 2
    assert Product.objects.get(sku="A").stock == 0
    assert Product.objects.get(sku="B").stock == 6


def test_blocked_writer_times_out(customer, make_product):
    make_product("X", stock=5)
    outcome = []

    def buyer():
        try:
            services.create_order(customer_id=customer.pk, items=[{"sku": "X", "quantity": 1}])
        except ConcurrencyTimeoutError as exc:
            outcome.append(exc)
        finally:
            connection.close()

    # hold the write lock past the busy timeout
    with transaction.atomic():
        Product.objects.filter(sku="X").update(name="held")
        t = threading.Thread(target=buyer)
        t.start()
        t.join()

    assert len(outcome) == 1
    assert Product.objects.get(sku="X").stock == 5
