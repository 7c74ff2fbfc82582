"""Inventory ledger: the only code allowed to change ``Product.stock``.

Decrements are all-or-nothing across the whole set of lines. Rows are locked
in primary-key order, then every line is checked before anything is written,
and each write is a conditional ``UPDATE ... WHERE stock - reserved >= qty``
so the database itself refuses to go below zero.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable

from django.db.models import F

from .exceptions import InsufficientStockError, UnknownSkuError
from .locking import serialized
from .models import Product

logger = logging.getLogger("shop")


@dataclass(frozen=True)
class StockLine:
    sku: str
    quantity: int

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"quantity must be positive (sku {self.sku})")


def _merge(lines: Iterable[StockLine]) -> "OrderedDict[str, int]":
    """Sum quantities per SKU, keeping first-seen order."""
    merged: OrderedDict[str, int] = OrderedDict()
    for line in lines:
        merged[line.sku] = merged.get(line.sku, 0) + line.quantity
    return merged


class InventoryLedger:
    def reserve_and_decrement(self, lines: Iterable[StockLine]) -> None:
        wanted = _merge(lines)
        if not wanted:
            return
        with serialized():
            # fixed lock order (pk) so overlapping orders cannot deadlock
            locked = {
                p.sku: p
                for p in Product.objects.select_for_update().filter(sku__in=wanted.keys()).order_by("pk")
            }
            for sku, qty in wanted.items():
                product = locked.get(sku)
                if product is None:
                    raise UnknownSkuError(sku)
                if product.available < qty:
                    logger.warning("insufficient stock: %s requested=%s available=%s", sku, qty, product.available)
                    raise InsufficientStockError(sku, qty, product.available)

            for sku, qty in wanted.items():
                updated = Product.objects.filter(
                    pk=locked[sku].pk, stock__gte=F("reserved") + qty
                ).update(stock=F("stock") - qty)
                if not updated:
                    # row changed under a backend without row locks
                    current = self.get_available(sku)
                    logger.warning("insufficient stock: %s requested=%s available=%s", sku, qty, current)
                    raise InsufficientStockError(sku, qty, current)

    def restore(self, lines: Iterable[StockLine]) -> None:
        """Give stock back. Callers must call this exactly once per decrement."""
        wanted = _merge(lines)
        if not wanted:
            return
        with serialized():
            for sku, qty in wanted.items():
                if not Product.objects.filter(sku=sku).update(stock=F("stock") + qty):
                    raise UnknownSkuError(sku)
        logger.info("stock restored: %s", dict(wanted))

    def get_available(self, sku: str) -> int:
        """``stock - reserved``; nothing in this app reserves yet, so this is the on-hand count."""
        try:
            product = Product.objects.only("stock", "reserved").get(sku=sku)
        except Product.DoesNotExist:
            raise UnknownSkuError(sku) from None
        return product.available


ledger = InventoryLedger()
