"""Shop configuration snapshot read from ``settings.SHOP``.

The snapshot is cached per process and dropped whenever ``SHOP`` changes
(``override_settings`` / the pytest-django ``settings`` fixture) or when
``reload_shop_settings()`` is called.
"""
import functools
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

DEFAULTS = {
    "TAX_RATE": Decimal("0.10"),
    "SHIPPING_FEE": Decimal("10.00"),
    "LOCK_TIMEOUT": 5.0,
}


@dataclass(frozen=True)
class ShopSettings:
    tax_rate: Decimal
    shipping_fee: Decimal
    lock_timeout: float

    def __post_init__(self):
        if self.tax_rate < 0:
            raise ValueError("TAX_RATE must be non-negative")
        if self.shipping_fee < 0:
            raise ValueError("SHIPPING_FEE must be non-negative")
        if self.lock_timeout <= 0:
            raise ValueError("LOCK_TIMEOUT must be positive")


@functools.lru_cache(maxsize=1)
def get_shop_settings() -> ShopSettings:
    raw = {**DEFAULTS, **getattr(settings, "SHOP", {})}
    return ShopSettings(
        tax_rate=Decimal(str(raw["TAX_RATE"])),
        shipping_fee=Decimal(str(raw["SHIPPING_FEE"])),
        lock_timeout=float(raw["LOCK_TIMEOUT"]),
    )


def reload_shop_settings() -> ShopSettings:
    get_shop_settings.cache_clear()
    return get_shop_settings()


@receiver(setting_changed)
def _on_setting_changed(*, setting, **kwargs):
    if setting == "SHOP":
        get_shop_settings.cache_clear()
