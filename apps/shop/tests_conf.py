from decimal import Decimal

import pytest

from .conf import ShopSettings, get_shop_settings, reload_shop_settings


def test_snapshot_follows_settings_changes(settings):
    assert get_shop_settings().tax_rate == Decimal("0.10")

    settings.SHOP = {"TAX_RATE": "0.08", "SHIPPING_FEE": "5", "LOCK_TIMEOUT": "2.5"}

    cfg = get_shop_settings()
    assert cfg == ShopSettings(tax_rate=Decimal("0.08"), shipping_fee=Decimal("5"), lock_timeout=2.5)


def test_missing_keys_fall_back_to_defaults(settings):
    settings.SHOP = {"TAX_RATE": Decimal("0.2")}
    cfg = reload_shop_settings()
    assert cfg.shipping_fee == Decimal("10.00")
    assert cfg.lock_timeout == 5.0


def test_snapshot_is_cached_until_reload():
    assert get_shop_settings() is get_shop_settings()
    first = get_shop_settings()
    assert reload_shop_settings() is not first


def test_rejects_nonsense_values():
    with pytest.raises(ValueError):
        ShopSettings(tax_rate=Decimal("-0.1"), shipping_fee=Decimal("0"), lock_timeout=1)
    with pytest.raises(ValueError):
        ShopSettings(tax_rate=Decimal("0.1"), shipping_fee=Decimal("0"), lock_timeout=0)
