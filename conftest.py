from decimal import Decimal

import pytest
from django.contrib.auth.models import Permission
from rest_framework.test import APIClient

from apps.shop.models import Address, Customer, Product


@pytest.fixture(autouse=True)
def shop_config(settings):
    # pin pricing so tests do not depend on SHOP_* environment variables
    settings.SHOP = {"TAX_RATE": Decimal("0.10"), "SHIPPING_FEE": Decimal("10.00"), "LOCK_TIMEOUT": 5}
    return settings


@pytest.fixture
def customer(db):
    return Customer.objects.create(email="buyer@test.com", first_name="Minji", last_name="Park")


@pytest.fixture
def address(customer):
    return Address.objects.create(customer=customer, line1="1 Main St", city="Seoul", postal_code="04524", country="KR")


@pytest.fixture
def make_product(db):
    def make(sku, *, price="10.00", stock=10, name=None):
        return Product.objects.create(sku=sku, name=name or f"Product {sku}", price=Decimal(price), stock=stock)

    return make


@pytest.fixture
def api(django_user_model):
    user = django_user_model.objects.create_user(username="manager", password="pw")
    user.user_permissions.add(
        *Permission.objects.filter(content_type__app_label="shop", codename__in=["add_order", "change_order"])
    )
    client = APIClient()
    client.force_authenticate(user)
    return client


@pytest.fixture
def staff_api(django_user_model):
    user = django_user_model.objects.create_user(username="admin", password="pw", is_staff=True)
    client = APIClient()
    client.force_authenticate(user)
    return client


@pytest.fixture
def viewer_api(django_user_model):
    user = django_user_model.objects.create_user(username="viewer", password="pw")
    client = APIClient()
    client.force_authenticate(user)
    return client
