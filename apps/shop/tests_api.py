import pytest
from rest_framework.test import APIClient

from .models import Order, OrderStatus, Product

pytestmark = pytest.mark.django_db


@pytest.fixture
def xy(make_product):
    make_product("X", price="10.00", stock=5)
    make_product("Y", price="20.00", stock=5)


def body(customer, *lines):
    return {
        "customer_id": str(customer.pk),
        "items": [{"sku": sku, "quantity": qty} for sku, qty in lines],
    }


def create(api, customer, *lines, **headers):
    return api.post("/api/orders/", body(customer, *lines), format="json", **headers)


def test_requires_authentication(customer, xy):
    res = APIClient().post("/api/orders/", body(customer, ("X", 1)), format="json")
    assert res.status_code == 403
    assert Order.objects.count() == 0


def test_create_returns_201_with_location(api, customer, xy):
    res = create(api, customer, ("X", 2), ("Y", 1))

    assert res.status_code == 201
    order = res.json()["order"]
    assert res["Location"] == f"/api/orders/{order['id']}/"
    assert order["status"] == "PENDING"
    assert (order["subtotal"], order["tax"], order["shipping"], order["total"]) == ("40.00", "4.00", "10.00", "54.00")
    assert [(i["sku"], i["quantity"], i["unit_price"]) for i in order["items"]] == [
        ("X", 2, "10.00"),
        ("Y", 1, "20.00"),
    ]


def test_create_validates_body(api, customer, xy):
    res = api.post("/api/orders/", {"customer_id": str(customer.pk), "items": []}, format="json")
    assert res.status_code == 400
    assert "items" in res.json()

    res = create(api, customer, ("X", 0))
    assert res.status_code == 400


def test_create_maps_domain_errors(api, customer, xy):
    res = create(api, customer, ("X", 6))
    assert res.status_code == 409
    assert res.json()["error"] == "insufficient_stock"

    res = create(api, customer, ("GHOST", 1))
    assert res.status_code == 404
    assert res.json()["error"] == "unknown_sku"

    assert Product.objects.get(sku="X").stock == 5


def test_idempotent_create(api, customer, xy):
    first = create(api, customer, ("X", 2), HTTP_IDEMPOTENCY_KEY="abc-1")
    second = create(api, customer, ("X", 2), HTTP_IDEMPOTENCY_KEY="abc-1")

    assert first.status_code == second.status_code == 201
    assert first.json() == second.json()
    assert Order.objects.count() == 1
    assert Product.objects.get(sku="X").stock == 3

    reused = create(api, customer, ("X", 1), HTTP_IDEMPOTENCY_KEY="abc-1")
    assert reused.status_code == 422


def test_get_order(api, customer, xy):
    order_id = create(api, customer, ("X", 1)).json()["order"]["id"]

    res = api.get(f"/api/orders/{order_id}/")
    assert res.status_code == 200
    assert res.json()["order"]["customer"]["email"] == customer.email

    assert api.get("/api/orders/5b6f1a9e-3d3c-4c8e-9a44-0f2b8f8f3b10/").status_code == 404


def test_patch_walks_the_state_machine(api, customer, xy):
    order_id = create(api, customer, ("X", 2)).json()["order"]["id"]
    url = f"/api/orders/{order_id}/"

    res = api.patch(url, {"status": "SHIPPED"}, format="json")
    assert res.status_code == 409
    assert res.json()["error"] == "invalid_transition"

    assert api.patch(url, {"status": "CONFIRMED"}, format="json").status_code == 200
    res = api.patch(url, {"status": "CANCELLED"}, format="json")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "CANCELLED"
    assert Product.objects.get(sku="X").stock == 5

    assert api.patch(url, {"status": "CANCELLED"}, format="json").status_code == 409
    assert api.patch(url, {"status": "LOST"}, format="json").status_code == 400


def test_patch_missing_order(api):
    res = api.patch("/api/orders/5b6f1a9e-3d3c-4c8e-9a44-0f2b8f8f3b10/", {"status": "CONFIRMED"}, format="json")
    assert res.status_code == 404


def test_delete_needs_staff_and_pending(api, staff_api, customer, xy):
    pending = create(api, customer, ("X", 2)).json()["order"]["id"]
    confirmed = create(api, customer, ("Y", 1)).json()["order"]["id"]
    api.patch(f"/api/orders/{confirmed}/", {"status": "CONFIRMED"}, format="json")

    assert api.delete(f"/api/orders/{pending}/").status_code == 403

    res = staff_api.delete(f"/api/orders/{confirmed}/")
    assert res.status_code == 409
    assert res.json()["error"] == "illegal_delete"

    assert staff_api.delete(f"/api/orders/{pending}/").status_code == 200
    assert not Order.objects.filter(pk=pending).exists()
    assert Product.objects.get(sku="X").stock == 5


def test_list_filters_and_paginates(api, customer, xy):
    ids = [create(api, customer, ("X", 1)).json()["order"]["id"] for _ in range(3)]
    api.patch(f"/api/orders/{ids[0]}/", {"status": "CONFIRMED"}, format="json")

    res = api.get("/api/orders/", {"limit": 2})
    assert res.status_code == 200
    assert len(res.json()["orders"]) == 2
    assert res.json()["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    res = api.get("/api/orders/", {"status": OrderStatus.CONFIRMED})
    assert [o["id"] for o in res.json()["orders"]] == [ids[0]]

    res = api.get("/api/orders/", {"search": "buyer@"})
    assert res.json()["pagination"]["total"] == 3


def test_product_endpoints(api, staff_api, customer, xy):
    res = api.get("/api/products/X/")
    assert res.status_code == 200
    assert res.json()["product"]["available"] == 5

    create(api, customer, ("X", 1))
    res = staff_api.delete("/api/products/X/")
    assert res.status_code == 409
    assert res.json()["error"] == "product_in_use"

    assert api.delete("/api/products/Y/").status_code == 403
    assert staff_api.delete("/api/products/Y/").status_code == 200
    assert api.get("/api/products/Y/").status_code == 404


def test_only_managers_and_staff_create_or_update(api, viewer_api, staff_api, customer, xy):
    res = create(viewer_api, customer, ("X", 1))
    assert res.status_code == 403
    assert Order.objects.count() == 0

    order_id = create(api, customer, ("X", 1)).json()["order"]["id"]
    url = f"/api/orders/{order_id}/"

    assert viewer_api.get(url).status_code == 200
    assert viewer_api.get("/api/orders/").status_code == 200
    assert viewer_api.patch(url, {"status": "CONFIRMED"}, format="json").status_code == 403
    assert staff_api.patch(url, {"status": "CONFIRMED"}, format="json").status_code == 200


def test_patch_payment_shipping_and_address(api, customer, address, xy):
    res = create(api, customer, ("X", 1))
    order = res.json()["order"]
    assert (order["payment_status"], order["shipping_status"]) == ("PENDING", "NOT_SHIPPED")
    url = f"/api/orders/{order['id']}/"

    res = api.patch(url, {"paymentStatus": "PAID", "shippingAddressId": address.pk}, format="json")
    assert res.status_code == 200
    assert res.json()["order"]["payment_status"] == "PAID"
    assert res.json()["order"]["shipping_address_id"] == address.pk

    res = api.patch(url, {"shippingStatus": "DELIVERED"}, format="json")
    assert res.status_code == 409
    assert res.json()["error"] == "invalid_transition"

    assert api.patch(url, {"paymentStatus": "LOST"}, format="json").status_code == 400
    assert api.patch(url, {"shippingAddressId": 999999}, format="json").status_code == 404
