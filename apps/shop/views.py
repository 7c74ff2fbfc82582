import hashlib
import json
import math

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from . import services
from .locking import serialized
from .models import IdempotencyKey, Order, Product
from .permissions import CanManageOrders
from .serializers import OrderCreateIn, OrderListQuery, OrderOut, OrderUpdateIn, ProductOut


def _order_queryset():
    return Order.objects.select_related("customer").prefetch_related("items__product")


def _require_staff(request):
    if not request.user.is_staff:
        raise PermissionDenied("Insufficient permissions")


@api_view(["GET", "POST"])
@permission_classes([CanManageOrders])
def orders_view(request):
    if request.method == "POST":
        return _create_order(request)
    return _list_orders(request)


def _list_orders(request):
    query = OrderListQuery(data=request.query_params)
    query.is_valid(raise_exception=True)
    params = query.validated_data

    qs = _order_queryset()
    if params["search"]:
        term = params["search"]
        qs = qs.filter(
            Q(order_number__icontains=term)
            | Q(customer__email__icontains=term)
            | Q(customer__first_name__icontains=term)
            | Q(customer__last_name__icontains=term)
        )
    if "status" in params:
        qs = qs.filter(status=params["status"])
    if "customerId" in params:
        qs = qs.filter(customer_id=params["customerId"])
    if "startDate" in params:
        qs = qs.filter(created_at__gte=params["startDate"])
    if "endDate" in params:
        qs = qs.filter(created_at__lte=params["endDate"])

    page, limit = params["page"], params["limit"]
    total = qs.count()
    rows = qs[(page - 1) * limit : page * limit]
    return Response(
        {
            "orders": OrderOut(rows, many=True).data,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
        }
    )


def _create_order(request):
    ser = OrderCreateIn(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data

    idem = request.headers.get("Idempotency-Key")
    body_hash = hashlib.sha256(json.dumps(request.data, sort_keys=True, default=str).encode()).hexdigest()

    def place():
        order = services.create_order(
            customer_id=data["customer_id"],
            items=data["items"],
            shipping_address_id=data.get("shipping_address_id"),
            notes=data["notes"],
        )
        return order, {"order": OrderOut(_order_queryset().get(pk=order.pk)).data}

    if idem:
        with serialized():
            rec, created = IdempotencyKey.objects.select_for_update().get_or_create(
                key=idem,
                user=request.user,
                defaults={"request_hash": body_hash, "status_code": 0, "response_body": {}},
            )
            if not created and rec.status_code:
                if rec.request_hash != body_hash:
                    return Response(
                        {"error": "idempotency_conflict", "detail": "Idempotency-Key reused with a different body."},
                        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    )
                return Response(rec.response_body, status=rec.status_code)

            order, payload = place()
            rec.request_hash, rec.response_body, rec.status_code = body_hash, payload, status.HTTP_201_CREATED
            rec.save(update_fields=["request_hash", "response_body", "status_code"])
    else:
        order, payload = place()

    headers = {"Location": f"/api/orders/{order.pk}/"}
    return Response(payload, status=status.HTTP_201_CREATED, headers=headers)


@api_view(["GET", "PATCH", "PUT", "DELETE"])
@permission_classes([CanManageOrders])
def order_detail_view(request, order_id):
    if request.method == "GET":
        order = get_object_or_404(_order_queryset(), pk=order_id)
        return Response({"order": OrderOut(order).data})

    if request.method == "DELETE":
        _require_staff(request)
        services.delete_order(order_id=order_id)
        return Response({"message": "Order deleted successfully"})

    ser = OrderUpdateIn(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data
    services.transition_order(
        order_id=order_id,
        status=data.get("status"),
        notes=data.get("notes"),
        payment_status=data.get("paymentStatus"),
        shipping_status=data.get("shippingStatus"),
        shipping_address_id=data.get("shippingAddressId"),
    )
    return Response({"order": OrderOut(_order_queryset().get(pk=order_id)).data})


@api_view(["GET", "DELETE"])
@permission_classes([IsAuthenticated])
def product_detail_view(request, sku):
    if request.method == "DELETE":
        _require_staff(request)
        services.delete_product(sku=sku)
        return Response({"message": "Product deleted successfully"})

    product = get_object_or_404(Product, sku=sku)
    return Response({"product": ProductOut(product).data})
