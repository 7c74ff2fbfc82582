from rest_framework import serializers

from .models import Customer, Order, OrderItem, OrderStatus, PaymentStatus, Product, ShippingStatus


class OrderItemIn(serializers.Serializer):
    sku = serializers.CharField(max_length=50)
    quantity = serializers.IntegerField(min_value=1)


class OrderCreateIn(serializers.Serializer):
    customer_id = serializers.UUIDField()
    items = OrderItemIn(many=True)
    shipping_address_id = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_items(self, items):
        if not items:
            raise serializers.ValidationError("At least one item is required.")
        return items


class OrderUpdateIn(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    paymentStatus = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    shippingStatus = serializers.ChoiceField(choices=ShippingStatus.choices, required=False)
    shippingAddressId = serializers.IntegerField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Nothing to update.")
        return attrs


class OrderListQuery(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False, default=10)
    search = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    customerId = serializers.UUIDField(required=False)
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)


class CustomerOut(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ["id", "first_name", "last_name", "email"]


class OrderItemOut(serializers.ModelSerializer):
    sku = serializers.CharField(source="product.sku")
    name = serializers.CharField(source="product.name")

    class Meta:
        model = OrderItem
        fields = ["sku", "name", "quantity", "unit_price", "line_total"]


class OrderOut(serializers.ModelSerializer):
    customer = CustomerOut()
    items = OrderItemOut(many=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "payment_status",
            "shipping_status",
            "customer",
            "shipping_address_id",
            "notes",
            "items",
            "subtotal",
            "tax",
            "shipping",
            "total",
            "created_at",
            "updated_at",
        ]


class ProductOut(serializers.ModelSerializer):
    available = serializers.IntegerField(read_only=True)

    class Meta:
        model = Product
        fields = ["sku", "name", "price", "stock", "reserved", "available"]
