from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("shop", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="order",
            name="payment_status",
            field=models.CharField(
                choices=[
                    ("PENDING", "Pending"),
                    ("PAID", "Paid"),
                    ("FAILED", "Failed"),
                    ("REFUNDED", "Refunded"),
                ],
                default="PENDING",
                max_length=20,
            ),
        ),
        migrations.AddField(
            model_name="order",
            name="shipping_status",
            field=models.CharField(
                choices=[
                    ("NOT_SHIPPED", "Not shipped"),
                    ("SHIPPED", "Shipped"),
                    ("IN_TRANSIT", "In transit"),
                    ("DELIVERED", "Delivered"),
                ],
                default="NOT_SHIPPED",
                max_length=20,
            ),
        ),
        migrations.AddConstraint(
            model_name="order",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    total__gte=models.F("subtotal") + models.F("tax") + models.F("shipping") - Decimal("0.005")
                )
                & models.Q(
                    total__lte=models.F("subtotal") + models.F("tax") + models.F("shipping") + Decimal("0.005")
                ),
                name="order_total_is_sum_of_parts",
            ),
        ),
    ]
