from django.urls import path

from . import views

urlpatterns = [
    path("orders/", views.orders_view, name="orders"),
    path("orders/<uuid:order_id>/", views.order_detail_view, name="order-detail"),
    path("products/<str:sku>/", views.product_detail_view, name="product-detail"),
]
