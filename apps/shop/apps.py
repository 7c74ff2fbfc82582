from django.apps import AppConfig


class ShopConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.shop"
    label = "shop"

    def ready(self):
        # connects the setting_changed receiver
        from . import conf  # noqa: F401
