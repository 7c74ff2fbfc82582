from rest_framework.permissions import SAFE_METHODS, BasePermission

# method -> model permission a manager needs; staff users pass without it
ORDER_PERMS = {
    "POST": "shop.add_order",
    "PUT": "shop.change_order",
    "PATCH": "shop.change_order",
}


class CanManageOrders(BasePermission):
    """Reads for any signed-in user; creating and updating orders for staff and managers."""

    message = "Insufficient permissions"

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        if request.method in SAFE_METHODS or request.method == "DELETE":
            return True
        perm = ORDER_PERMS.get(request.method)
        return user.is_staff or (perm is not None and user.has_perm(perm))
