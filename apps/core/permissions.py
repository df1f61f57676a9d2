from rest_framework import permissions


class IsPartyOrStaff(permissions.BasePermission):
    """
    Object access limited to the buyer and seller of a record, or staff.

    Offers, orders and escrow holds carry ``buyer_id``/``seller_id``
    themselves; disputes are checked through their order.
    """

    def has_object_permission(self, request, view, obj):
        if request.user.is_staff:
            return True
        if not hasattr(obj, "buyer_id"):
            obj = obj.order
        return request.user.pk in (obj.buyer_id, obj.seller_id)
