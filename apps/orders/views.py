import logging

from django.db.models import Q
from django.utils import timezone
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from apps.core.exceptions import ActionNotPermitted
from apps.core.permissions import IsPartyOrStaff
from apps.core.views import BaseViewSet
from apps.escrow.serializers import (
    EscrowHoldSerializer,
    ReleaseDecisionSerializer,
    escrow_status_payload,
)
from apps.escrow.services import EscrowHoldService

from .models import Order
from .serializers import (
    ConfirmDeliverySerializer,
    OrderDetailSerializer,
    OrderSerializer,
    ShipOrderSerializer,
)
from .services import DeliveryConfirmationService, OrderService
from .utils.rate_limiting import (
    EscrowStatusRateThrottle,
    OrderRateThrottle,
    OrderUpdateRateThrottle,
)


class OrderViewSet(BaseViewSet):
    """
    Orders materialized from accepted offers. Buyers see their purchases,
    sellers their sales.
    """

    logger = logging.getLogger("orders_performance")

    permission_classes = [IsAuthenticated, IsPartyOrStaff]
    filterset_fields = ["listing", "status"]

    def get_throttles(self):
        if self.action in ("escrow", "release_check"):
            throttle_classes = [EscrowStatusRateThrottle]
        elif self.action in ("confirm_delivery", "ship", "cancel"):
            throttle_classes = [OrderUpdateRateThrottle]
        else:
            throttle_classes = [OrderRateThrottle]
        return [throttle() for throttle in throttle_classes]

    def get_queryset(self):
        user = self.request.user
        queryset = Order.objects.select_related("listing").order_by("-created_at")
        if self.action == "retrieve":
            queryset = queryset.prefetch_related("tracking")
        if user.is_staff:
            return queryset
        return queryset.filter(Q(buyer=user) | Q(seller=user))

    def get_serializer_class(self):
        if self.action == "retrieve":
            return OrderDetailSerializer
        if self.action == "confirm_delivery":
            return ConfirmDeliverySerializer
        if self.action == "ship":
            return ShipOrderSerializer
        return OrderSerializer

    @action(detail=True, methods=["post"], url_path="confirm-delivery")
    def confirm_delivery(self, request, pk=None):
        start_time = timezone.now()
        order = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = DeliveryConfirmationService.confirm_delivery(
            order, request.user, photo_url=serializer.validated_data.get("photo_url")
        )
        status_data = escrow_status_payload(EscrowHoldService.get_escrow_status(order))

        duration = (timezone.now() - start_time).total_seconds() * 1000
        self.logger.info(f"Confirmed delivery of order {order.pk} via API in {duration:.2f}ms")
        return self.success_response(
            data={"order": OrderSerializer(order).data, **status_data},
            message="Delivery confirmed. Funds will be released after the hold period.",
        )

    @action(detail=True, methods=["get"])
    def escrow(self, request, pk=None):
        order = self.get_object()
        status_data = escrow_status_payload(EscrowHoldService.get_escrow_status(order))
        return self.success_response(data=status_data)

    @action(detail=True, methods=["post"], url_path="escrow/release-check")
    def release_check(self, request, pk=None):
        """
        Called when a client countdown reaches zero. The server decides
        whether the hold is due; the client timer is only advisory.
        """
        order = self.get_object()
        if request.user.pk not in (order.buyer_id, order.seller_id):
            raise ActionNotPermitted("You are not a party to this order.")

        hold, decision = EscrowHoldService.request_release(order)
        return self.success_response(
            data={
                "hold": EscrowHoldSerializer(hold).data,
                "decision": ReleaseDecisionSerializer(decision).data,
            }
        )

    @action(detail=True, methods=["post"])
    def ship(self, request, pk=None):
        order = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.mark_shipped(
            order,
            request.user,
            tracking_number=serializer.validated_data.get("tracking_number", ""),
            carrier=serializer.validated_data.get("carrier", ""),
        )
        return self.success_response(data=OrderSerializer(order).data, message="Order shipped")

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        order = self.get_object()
        order = OrderService.cancel(order, request.user)
        return self.success_response(
            data=OrderSerializer(order).data, message="Order cancelled"
        )
