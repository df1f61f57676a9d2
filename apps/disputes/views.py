import logging

from django.db.models import Q
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.decorators import action

from apps.core.exceptions import ResourceNotFound
from apps.core.permissions import IsPartyOrStaff
from apps.core.views import BaseViewSet
from apps.orders.models import Order

from .models import Dispute
from .serializers import (
    DisputeCreateSerializer,
    DisputeResolutionSerializer,
    DisputeSerializer,
)
from .services import DisputeService
from .utils.rate_limiting import DisputeRateThrottle

logger = logging.getLogger("dispute_performance")


class DisputeViewSet(BaseViewSet):
    """
    ViewSet for managing disputes
    - Create: POST /disputes/
    - List: GET /disputes/
    - Detail: GET /disputes/{id}/
    - Review: POST /disputes/{id}/review/ (staff only)
    - Resolve: POST /disputes/{id}/resolve/ (staff only)
    """

    permission_classes = [permissions.IsAuthenticated, IsPartyOrStaff]
    filterset_fields = ["status", "reason", "order"]

    def get_serializer_class(self):
        if self.action == "create":
            return DisputeCreateSerializer
        elif self.action == "resolve":
            return DisputeResolutionSerializer
        return DisputeSerializer

    def get_throttles(self):
        """Apply rate limiting to create action"""
        if self.action == "create":
            return [DisputeRateThrottle()]
        return []

    def get_queryset(self):
        """Filter queryset based on user permissions"""
        user = self.request.user
        queryset = Dispute.objects.select_related("order", "raised_by", "resolved_by")
        if user.is_staff:
            return queryset.order_by("-created_at")
        # Users can only see disputes on their own orders
        return queryset.filter(
            Q(order__buyer=user) | Q(order__seller=user)
        ).order_by("-created_at")

    def create(self, request, *args, **kwargs):
        """Open a dispute on a shipped or delivered order"""
        start_time = timezone.now()

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = Order.objects.filter(pk=serializer.validated_data["order"]).first()
        if order is None:
            raise ResourceNotFound("Order not found.")

        dispute = DisputeService.open_dispute(
            order=order,
            user=request.user,
            reason=serializer.validated_data["reason"],
            description=serializer.validated_data["description"],
            evidence_urls=serializer.validated_data.get("evidence_urls"),
        )

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(f"Created dispute via API in {duration:.2f}ms")

        return self.success_response(
            data=DisputeSerializer(dispute).data,
            message="Dispute opened. Escrow release is paused until it is resolved.",
            status_code=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def review(self, request, pk=None):
        """Move a dispute under staff review"""
        dispute = self.get_object()
        dispute = DisputeService.start_review(dispute, request.user)
        return self.success_response(data=DisputeSerializer(dispute).data)

    @action(detail=True, methods=["post"])
    def resolve(self, request, pk=None):
        """Resolve a dispute (admin/staff only)"""
        dispute = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        resolved_dispute = DisputeService.resolve_dispute(
            dispute,
            resolver_user=request.user,
            status=serializer.validated_data["status"],
            resolution_note=serializer.validated_data.get("resolution_note", ""),
            refund_amount=serializer.validated_data.get("refund_amount"),
        )
        return self.success_response(
            data=DisputeSerializer(resolved_dispute).data, message="Dispute resolved"
        )
