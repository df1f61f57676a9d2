import logging

from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from apps.core.permissions import IsPartyOrStaff
from apps.core.views import BaseViewSet
from apps.orders.serializers import OrderSerializer

from .models import Offer
from .serializers import (
    OfferCounterSerializer,
    OfferDetailSerializer,
    OfferProposeSerializer,
    OfferRespondSerializer,
    OfferSerializer,
)
from .services import OfferService
from .utils.rate_limiting import (
    OfferProposeRateThrottle,
    OfferRateThrottle,
    OfferRespondRateThrottle,
)


class OfferViewSet(BaseViewSet):
    """
    Offers the current user made (as buyer) or received (as seller).

    - Propose: POST /offers/propose/
    - Counter: POST /offers/{id}/counter/ (seller)
    - Respond: POST /offers/{id}/respond/ (accept or decline)
    - Withdraw: POST /offers/{id}/withdraw/ (buyer)
    """

    logger = logging.getLogger("offers_performance")

    permission_classes = [IsAuthenticated, IsPartyOrStaff]
    filterset_fields = ["listing", "status"]

    def get_throttles(self):
        if self.action == "propose":
            throttle_classes = [OfferProposeRateThrottle]
        elif self.action in ("counter", "respond", "withdraw"):
            throttle_classes = [OfferRespondRateThrottle]
        else:
            throttle_classes = [OfferRateThrottle]
        return [throttle() for throttle in throttle_classes]

    def get_queryset(self):
        user = self.request.user
        queryset = Offer.objects.select_related("listing").order_by("-created_at")
        if self.action == "retrieve":
            queryset = queryset.prefetch_related("history")
        if user.is_staff:
            return queryset
        return queryset.filter(Q(buyer=user) | Q(seller=user))

    def get_serializer_class(self):
        if self.action == "retrieve":
            return OfferDetailSerializer
        if self.action == "propose":
            return OfferProposeSerializer
        if self.action == "counter":
            return OfferCounterSerializer
        if self.action == "respond":
            return OfferRespondSerializer
        return OfferSerializer

    @action(detail=False, methods=["post"])
    def propose(self, request):
        start_time = timezone.now()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        offer = OfferService.propose(
            listing=serializer.validated_data["listing"],
            buyer=request.user,
            amount=serializer.validated_data["amount"],
            message=serializer.validated_data.get("message"),
        )

        duration = (timezone.now() - start_time).total_seconds() * 1000
        self.logger.info(f"Proposed offer {offer.pk} via API in {duration:.2f}ms")
        return self.success_response(
            data=OfferSerializer(offer).data,
            message="Offer sent",
            status_code=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def counter(self, request, pk=None):
        offer = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        offer = OfferService.counter(
            offer, request.user, serializer.validated_data["counter_amount"]
        )
        return self.success_response(
            data=OfferSerializer(offer).data, message="Counter offer sent"
        )

    @action(detail=True, methods=["post"])
    def respond(self, request, pk=None):
        start_time = timezone.now()
        offer = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        decision = serializer.validated_data["decision"]
        offer, order = OfferService.respond(offer, request.user, decision)

        duration = (timezone.now() - start_time).total_seconds() * 1000
        self.logger.info(
            f"Offer {offer.pk} {decision} by {request.user.pk} in {duration:.2f}ms"
        )
        return self.success_response(
            data={
                "offer": OfferSerializer(offer).data,
                "order": OrderSerializer(order).data if order is not None else None,
            },
            message="Offer accepted" if decision == "accept" else "Offer declined",
        )

    @action(detail=True, methods=["post"])
    def withdraw(self, request, pk=None):
        offer = self.get_object()
        offer = OfferService.withdraw(offer, request.user)
        return self.success_response(
            data=OfferSerializer(offer).data, message="Offer withdrawn"
        )
