from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from apps.escrow.models import EscrowHold, EscrowHoldStatus
from apps.offers.services import OfferService
from apps.orders.models import Order, OrderStatus, TrackingStatus
from apps.orders.services import OrderService

pytestmark = pytest.mark.django_db


@pytest.fixture
def shipped_order(listing, buyer, seller):
    offer = OfferService.propose(listing, buyer, 80_000)
    _, order = OfferService.respond(offer, seller, "accept")
    order = OrderService.mark_paid(order, payment_reference="PAY-1")
    return OrderService.mark_shipped(order, seller, tracking_number="TRK1")


class TestNegotiationToEscrow:
    def test_offer_counter_accept_deliver(self, api_client, listing, buyer, seller):
        api_client.force_authenticate(user=buyer)
        response = api_client.post(
            reverse("offer-propose"), {"listing": listing.pk, "amount": 80_000}, format="json"
        )
        offer_id = response.data["data"]["id"]

        api_client.force_authenticate(user=seller)
        api_client.post(
            reverse("offer-counter", args=[offer_id]), {"counter_amount": 90_000}, format="json"
        )

        api_client.force_authenticate(user=buyer)
        response = api_client.post(
            reverse("offer-respond", args=[offer_id]), {"decision": "accept"}, format="json"
        )
        order_data = response.data["data"]["order"]
        assert order_data["amount"] == 90_000
        assert order_data["service_fee"] == 9_000
        assert Order.objects.filter(offer_id=offer_id).count() == 1

        order = Order.objects.get(pk=order_data["id"])
        OrderService.mark_paid(order)
        api_client.force_authenticate(user=seller)
        response = api_client.post(reverse("order-ship", args=[order.pk]), {}, format="json")
        assert response.data["data"]["status"] == OrderStatus.SHIPPED

        api_client.force_authenticate(user=buyer)
        response = api_client.post(
            reverse("order-confirm-delivery", args=[order.pk]), {}, format="json"
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["order"]["status"] == OrderStatus.DELIVERED
        hold = response.data["data"]["hold"]
        assert hold["status"] == EscrowHoldStatus.PENDING
        assert hold["amount"] == 90_000
        assert response.data["data"]["decision"]["action"] == "wait"


class TestOrderEndpoints:
    def test_list_is_scoped_to_parties(self, api_client, shipped_order, other_buyer, seller):
        api_client.force_authenticate(user=other_buyer)
        assert api_client.get(reverse("order-list")).data["data"] == []

        api_client.force_authenticate(user=seller)
        response = api_client.get(reverse("order-list"))
        assert [o["id"] for o in response.data["data"]] == [str(shipped_order.pk)]

    def test_retrieve_has_tracking(self, api_client, shipped_order, buyer):
        api_client.force_authenticate(user=buyer)
        response = api_client.get(reverse("order-detail", args=[shipped_order.pk]))

        assert response.status_code == status.HTTP_200_OK
        statuses = [t["status"] for t in response.data["data"]["tracking"]]
        assert TrackingStatus.SHIPPED in statuses

    def test_seller_cannot_confirm_delivery(self, api_client, shipped_order, seller):
        api_client.force_authenticate(user=seller)
        response = api_client.post(
            reverse("order-confirm-delivery", args=[shipped_order.pk]), {}, format="json"
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not EscrowHold.objects.exists()

    def test_confirm_twice_conflicts(self, api_client, shipped_order, buyer):
        api_client.force_authenticate(user=buyer)
        url = reverse("order-confirm-delivery", args=[shipped_order.pk])
        api_client.post(url, {}, format="json")

        response = api_client.post(url, {}, format="json")
        assert response.status_code == status.HTTP_409_CONFLICT
        assert EscrowHold.objects.count() == 1

    def test_escrow_status_without_hold(self, api_client, shipped_order, buyer):
        api_client.force_authenticate(user=buyer)
        response = api_client.get(reverse("order-escrow", args=[shipped_order.pk]))
        assert response.data["data"] == {"hold": None, "active_dispute": None, "decision": None}

    def test_release_check_before_due_waits(self, api_client, shipped_order, buyer):
        api_client.force_authenticate(user=buyer)
        api_client.post(
            reverse("order-confirm-delivery", args=[shipped_order.pk]), {}, format="json"
        )

        response = api_client.post(reverse("order-release-check", args=[shipped_order.pk]))
        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["decision"]["action"] == "wait"
        assert response.data["data"]["hold"]["status"] == EscrowHoldStatus.PENDING

    def test_release_check_after_due_releases(self, api_client, shipped_order, seller):
        Order.objects.filter(pk=shipped_order.pk).update(
            status=OrderStatus.DELIVERED,
            delivery_confirmed_at=timezone.now() - timedelta(hours=49),
        )

        api_client.force_authenticate(user=seller)
        response = api_client.post(reverse("order-release-check", args=[shipped_order.pk]))

        assert response.data["data"]["hold"]["status"] == EscrowHoldStatus.RELEASED
        assert response.data["data"]["decision"]["action"] == "released"

    def test_release_check_without_hold(self, api_client, shipped_order, buyer):
        api_client.force_authenticate(user=buyer)
        response = api_client.post(reverse("order-release-check", args=[shipped_order.pk]))
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["code"] == "order_state_error"

    def test_cancel_shipped_order_conflicts(self, api_client, shipped_order, buyer):
        api_client.force_authenticate(user=buyer)
        response = api_client.post(reverse("order-cancel", args=[shipped_order.pk]))
        assert response.status_code == status.HTTP_409_CONFLICT
