import pytest
from django.urls import reverse
from rest_framework import status

from apps.offers.models import Offer, OfferStatus
from apps.offers.services import OfferService
from apps.orders.models import Order


@pytest.mark.django_db
class TestOfferEndpoints:
    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse("offer-list"))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_propose(self, api_client, listing, buyer):
        api_client.force_authenticate(user=buyer)
        response = api_client.post(
            reverse("offer-propose"),
            {"listing": listing.pk, "amount": 80_000, "message": "Would you take R800?"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == "success"
        assert response.data["data"]["status"] == OfferStatus.PENDING
        assert response.data["data"]["agreed_amount"] == 80_000

    def test_propose_invalid_amount(self, api_client, listing, buyer):
        api_client.force_authenticate(user=buyer)
        response = api_client.post(
            reverse("offer-propose"),
            {"listing": listing.pk, "amount": 120_000},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["code"] == "invalid_amount"
        assert response.data["retryable"] is False

    def test_duplicate_offer_conflict(self, api_client, listing, buyer):
        OfferService.propose(listing, buyer, 80_000)
        api_client.force_authenticate(user=buyer)
        response = api_client.post(
            reverse("offer-propose"), {"listing": listing.pk, "amount": 85_000}, format="json"
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["code"] == "duplicate_active_offer"

    def test_list_only_shows_own_offers(self, api_client, listing, buyer, other_buyer, seller):
        OfferService.propose(listing, buyer, 80_000)
        OfferService.propose(listing, other_buyer, 70_000)

        api_client.force_authenticate(user=buyer)
        response = api_client.get(reverse("offer-list"))
        assert len(response.data["data"]) == 1

        api_client.force_authenticate(user=seller)
        response = api_client.get(reverse("offer-list"), {"listing": listing.pk})
        assert len(response.data["data"]) == 2

    def test_retrieve_includes_history(self, api_client, listing, buyer):
        offer = OfferService.propose(listing, buyer, 80_000)
        api_client.force_authenticate(user=buyer)

        response = api_client.get(reverse("offer-detail", args=[offer.pk]))
        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["listing_title"] == listing.title
        assert response.data["data"]["history"][0]["action"] == "offered"

    def test_outsider_cannot_see_offer(self, api_client, listing, buyer, other_buyer):
        offer = OfferService.propose(listing, buyer, 80_000)
        api_client.force_authenticate(user=other_buyer)

        response = api_client.get(reverse("offer-detail", args=[offer.pk]))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_counter_then_accept(self, api_client, listing, buyer, seller):
        offer = OfferService.propose(listing, buyer, 80_000)

        api_client.force_authenticate(user=seller)
        response = api_client.post(
            reverse("offer-counter", args=[offer.pk]), {"counter_amount": 90_000}, format="json"
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["status"] == OfferStatus.COUNTERED

        api_client.force_authenticate(user=buyer)
        response = api_client.post(
            reverse("offer-respond", args=[offer.pk]), {"decision": "accept"}, format="json"
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["offer"]["status"] == OfferStatus.ACCEPTED
        assert response.data["data"]["order"]["amount"] == 90_000

    def test_accept_twice_returns_same_order(self, api_client, listing, buyer, seller):
        offer = OfferService.propose(listing, buyer, 80_000)
        api_client.force_authenticate(user=seller)
        url = reverse("offer-respond", args=[offer.pk])

        first = api_client.post(url, {"decision": "accept"}, format="json")
        second = api_client.post(url, {"decision": "accept"}, format="json")

        assert second.status_code == status.HTTP_200_OK
        assert first.data["data"]["order"]["id"] == second.data["data"]["order"]["id"]
        assert Order.objects.count() == 1

    def test_withdraw_after_accept_is_rejected(self, api_client, listing, buyer, seller):
        offer = OfferService.propose(listing, buyer, 80_000)
        OfferService.respond(offer, seller, "accept")

        api_client.force_authenticate(user=buyer)
        response = api_client.post(reverse("offer-withdraw", args=[offer.pk]))
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["code"] == "invalid_offer_transition"
        assert Offer.objects.get(pk=offer.pk).status == OfferStatus.ACCEPTED

    def test_seller_cannot_withdraw(self, api_client, listing, buyer, seller):
        offer = OfferService.propose(listing, buyer, 80_000)
        api_client.force_authenticate(user=seller)
        response = api_client.post(reverse("offer-withdraw", args=[offer.pk]))
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["code"] == "action_not_permitted"
