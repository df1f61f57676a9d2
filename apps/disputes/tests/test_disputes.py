from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.contrib.auth import get_user_model
from django.test import TestCase

from apps.core.exceptions import ActionNotPermitted, DisputeError, OrderStateError
from apps.disputes.models import Dispute, DisputeStatus
from apps.disputes.services import DisputeService
from apps.escrow.models import EscrowHold, EscrowHoldStatus
from apps.escrow.services import BLOCKED, RELEASE, EscrowHoldService
from apps.listings.models import Listing
from apps.offers.services import OfferService
from apps.orders.models import OrderStatus
from apps.orders.services import DeliveryConfirmationService, OrderService

User = get_user_model()

T = datetime(2026, 3, 2, 9, 0, tzinfo=dt_timezone.utc)


class DisputeServiceTest(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller", password="testpass123")
        self.buyer = User.objects.create_user(username="buyer", password="testpass123")
        self.outsider = User.objects.create_user(username="outsider", password="testpass123")
        self.staff = User.objects.create_user(
            username="staff", password="testpass123", is_staff=True
        )
        self.listing = Listing.objects.create(
            seller=self.seller, title="Road bike", price=100_000
        )
        offer = OfferService.propose(self.listing, self.buyer, 80_000)
        _, order = OfferService.respond(offer, self.seller, "accept")
        order = OrderService.mark_paid(order)
        order = OrderService.mark_shipped(order, self.seller)
        self.order = DeliveryConfirmationService.confirm_delivery(order, self.buyer, now=T)
        self.hold = EscrowHold.objects.get(order=self.order)

    def open(self, user=None):
        return DisputeService.open_dispute(
            self.order,
            user or self.buyer,
            "item_not_as_described",
            "The frame is cracked",
            evidence_urls=["https://cdn.example.com/crack.jpg"],
        )

    def test_open_dispute_pauses_hold(self):
        dispute = self.open()

        self.assertEqual(dispute.status, DisputeStatus.OPEN)
        self.hold.refresh_from_db()
        self.assertEqual(self.hold.status, EscrowHoldStatus.DISPUTED)
        self.assertEqual(self.hold.release_at, T + timedelta(hours=48))

    def test_seller_may_open_dispute(self):
        self.assertEqual(self.open(self.seller).raised_by, self.seller)

    def test_outsider_cannot_open_dispute(self):
        with self.assertRaises(ActionNotPermitted):
            self.open(self.outsider)

    def test_one_active_dispute_per_order(self):
        self.open()
        with self.assertRaises(DisputeError):
            self.open()
        self.assertEqual(Dispute.objects.filter(order=self.order).count(), 1)

    def test_cannot_dispute_released_funds(self):
        EscrowHoldService.auto_release(self.hold, T + timedelta(hours=49))
        with self.assertRaises(DisputeError):
            self.open()

    def test_cannot_dispute_unshipped_order(self):
        listing = Listing.objects.create(seller=self.seller, title="Helmet", price=20_000)
        offer = OfferService.propose(listing, self.buyer, 15_000)
        _, order = OfferService.respond(offer, self.seller, "accept")
        with self.assertRaises(OrderStateError):
            DisputeService.open_dispute(order, self.buyer, "other", "Changed my mind")

    def test_only_staff_reviews(self):
        dispute = self.open()
        with self.assertRaises(ActionNotPermitted):
            DisputeService.start_review(dispute, self.buyer)
        reviewed = DisputeService.start_review(dispute, self.staff)
        self.assertEqual(reviewed.status, DisputeStatus.UNDER_REVIEW)

    def test_no_refund_resumes_original_clock(self):
        dispute = self.open()
        DisputeService.resolve_dispute(
            dispute, self.staff, DisputeStatus.RESOLVED_NO_REFUND, "Item as described"
        )

        self.hold.refresh_from_db()
        self.assertEqual(self.hold.status, EscrowHoldStatus.PENDING)
        self.assertEqual(self.hold.release_at, T + timedelta(hours=48))

    def test_full_refund_releases_to_buyer(self):
        dispute = self.open()
        resolved = DisputeService.resolve_dispute(
            dispute, self.staff, DisputeStatus.RESOLVED_REFUND, "Damaged in transit"
        )

        self.assertEqual(resolved.resolution_amount, 80_000)
        self.assertEqual(resolved.resolved_by, self.staff)
        self.hold.refresh_from_db()
        self.assertEqual(self.hold.status, EscrowHoldStatus.RELEASED)
        self.assertTrue(self.hold.release_conditions["admin_refunded"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.REFUNDED)

    def test_partial_refund_splits_hold(self):
        dispute = self.open()
        DisputeService.resolve_dispute(
            dispute,
            self.staff,
            DisputeStatus.RESOLVED_PARTIAL_REFUND,
            "Minor scuffs",
            refund_amount=20_000,
        )

        self.hold.refresh_from_db()
        self.assertEqual(self.hold.release_conditions["refund_amount"], 20_000)
        self.assertEqual(self.hold.release_conditions["seller_amount"], 60_000)

    def test_resolved_dispute_cannot_be_resolved_again(self):
        dispute = self.open()
        DisputeService.resolve_dispute(dispute, self.staff, DisputeStatus.CLOSED)
        with self.assertRaises(DisputeError):
            DisputeService.resolve_dispute(dispute, self.staff, DisputeStatus.CLOSED)

    def test_only_staff_resolves(self):
        dispute = self.open()
        with self.assertRaises(ActionNotPermitted):
            DisputeService.resolve_dispute(dispute, self.buyer, DisputeStatus.CLOSED)

    def test_user_disputes_are_scoped_to_parties(self):
        self.open()
        self.assertEqual(DisputeService.get_user_disputes(self.seller).count(), 1)
        self.assertEqual(DisputeService.get_user_disputes(self.outsider).count(), 0)


@pytest.mark.django_db
def test_dispute_pause_and_resume_timeline(listing, buyer, seller, staff_user):
    """Delivered at T, disputed at T+10h, closed at T+50h."""
    offer = OfferService.propose(listing, buyer, 80_000)
    _, order = OfferService.respond(offer, seller, "accept")
    order = OrderService.mark_shipped(OrderService.mark_paid(order), seller)
    order = DeliveryConfirmationService.confirm_delivery(order, buyer, now=T)
    hold = EscrowHold.objects.get(order=order)
    assert hold.release_at == T + timedelta(hours=48)
    assert hold.status == EscrowHoldStatus.PENDING

    dispute = DisputeService.open_dispute(order, buyer, "damaged", "Bent wheel")
    hold.refresh_from_db()
    assert EscrowHoldService.evaluate_release(hold, T + timedelta(hours=49)).action == BLOCKED

    DisputeService.resolve_dispute(dispute, staff_user, DisputeStatus.CLOSED)
    hold.refresh_from_db()
    assert EscrowHoldService.evaluate_release(hold, T + timedelta(hours=50)).action == RELEASE
