from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

import pytest

from apps.core.exceptions import DisputeError, OrderStateError
from apps.disputes.services import DisputeService
from apps.escrow.models import EscrowHold, EscrowHoldStatus
from apps.escrow.services import (
    BLOCKED,
    RELEASE,
    RELEASED,
    RESOLUTION_REFUND,
    RESOLUTION_RELEASE,
    RESOLUTION_SPLIT,
    WAIT,
    EscrowHoldService,
)
from apps.offers.services import OfferService
from apps.orders.services import DeliveryConfirmationService, OrderService

pytestmark = pytest.mark.django_db

T = datetime(2026, 3, 2, 9, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def shipped_order(listing, buyer, seller):
    offer = OfferService.propose(listing, buyer, 80_000)
    _, order = OfferService.respond(offer, seller, "accept")
    order = OrderService.mark_paid(order)
    return OrderService.mark_shipped(order, seller)


@pytest.fixture
def delivered_order(shipped_order, buyer):
    return DeliveryConfirmationService.confirm_delivery(shipped_order, buyer, now=T)


@pytest.fixture
def hold(delivered_order):
    return EscrowHold.objects.get(order=delivered_order)


class TestStartHold:
    def test_hold_amounts_and_clock(self, hold):
        assert hold.amount == 80_000
        assert hold.commission_amount == 8_000
        assert hold.net_seller_amount == 72_000
        assert hold.release_at == T + timedelta(hours=48)
        assert hold.release_conditions["delivery_confirmed"] is True

    def test_start_hold_is_idempotent(self, hold, delivered_order):
        again = EscrowHoldService.start_hold(delivered_order, T + timedelta(hours=5))
        assert again.pk == hold.pk
        assert again.release_at == T + timedelta(hours=48)
        assert EscrowHold.objects.count() == 1

    def test_hold_starts_disputed_when_dispute_already_open(
        self, shipped_order, buyer
    ):
        DisputeService.open_dispute(shipped_order, buyer, "item_not_received", "Nothing yet")
        shipped_order.refresh_from_db()
        delivered = DeliveryConfirmationService.confirm_delivery(shipped_order, buyer, now=T)

        hold = EscrowHold.objects.get(order=delivered)
        assert hold.status == EscrowHoldStatus.DISPUTED
        assert hold.release_conditions["no_active_dispute"] is False


class TestEvaluateRelease:
    def test_wait_then_release(self, hold):
        decision = EscrowHoldService.evaluate_release(hold, T + timedelta(hours=47))
        assert decision.action == WAIT
        assert decision.remaining_seconds == 3600

        assert EscrowHoldService.evaluate_release(hold, T + timedelta(hours=48)).action == RELEASE

    def test_dispute_blocks_without_moving_clock(self, hold):
        paused = EscrowHoldService.open_dispute(hold)
        decision = EscrowHoldService.evaluate_release(paused, T + timedelta(hours=49))

        assert decision.action == BLOCKED
        assert paused.release_at == T + timedelta(hours=48)

    def test_resume_keeps_original_release_time(self, hold):
        paused = EscrowHoldService.open_dispute(hold)
        resumed = EscrowHoldService.close_dispute(paused)

        assert resumed.status == EscrowHoldStatus.PENDING
        assert resumed.release_at == T + timedelta(hours=48)
        assert EscrowHoldService.evaluate_release(resumed, T + timedelta(hours=50)).action == RELEASE


class TestAutoRelease:
    def test_releases_due_hold(self, hold):
        released = EscrowHoldService.auto_release(hold, T + timedelta(hours=48, minutes=1))

        assert released.status == EscrowHoldStatus.RELEASED
        assert released.released_at == T + timedelta(hours=48, minutes=1)
        assert released.release_conditions["auto_released"] is True
        assert released.release_conditions["dispute_window_passed"] is True

    def test_not_due_is_noop(self, hold):
        current = EscrowHoldService.auto_release(hold, T + timedelta(hours=10))
        assert current.status == EscrowHoldStatus.PENDING
        assert current.released_at is None

    def test_disputed_is_noop(self, hold):
        paused = EscrowHoldService.open_dispute(hold)
        current = EscrowHoldService.auto_release(paused, T + timedelta(hours=72))
        assert current.status == EscrowHoldStatus.DISPUTED

    def test_release_is_idempotent(self, hold):
        when = T + timedelta(hours=49)
        first = EscrowHoldService.auto_release(hold, when)
        second = EscrowHoldService.auto_release(hold, when + timedelta(hours=1))

        assert second.status == EscrowHoldStatus.RELEASED
        assert second.released_at == first.released_at

    def test_released_hold_cannot_be_disputed(self, hold):
        released = EscrowHoldService.auto_release(hold, T + timedelta(hours=49))
        with pytest.raises(DisputeError):
            EscrowHoldService.open_dispute(released)


class TestRequestRelease:
    def test_early_request_only_reports_wait(self, hold, delivered_order):
        current, decision = EscrowHoldService.request_release(
            delivered_order, now=T + timedelta(hours=1)
        )
        assert decision.action == WAIT
        assert current.status == EscrowHoldStatus.PENDING

    def test_due_request_releases(self, hold, delivered_order):
        current, decision = EscrowHoldService.request_release(
            delivered_order, now=T + timedelta(hours=48)
        )
        assert decision.action == RELEASED
        assert current.status == EscrowHoldStatus.RELEASED

    def test_order_without_hold(self, shipped_order):
        with pytest.raises(OrderStateError):
            EscrowHoldService.request_release(shipped_order)


class TestForceRelease:
    def test_refund(self, hold):
        paused = EscrowHoldService.open_dispute(hold)
        released = EscrowHoldService.force_release(paused, RESOLUTION_REFUND)

        assert released.status == EscrowHoldStatus.RELEASED
        assert released.release_conditions["refund_amount"] == 80_000
        assert released.release_conditions["seller_amount"] == 0
        assert released.commission_amount == 0

    def test_split(self, hold):
        paused = EscrowHoldService.open_dispute(hold)
        released = EscrowHoldService.force_release(paused, RESOLUTION_SPLIT, 30_000)

        assert released.release_conditions["refund_amount"] == 30_000
        assert released.release_conditions["seller_amount"] == 50_000
        # 50,000 is the bottom of the 10% tier
        assert released.commission_amount == 5_000
        assert released.net_seller_amount == 45_000

    @pytest.mark.parametrize("refund_amount", [None, 0, 80_000])
    def test_split_needs_partial_amount(self, hold, refund_amount):
        paused = EscrowHoldService.open_dispute(hold)
        with pytest.raises(DisputeError):
            EscrowHoldService.force_release(paused, RESOLUTION_SPLIT, refund_amount)

    def test_only_disputed_holds(self, hold):
        with pytest.raises(DisputeError):
            EscrowHoldService.force_release(hold, RESOLUTION_RELEASE)


class TestEscrowStatus:
    def test_status_for_order_with_hold(self, hold, delivered_order):
        status = EscrowHoldService.get_escrow_status(delivered_order, now=T)
        assert status["hold"].pk == hold.pk
        assert status["active_dispute"] is None
        assert status["decision"].action == WAIT

    def test_missing_hold_is_repaired_on_read(self, shipped_order, buyer):
        with mock.patch(
            "apps.escrow.services.EscrowHoldService.start_hold",
            side_effect=RuntimeError("down"),
        ), mock.patch("apps.escrow.tasks.create_escrow_hold_for_order.apply_async"):
            delivered = DeliveryConfirmationService.confirm_delivery(
                shipped_order, buyer, now=T
            )
        assert not EscrowHold.objects.exists()

        status = EscrowHoldService.get_escrow_status(delivered, now=T)
        assert status["hold"] is not None
        assert status["hold"].release_at == T + timedelta(hours=48)

    def test_no_hold_before_delivery(self, shipped_order):
        status = EscrowHoldService.get_escrow_status(shipped_order)
        assert status["hold"] is None
        assert status["decision"] is None
