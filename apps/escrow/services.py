import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.exceptions import AlreadyHeld, DisputeError, OrderStateError
from apps.disputes.models import ACTIVE_DISPUTE_STATUSES, Dispute
from apps.orders.models import Order, OrderStatus
from apps.realtime.publisher import publish_row_change

from .commission import CommissionSchedule
from .models import EscrowHold, EscrowHoldStatus

logger = logging.getLogger("escrow")

RELEASE = "release"
WAIT = "wait"
BLOCKED = "blocked"
RELEASED = "released"

RESOLUTION_REFUND = "refund"
RESOLUTION_SPLIT = "split"
RESOLUTION_RELEASE = "release"
RESOLUTIONS = (RESOLUTION_REFUND, RESOLUTION_SPLIT, RESOLUTION_RELEASE)


@dataclass(frozen=True)
class ReleaseDecision:
    action: str
    remaining: timedelta

    @property
    def remaining_seconds(self) -> int:
        return max(int(self.remaining.total_seconds()), 0)

    def to_dict(self):
        return {"action": self.action, "remaining_seconds": self.remaining_seconds}


def hold_duration() -> timedelta:
    return timedelta(hours=settings.ESCROW_SETTINGS.get("HOLD_HOURS", 48))


class EscrowHoldService:
    """
    Escrow hold controller.

        pending  -> disputed | released
        disputed -> pending | released
        released is terminal

    Status changes are compare-and-swap writes. ``release_at`` is written
    once, at creation.
    """

    @staticmethod
    def start_hold(order: Order, delivery_confirmed_at, amount: Optional[int] = None) -> EscrowHold:
        existing = EscrowHold.objects.filter(order_id=order.pk).first()
        if existing is not None:
            return existing

        try:
            hold = EscrowHoldService._create_hold(order, delivery_confirmed_at, amount)
        except AlreadyHeld:
            return EscrowHold.objects.get(order_id=order.pk)

        logger.info(
            f"Escrow hold {hold.pk} started for order {order.pk}, "
            f"release at {hold.release_at.isoformat()} ({hold.status})"
        )
        return hold

    @staticmethod
    def _create_hold(order: Order, delivery_confirmed_at, amount: Optional[int]) -> EscrowHold:
        amount = order.amount if amount is None else amount
        breakdown = CommissionSchedule.compute_fee(amount)
        disputed = Dispute.objects.filter(
            order_id=order.pk, status__in=ACTIVE_DISPUTE_STATUSES
        ).exists()

        try:
            with transaction.atomic():
                return EscrowHold.objects.create(
                    order=order,
                    buyer_id=order.buyer_id,
                    seller_id=order.seller_id,
                    amount=amount,
                    commission_amount=breakdown.fee,
                    net_seller_amount=breakdown.net,
                    delivery_confirmed_at=delivery_confirmed_at,
                    release_at=delivery_confirmed_at + hold_duration(),
                    status=EscrowHoldStatus.DISPUTED
                    if disputed
                    else EscrowHoldStatus.PENDING,
                    release_conditions={
                        "delivery_confirmed": True,
                        "no_active_dispute": not disputed,
                        "dispute_window_passed": False,
                    },
                )
        except IntegrityError:
            raise AlreadyHeld(details={"order_id": str(order.pk)})

    @staticmethod
    def _compare_and_set(hold: EscrowHold, expected, **changes) -> int:
        return EscrowHold.objects.filter(pk=hold.pk, status__in=expected).update(
            updated_at=timezone.now(), **changes
        )

    @staticmethod
    def open_dispute(hold: EscrowHold) -> EscrowHold:
        """Pause release. The release clock keeps its original value."""
        if hold.status == EscrowHoldStatus.RELEASED:
            raise DisputeError("Funds for this order have already been released.")

        conditions = {**hold.release_conditions, "no_active_dispute": False}
        updated = EscrowHoldService._compare_and_set(
            hold,
            [EscrowHoldStatus.PENDING],
            status=EscrowHoldStatus.DISPUTED,
            release_conditions=conditions,
        )
        current = EscrowHold.objects.get(pk=hold.pk)
        if updated:
            publish_row_change(current, "update")
            logger.info(f"Escrow hold {hold.pk} paused by dispute")
        elif current.status == EscrowHoldStatus.RELEASED:
            raise DisputeError("Funds for this order have already been released.")
        return current

    @staticmethod
    def close_dispute(hold: EscrowHold) -> EscrowHold:
        """Resume the original countdown after a dispute ends without payout."""
        conditions = {**hold.release_conditions, "no_active_dispute": True}
        updated = EscrowHoldService._compare_and_set(
            hold,
            [EscrowHoldStatus.DISPUTED],
            status=EscrowHoldStatus.PENDING,
            release_conditions=conditions,
        )
        current = EscrowHold.objects.get(pk=hold.pk)
        if updated:
            publish_row_change(current, "update")
            logger.info(f"Escrow hold {hold.pk} resumed, release at {current.release_at}")
        return current

    @staticmethod
    def evaluate_release(hold: EscrowHold, now=None) -> ReleaseDecision:
        now = now or timezone.now()
        remaining = max(hold.release_at - now, timedelta(0))

        if hold.status == EscrowHoldStatus.RELEASED:
            return ReleaseDecision(RELEASED, timedelta(0))
        if hold.status == EscrowHoldStatus.DISPUTED:
            return ReleaseDecision(BLOCKED, remaining)
        if now >= hold.release_at:
            return ReleaseDecision(RELEASE, timedelta(0))
        return ReleaseDecision(WAIT, remaining)

    @staticmethod
    def auto_release(hold: EscrowHold, now=None) -> EscrowHold:
        """
        Release a pending hold whose window has passed. Holds that are not
        due, disputed or already released are returned unchanged.
        """
        now = now or timezone.now()
        if hold.status == EscrowHoldStatus.RELEASED:
            return hold

        breakdown = CommissionSchedule.compute_fee(hold.amount)
        conditions = {
            **hold.release_conditions,
            "no_active_dispute": True,
            "dispute_window_passed": True,
            "auto_released": True,
        }
        updated = EscrowHold.objects.filter(
            pk=hold.pk, status=EscrowHoldStatus.PENDING, release_at__lte=now
        ).update(
            status=EscrowHoldStatus.RELEASED,
            released_at=now,
            commission_amount=breakdown.fee,
            net_seller_amount=breakdown.net,
            release_conditions=conditions,
            updated_at=timezone.now(),
        )
        current = EscrowHold.objects.get(pk=hold.pk)
        if updated:
            publish_row_change(current, "update")
            logger.info(
                f"Escrow hold {hold.pk} auto-released: seller {current.seller_id} "
                f"receives {current.net_seller_amount}, commission {current.commission_amount}"
            )
        return current

    @staticmethod
    def request_release(order: Order, now=None):
        """
        Server-side check behind a client countdown reaching zero. Returns
        ``(hold, decision)`` after releasing if the server clock agrees.
        """
        now = now or timezone.now()
        status = EscrowHoldService.get_escrow_status(order, now=now)
        hold = status["hold"]
        if hold is None:
            raise OrderStateError("This order has no escrow hold.")

        decision = status["decision"]
        if decision.action == RELEASE:
            hold = EscrowHoldService.auto_release(hold, now)
            decision = EscrowHoldService.evaluate_release(hold, now)
        return hold, decision

    @staticmethod
    def force_release(
        hold: EscrowHold,
        resolution: str,
        refund_amount: Optional[int] = None,
        now=None,
    ) -> EscrowHold:
        """
        Release a disputed hold by staff decision: full refund to the buyer,
        a split, or release to the seller.
        """
        now = now or timezone.now()
        if resolution not in RESOLUTIONS:
            raise DisputeError(f"Unknown resolution: {resolution}")

        conditions = {**hold.release_conditions, "no_active_dispute": True}
        if resolution == RESOLUTION_REFUND:
            refund, seller_amount = hold.amount, 0
            conditions["admin_refunded"] = True
        elif resolution == RESOLUTION_SPLIT:
            if refund_amount is None or not 0 < refund_amount < hold.amount:
                raise DisputeError("A split needs a refund between zero and the held amount.")
            refund, seller_amount = refund_amount, hold.amount - refund_amount
            conditions["admin_split"] = True
        else:
            refund, seller_amount = 0, hold.amount
            conditions["admin_released"] = True

        breakdown = CommissionSchedule.compute_fee(seller_amount)
        conditions["refund_amount"] = refund
        conditions["seller_amount"] = seller_amount

        updated = EscrowHoldService._compare_and_set(
            hold,
            [EscrowHoldStatus.DISPUTED],
            status=EscrowHoldStatus.RELEASED,
            released_at=now,
            commission_amount=breakdown.fee,
            net_seller_amount=breakdown.net,
            release_conditions=conditions,
        )
        current = EscrowHold.objects.get(pk=hold.pk)
        if not updated:
            raise DisputeError(
                f"Escrow hold must be disputed to resolve it, it is {current.status}"
            )

        publish_row_change(current, "update")
        logger.info(
            f"Escrow hold {hold.pk} resolved by {resolution}: refund {refund}, "
            f"seller {seller_amount}"
        )
        return current

    @staticmethod
    def get_escrow_status(order: Order, now=None):
        """
        Current hold, active dispute and release decision for an order. A
        delivered order whose hold creation was lost gets its hold here.
        """
        now = now or timezone.now()
        hold = EscrowHold.objects.filter(order_id=order.pk).first()

        if (
            hold is None
            and order.status == OrderStatus.DELIVERED
            and order.delivery_confirmed_at is not None
        ):
            logger.warning(f"Delivered order {order.pk} has no escrow hold, repairing")
            hold = EscrowHoldService.start_hold(order, order.delivery_confirmed_at)

        active_dispute = Dispute.objects.filter(
            order_id=order.pk, status__in=ACTIVE_DISPUTE_STATUSES
        ).first()

        decision = EscrowHoldService.evaluate_release(hold, now) if hold else None
        return {"hold": hold, "active_dispute": active_dispute, "decision": decision}
