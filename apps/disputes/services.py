import logging

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from apps.core.exceptions import ActionNotPermitted, DisputeError, OrderStateError
from apps.escrow.models import EscrowHold, EscrowHoldStatus
from apps.escrow.services import (
    RESOLUTION_REFUND,
    RESOLUTION_SPLIT,
    EscrowHoldService,
)
from apps.orders.models import Order, OrderStatus
from apps.realtime.publisher import publish_row_change

from .models import ACTIVE_DISPUTE_STATUSES, RESOLUTION_STATUSES, Dispute, DisputeStatus

logger = logging.getLogger("disputes")

DISPUTABLE_ORDER_STATUSES = (OrderStatus.SHIPPED, OrderStatus.DELIVERED)


class DisputeService:
    """
    A service layer for handling dispute-related business logic. Opening a
    dispute pauses the order's escrow hold; resolving it either resumes the
    original countdown or pays out by staff decision.
    """

    @staticmethod
    def open_dispute(order: Order, user, reason, description, evidence_urls=None) -> Dispute:
        start_time = timezone.now()

        if user.pk not in (order.buyer_id, order.seller_id):
            raise ActionNotPermitted("You cannot open a dispute for this order.")

        if order.status not in DISPUTABLE_ORDER_STATUSES:
            raise OrderStateError(
                f"Disputes can only be opened on shipped or delivered orders, order is {order.status}"
            )

        hold = EscrowHold.objects.filter(order_id=order.pk).first()
        if hold is not None and hold.status == EscrowHoldStatus.RELEASED:
            raise DisputeError("Funds for this order have already been released.")

        if Dispute.objects.filter(order=order, status__in=ACTIVE_DISPUTE_STATUSES).exists():
            raise DisputeError("A dispute is already open for this order.")

        try:
            with transaction.atomic():
                dispute = Dispute.objects.create(
                    order=order,
                    raised_by=user,
                    reason=reason,
                    description=description,
                    evidence_urls=evidence_urls or [],
                    status=DisputeStatus.OPEN,
                )
                if hold is not None:
                    EscrowHoldService.open_dispute(hold)
        except IntegrityError:
            raise DisputeError("A dispute is already open for this order.")

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(f"Dispute {dispute.pk} opened on order {order.pk} in {duration:.2f}ms")
        return dispute

    @staticmethod
    def _transition(dispute: Dispute, expected, **changes) -> Dispute:
        updated = Dispute.objects.filter(pk=dispute.pk, status__in=expected).update(
            updated_at=timezone.now(), **changes
        )
        current = Dispute.objects.select_related("order").get(pk=dispute.pk)
        if updated == 0:
            raise DisputeError(f"Dispute cannot change from status: {current.status}")
        publish_row_change(current, "update")
        return current

    @staticmethod
    def start_review(dispute: Dispute, staff_user) -> Dispute:
        if not staff_user.is_staff:
            raise ActionNotPermitted("Only staff can review disputes.")

        current = DisputeService._transition(
            dispute, [DisputeStatus.OPEN], status=DisputeStatus.UNDER_REVIEW
        )
        logger.info(f"Dispute {dispute.pk} under review by {staff_user.pk}")
        return current

    @staticmethod
    @transaction.atomic
    def resolve_dispute(
        dispute: Dispute,
        resolver_user,
        status,
        resolution_note="",
        refund_amount=None,
    ) -> Dispute:
        """
        Resolve a dispute (staff only).

        - resolved_refund: hold released back to the buyer, order refunded
        - resolved_partial_refund: hold split, ``refund_amount`` to the buyer
        - resolved_no_refund / closed: hold resumes its original countdown
        """
        if not resolver_user.is_staff:
            raise ActionNotPermitted("Only staff can resolve disputes.")

        if status not in RESOLUTION_STATUSES:
            raise DisputeError(f"Invalid resolution status: {status}")

        order = dispute.order
        hold = EscrowHold.objects.filter(order_id=order.pk).first()

        resolution_amount = None
        if status == DisputeStatus.RESOLVED_REFUND:
            resolution_amount = hold.amount if hold is not None else order.amount
        elif status == DisputeStatus.RESOLVED_PARTIAL_REFUND:
            if hold is None:
                raise DisputeError("There is no escrow hold to split for this order.")
            resolution_amount = refund_amount

        current = DisputeService._transition(
            dispute,
            list(ACTIVE_DISPUTE_STATUSES),
            status=status,
            resolution_note=resolution_note or "",
            resolution_amount=resolution_amount,
            resolved_by=resolver_user,
            resolved_at=timezone.now(),
        )

        if status == DisputeStatus.RESOLVED_REFUND:
            if hold is not None:
                EscrowHoldService.force_release(hold, RESOLUTION_REFUND)
            DisputeService._refund_order(order)
        elif status == DisputeStatus.RESOLVED_PARTIAL_REFUND:
            EscrowHoldService.force_release(hold, RESOLUTION_SPLIT, refund_amount)
        elif hold is not None:
            EscrowHoldService.close_dispute(hold)

        logger.info(
            f"Dispute {dispute.pk} resolved as {status} by {resolver_user.pk}"
        )
        return current

    @staticmethod
    def _refund_order(order: Order):
        updated = Order.objects.filter(
            pk=order.pk, status__in=DISPUTABLE_ORDER_STATUSES
        ).update(status=OrderStatus.REFUNDED, updated_at=timezone.now())
        if updated:
            publish_row_change(Order.objects.get(pk=order.pk), "update")

    @staticmethod
    def get_user_disputes(user, status_filter=None):
        """
        Get all disputes for a given user.
        """
        disputes = Dispute.objects.filter(
            Q(order__buyer=user) | Q(order__seller=user)
        ).select_related("order", "raised_by", "resolved_by")
        if status_filter:
            disputes = disputes.filter(status=status_filter)
        return disputes
