import logging
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.exceptions import (
    ActionNotPermitted,
    AlreadyMaterialized,
    InvalidOfferTransition,
    OrderStateError,
)
from apps.escrow.commission import CommissionSchedule
from apps.listings.models import Listing, ListingStatus
from apps.offers.models import Offer, OfferStatus
from apps.offers.services import OfferService
from apps.realtime.publisher import publish_row_change

from .models import Order, OrderStatus, OrderTracking, TrackingStatus

logger = logging.getLogger("orders")


class OrderMaterializationService:
    """Turns an accepted offer into exactly one payable order."""

    @staticmethod
    def materialize(offer: Offer) -> Order:
        start_time = timezone.now()

        existing = OrderMaterializationService._live_order_for(offer)
        if existing is not None:
            return existing

        if offer.status != OfferStatus.ACCEPTED:
            raise InvalidOfferTransition(
                f"Only accepted offers can become orders, offer is {offer.status}"
            )

        if not Listing.objects.filter(
            pk=offer.listing_id, status=ListingStatus.ACTIVE
        ).exists():
            logger.info(f"Offer {offer.pk} not materialized, listing {offer.listing_id} is closed")
            raise InvalidOfferTransition("This listing is no longer available.")

        try:
            order = OrderMaterializationService._create_order(offer)
        except AlreadyMaterialized:
            order = OrderMaterializationService._live_order_for(offer)
            logger.info(f"Offer {offer.pk} already materialized as order {order.pk}")
            return order

        OrderMaterializationService._cancel_competing_orders(order)

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(
            f"Order {order.pk} materialized from offer {offer.pk} in {duration:.2f}ms"
        )
        return order

    @staticmethod
    def replay(offer: Offer) -> Order:
        """
        Order for an offer that is already accepted. A repeated accept only
        reports what the first one produced and never opens a new sale.
        """
        order = Order.objects.filter(offer_id=offer.pk).order_by("-created_at").first()
        if order is None or order.status == OrderStatus.CANCELLED:
            raise InvalidOfferTransition(
                "The order for this offer is no longer available."
            )
        return order

    @staticmethod
    def _live_order_for(offer: Offer) -> Optional[Order]:
        return (
            Order.objects.filter(offer_id=offer.pk)
            .exclude(status=OrderStatus.CANCELLED)
            .first()
        )

    @staticmethod
    def _create_order(offer: Offer) -> Order:
        agreed = offer.agreed_amount
        breakdown = CommissionSchedule.compute_fee(agreed)
        try:
            with transaction.atomic():
                return Order.objects.create(
                    listing_id=offer.listing_id,
                    offer=offer,
                    buyer_id=offer.buyer_id,
                    seller_id=offer.seller_id,
                    amount=agreed,
                    service_fee=breakdown.fee,
                    total=agreed + breakdown.fee,
                    status=OrderStatus.PENDING_PAYMENT,
                )
        except IntegrityError:
            raise AlreadyMaterialized(details={"offer_id": str(offer.pk)})

    @staticmethod
    def _cancel_competing_orders(order: Order):
        """Unpaid orders on the same listing from other offers lose the item."""
        competing_ids = list(
            Order.objects.filter(
                listing_id=order.listing_id, status=OrderStatus.PENDING_PAYMENT
            )
            .exclude(pk=order.pk)
            .values_list("pk", flat=True)
        )
        if not competing_ids:
            return

        Order.objects.filter(
            pk__in=competing_ids, status=OrderStatus.PENDING_PAYMENT
        ).update(status=OrderStatus.CANCELLED, updated_at=timezone.now())

        for cancelled in Order.objects.filter(
            pk__in=competing_ids, status=OrderStatus.CANCELLED
        ):
            publish_row_change(cancelled, "update")
        logger.info(
            f"Cancelled {len(competing_ids)} competing orders on listing {order.listing_id}"
        )


class OrderService:
    """Order lifecycle hooks driven by the payment and courier collaborators."""

    @staticmethod
    def _transition(order: Order, expected: str, new_status: str, **changes) -> Order:
        updated = Order.objects.filter(pk=order.pk, status=expected).update(
            status=new_status, updated_at=timezone.now(), **changes
        )
        current = Order.objects.get(pk=order.pk)
        if updated == 0:
            raise OrderStateError(
                f"Order must be {expected} for this action, it is {current.status}"
            )
        publish_row_change(current, "update")
        return current

    @staticmethod
    @transaction.atomic
    def mark_paid(order: Order, payment_reference: str = "") -> Order:
        now = timezone.now()
        current = OrderService._transition(
            order,
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.PAID,
            payment_reference=payment_reference,
            paid_at=now,
        )
        sold = Listing.objects.filter(
            pk=current.listing_id, status=ListingStatus.ACTIVE
        ).update(status=ListingStatus.SOLD, updated_at=now)
        if sold == 0:
            # Raising rolls the paid transition back with the atomic block
            logger.warning(
                f"Payment for order {order.pk} rejected, listing {current.listing_id} is closed"
            )
            raise OrderStateError("This listing has already been sold.")

        OfferService.close_listing_offers(current.listing_id, current.seller_id)
        OrderTracking.objects.create(
            order=current,
            status=TrackingStatus.PROCESSING,
            notes=f"Payment received ({payment_reference})"
            if payment_reference
            else "Payment received",
        )
        logger.info(f"Order {order.pk} paid, listing {current.listing_id} sold")
        return current

    @staticmethod
    @transaction.atomic
    def mark_shipped(order: Order, seller, tracking_number: str = "", carrier: str = "") -> Order:
        if seller.pk != order.seller_id:
            raise ActionNotPermitted("Only the seller can ship this order.")

        current = OrderService._transition(
            order,
            OrderStatus.PAID,
            OrderStatus.SHIPPED,
            tracking_number=tracking_number,
            carrier=carrier,
            shipped_at=timezone.now(),
        )
        OrderTracking.objects.create(
            order=current,
            status=TrackingStatus.SHIPPED,
            notes=f"Shipped with {carrier} ({tracking_number})"
            if carrier
            else "Shipped",
            created_by=seller,
        )
        logger.info(f"Order {order.pk} shipped by seller {seller.pk}")
        return current

    @staticmethod
    def add_tracking_update(
        order: Order,
        status: str,
        notes: str = "",
        location: str = "",
        photo_url: str = "",
        created_by=None,
    ) -> OrderTracking:
        """Record a courier status update; the order status is left to its owners."""
        if status not in TrackingStatus.values:
            raise OrderStateError(f"Unknown tracking status: {status}")

        return OrderTracking.objects.create(
            order=order,
            status=status,
            notes=notes,
            location=location,
            photo_url=photo_url or "",
            created_by=created_by,
        )

    @staticmethod
    @transaction.atomic
    def cancel(order: Order, actor) -> Order:
        if actor.pk not in (order.buyer_id, order.seller_id) and not actor.is_staff:
            raise ActionNotPermitted("You are not a party to this order.")

        current = OrderService._transition(
            order, OrderStatus.PENDING_PAYMENT, OrderStatus.CANCELLED
        )
        OrderTracking.objects.create(
            order=current,
            status=TrackingStatus.CANCELLED,
            notes="Order cancelled before payment",
            created_by=actor,
        )
        logger.info(f"Order {order.pk} cancelled by user {actor.pk}")
        return current


class DeliveryConfirmationService:
    """
    Buyer-confirmed delivery. The tracking entry and the order status change
    commit together; the escrow hold is created afterwards and a failure
    there is deferred to a background task instead of undoing the delivery.
    """

    @staticmethod
    def confirm_delivery(order: Order, buyer, photo_url: Optional[str] = None, now=None) -> Order:
        from apps.escrow.services import EscrowHoldService
        from apps.escrow.tasks import create_escrow_hold_for_order

        start_time = timezone.now()
        now = now or timezone.now()

        if buyer.pk != order.buyer_id:
            raise ActionNotPermitted("Only the buyer can confirm delivery.")

        if order.status != OrderStatus.SHIPPED:
            raise OrderStateError(
                f"Delivery can only be confirmed on shipped orders, order is {order.status}"
            )

        with transaction.atomic():
            OrderTracking.objects.create(
                order=order,
                status=TrackingStatus.DELIVERED,
                notes="Buyer confirmed delivery with photo proof"
                if photo_url
                else "Buyer confirmed delivery",
                photo_url=photo_url or "",
                created_by=buyer,
                created_at=now,
            )
            current = OrderService._transition(
                order,
                OrderStatus.SHIPPED,
                OrderStatus.DELIVERED,
                delivery_confirmed_at=now,
                delivery_photo_url=photo_url or "",
            )

        try:
            EscrowHoldService.start_hold(current, now)
        except Exception as e:
            logger.error(
                f"Escrow hold creation failed for order {current.pk}, deferring: {str(e)}"
            )
            countdown = settings.ESCROW_SETTINGS.get("HOLD_RETRY_COUNTDOWN_SECONDS", 60)
            try:
                create_escrow_hold_for_order.apply_async(
                    args=[str(current.pk)], countdown=countdown
                )
            except Exception as schedule_error:
                # The periodic repair sweep picks the order up
                logger.error(
                    f"Could not schedule hold creation for order {current.pk}: {schedule_error}"
                )

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(f"Delivery confirmed for order {current.pk} in {duration:.2f}ms")
        return current
