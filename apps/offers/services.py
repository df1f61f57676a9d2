import logging
from typing import Optional, Tuple

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.exceptions import (
    ActionNotPermitted,
    DuplicateActiveOffer,
    InvalidAmount,
    InvalidCounter,
    InvalidOfferTransition,
    StaleOfferState,
)
from apps.listings.models import Listing, ListingStatus
from apps.realtime.publisher import publish_row_change

from .models import ACTIVE_OFFER_STATUSES, Offer, OfferHistory, OfferStatus

logger = logging.getLogger("offers")

ACCEPT = "accept"
DECLINE = "decline"
DECISIONS = (ACCEPT, DECLINE)


def _format_amount(amount):
    return f"R{amount / 100:,.2f}"


class OfferService:
    """
    The offer state machine.

        pending   -> countered | accepted | declined | withdrawn
        countered -> accepted | declined

    Every transition is a compare-and-swap on ``status``. Callers pass the
    offer as they last saw it; if another party moved it first the write
    matches no rows and ``StaleOfferState`` carries the current row back.
    """

    @staticmethod
    def propose(
        listing: Listing,
        buyer: AbstractBaseUser,
        amount: int,
        message: Optional[str] = None,
    ) -> Offer:
        """Open a new offer from ``buyer`` on ``listing``."""
        start_time = timezone.now()

        if buyer.pk == listing.seller_id:
            raise ActionNotPermitted("You cannot make an offer on your own listing.")

        if listing.status != ListingStatus.ACTIVE:
            raise InvalidOfferTransition("This listing is not accepting offers.")

        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount("Offer amount must be greater than zero.")
        if amount >= listing.price:
            raise InvalidAmount("Offer amount must be below the asking price.")

        if Offer.objects.filter(
            listing=listing,
            buyer=buyer,
            seller_id=listing.seller_id,
            status__in=ACTIVE_OFFER_STATUSES,
        ).exists():
            raise DuplicateActiveOffer()

        try:
            with transaction.atomic():
                offer = Offer.objects.create(
                    listing=listing,
                    buyer=buyer,
                    seller_id=listing.seller_id,
                    amount=amount,
                    message=message or None,
                    status=OfferStatus.PENDING,
                )
                OfferHistory.objects.create(
                    offer=offer,
                    action="offered",
                    user=buyer,
                    amount=amount,
                    notes=message or f"Buyer offered {_format_amount(amount)}",
                )
        except IntegrityError:
            # A concurrent propose for the same thread won the insert
            logger.warning(
                f"Concurrent duplicate offer on listing {listing.pk} by buyer {buyer.pk}"
            )
            raise DuplicateActiveOffer()

        OfferService._post_notice(
            offer, buyer, f"Offer of {_format_amount(amount)} made on {listing.title}"
        )

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(f"Offer {offer.pk} proposed in {duration:.2f}ms")
        return offer

    @staticmethod
    def counter(offer: Offer, seller: AbstractBaseUser, counter_amount: int) -> Offer:
        """Seller answers a pending offer with a higher price."""
        start_time = timezone.now()

        if seller.pk != offer.seller_id:
            raise ActionNotPermitted("Only the seller can counter this offer.")

        if offer.status != OfferStatus.PENDING:
            raise InvalidOfferTransition(
                f"Cannot counter an offer with status: {offer.status}"
            )

        listing_price = offer.listing.price
        if (
            not isinstance(counter_amount, int)
            or isinstance(counter_amount, bool)
            or counter_amount <= offer.amount
        ):
            raise InvalidCounter("Counter amount must be higher than the offer.")
        if counter_amount > listing_price:
            raise InvalidCounter("Counter amount cannot exceed the asking price.")

        with transaction.atomic():
            current = OfferService._compare_and_set(
                offer,
                OfferStatus.PENDING,
                status=OfferStatus.COUNTERED,
                counter_amount=counter_amount,
            )
            OfferHistory.objects.create(
                offer=current,
                action="countered",
                user=seller,
                amount=counter_amount,
                notes=(
                    f"Seller countered {_format_amount(counter_amount)} "
                    f"(offer: {_format_amount(offer.amount)})"
                ),
            )

        OfferService._post_notice(
            current, seller, f"Seller countered with {_format_amount(counter_amount)}"
        )

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(f"Offer {offer.pk} countered in {duration:.2f}ms")
        return current

    @staticmethod
    def respond(offer: Offer, actor: AbstractBaseUser, decision: str) -> Tuple[Offer, object]:
        """
        Accept or decline. From ``pending`` only the seller may respond, from
        ``countered`` only the buyer. Accepting materializes the order inside
        the same transaction and returns ``(offer, order)``; declining
        returns ``(offer, None)``.
        """
        from apps.orders.services import OrderMaterializationService

        start_time = timezone.now()

        if decision not in DECISIONS:
            raise InvalidOfferTransition(f"Unknown decision: {decision}")

        if actor.pk not in (offer.buyer_id, offer.seller_id):
            raise ActionNotPermitted("You are not a party to this offer.")

        if offer.status == OfferStatus.ACCEPTED and decision == ACCEPT:
            # Retried accept after an unknown outcome
            if OfferService._is_accepting_party(offer, actor):
                order = OrderMaterializationService.replay(offer)
                logger.info(f"Repeated accept on offer {offer.pk} returned order {order.pk}")
                return offer, order
            raise InvalidOfferTransition("This offer has already been accepted.")

        if offer.status == OfferStatus.PENDING:
            if actor.pk != offer.seller_id:
                raise ActionNotPermitted("Only the seller can respond to this offer.")
        elif offer.status == OfferStatus.COUNTERED:
            if actor.pk != offer.buyer_id:
                raise ActionNotPermitted("Only the buyer can respond to a counter offer.")
        else:
            raise InvalidOfferTransition(
                f"Cannot respond to an offer with status: {offer.status}"
            )

        expected = offer.status
        order = None
        if decision == ACCEPT:
            try:
                with transaction.atomic():
                    current = OfferService._compare_and_set(
                        offer, expected, status=OfferStatus.ACCEPTED
                    )
                    OfferHistory.objects.create(
                        offer=current,
                        action="accepted",
                        user=actor,
                        amount=current.agreed_amount,
                        notes=f"Accepted at {_format_amount(current.agreed_amount)}",
                    )
                    order = OrderMaterializationService.materialize(current)
            except StaleOfferState as exc:
                if (
                    exc.current is not None
                    and exc.current.status == OfferStatus.ACCEPTED
                    and OfferService._is_accepting_party(exc.current, actor)
                ):
                    order = OrderMaterializationService.replay(exc.current)
                    return exc.current, order
                raise
            notice = f"Offer accepted at {_format_amount(current.agreed_amount)}"
        else:
            with transaction.atomic():
                current = OfferService._compare_and_set(
                    offer, expected, status=OfferStatus.DECLINED
                )
                OfferHistory.objects.create(
                    offer=current,
                    action="declined",
                    user=actor,
                    amount=current.agreed_amount,
                    notes="Offer declined",
                )
            notice = "Offer declined"

        OfferService._post_notice(current, actor, notice)

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(
            f"Offer {offer.pk} {current.status} in {duration:.2f}ms by user {actor.pk}"
        )
        return current, order

    @staticmethod
    def withdraw(offer: Offer, buyer: AbstractBaseUser) -> Offer:
        """Buyer pulls a pending offer."""
        if buyer.pk != offer.buyer_id:
            raise ActionNotPermitted("Only the buyer can withdraw this offer.")

        if offer.status != OfferStatus.PENDING:
            raise InvalidOfferTransition(
                f"Cannot withdraw an offer with status: {offer.status}"
            )

        with transaction.atomic():
            current = OfferService._compare_and_set(
                offer, OfferStatus.PENDING, status=OfferStatus.WITHDRAWN
            )
            OfferHistory.objects.create(
                offer=current,
                action="withdrawn",
                user=buyer,
                amount=current.amount,
                notes="Buyer withdrew the offer",
            )

        OfferService._post_notice(current, buyer, "Offer withdrawn")
        logger.info(f"Offer {offer.pk} withdrawn by buyer {buyer.pk}")
        return current

    @staticmethod
    def close_listing_offers(listing_id, seller_id) -> int:
        """
        Decline every open offer on a listing that has just sold. Runs inside
        the caller's transaction; offers that moved concurrently are skipped.
        """
        closed = 0
        for offer in Offer.objects.filter(
            listing_id=listing_id, status__in=ACTIVE_OFFER_STATUSES
        ):
            try:
                current = OfferService._compare_and_set(
                    offer, offer.status, status=OfferStatus.DECLINED
                )
            except StaleOfferState:
                continue
            OfferHistory.objects.create(
                offer=current,
                action="declined",
                user_id=seller_id,
                amount=current.agreed_amount,
                notes="Listing sold",
            )
            closed += 1

        if closed:
            logger.info(f"Declined {closed} open offers on sold listing {listing_id}")
        return closed

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _compare_and_set(offer: Offer, expected: str, **changes) -> Offer:
        updated = Offer.objects.filter(pk=offer.pk, status=expected).update(
            updated_at=timezone.now(), **changes
        )
        current = Offer.objects.select_related("listing").get(pk=offer.pk)
        if updated == 0:
            logger.info(
                f"Stale write on offer {offer.pk}: expected {expected}, found {current.status}"
            )
            raise StaleOfferState(current=current)

        publish_row_change(current, "update")
        return current

    @staticmethod
    def _is_accepting_party(offer: Offer, actor) -> bool:
        if offer.counter_amount is None:
            return actor.pk == offer.seller_id
        return actor.pk == offer.buyer_id

    @staticmethod
    def _post_notice(offer: Offer, actor, text: str):
        if not settings.NEGOTIATION_SETTINGS.get("OFFER_NOTICES_ENABLED", True):
            return

        from apps.chat.services import ChatService

        try:
            ChatService.post_offer_notice(offer, actor, text)
        except Exception as e:
            logger.error(f"Failed to post notice for offer {offer.pk}: {str(e)}")
