import logging

from django.db.models import Q
from django.utils import timezone

from apps.chat.models import ChatMessage
from apps.disputes.models import Dispute
from apps.escrow.models import EscrowHold
from apps.offers.models import Offer
from apps.orders.models import Order

from .publisher import serialize_rows
from .session import CHAT_MESSAGES, DISPUTES, ESCROW_HOLDS, OFFERS, ORDERS

logger = logging.getLogger("realtime")

CHAT_SNAPSHOT_LIMIT = 100


class SyncService:
    """Full reads used to (re)build a session view."""

    @staticmethod
    def snapshot_for(user, listing_id=None):
        """
        Every row the session of ``user`` cares about, optionally narrowed
        to one listing thread. Chat history is only included for a thread.
        """
        start_time = timezone.now()

        party = Q(buyer=user) | Q(seller=user)
        offers = Offer.objects.filter(party)
        orders = Order.objects.filter(party)
        if listing_id is not None:
            offers = offers.filter(listing_id=listing_id)
            orders = orders.filter(listing_id=listing_id)

        order_ids = list(orders.values_list("pk", flat=True))
        snapshot = {
            OFFERS: serialize_rows(offers),
            ORDERS: serialize_rows(orders),
            ESCROW_HOLDS: serialize_rows(EscrowHold.objects.filter(order_id__in=order_ids)),
            DISPUTES: serialize_rows(Dispute.objects.filter(order_id__in=order_ids)),
            CHAT_MESSAGES: [],
        }

        if listing_id is not None:
            messages = ChatMessage.objects.filter(party, listing_id=listing_id).order_by(
                "-created_at"
            )[:CHAT_SNAPSHOT_LIMIT]
            snapshot[CHAT_MESSAGES] = list(reversed(serialize_rows(messages)))

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(
            f"Snapshot for user {user.pk} (listing {listing_id}) built in {duration:.2f}ms"
        )
        return snapshot
