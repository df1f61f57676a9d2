import logging
from typing import Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.core.exceptions import ActionNotPermitted, ContentBlocked
from apps.listings.models import Listing

from .guard import WARN, GuardResult, MessageGuard
from .models import ChatMessage, GuardSeverity, MessageKind

logger = logging.getLogger("chat_guard")

User = get_user_model()


class ChatService:
    """Stores negotiation chat messages after they pass the guard."""

    @staticmethod
    def send_message(
        sender,
        listing: Listing,
        body: str,
        buyer_id=None,
        override: bool = False,
    ) -> Tuple[Optional[ChatMessage], GuardResult]:
        """
        Send ``body`` into the listing thread. A seller must say which
        buyer's thread they are writing to. Returns ``(message, result)``;
        ``message`` is None when the guard stopped the send.
        """
        start_time = timezone.now()

        if sender.pk == listing.seller_id:
            if buyer_id is None or str(buyer_id) == str(listing.seller_id):
                raise ActionNotPermitted("Choose which buyer to reply to.")
            try:
                buyer_id = int(buyer_id)
            except (TypeError, ValueError):
                raise ActionNotPermitted("Unknown buyer for this thread.")
            if not User.objects.filter(pk=buyer_id).exists():
                raise ActionNotPermitted("Unknown buyer for this thread.")
        else:
            buyer_id = sender.pk

        max_length = settings.NEGOTIATION_SETTINGS.get("MAX_MESSAGE_LENGTH", 500)
        if body and len(body) > max_length:
            raise ContentBlocked(
                f"Messages are limited to {max_length} characters.",
                code="message_too_long",
            )

        result = MessageGuard.check(sender.pk, body)
        overriding = override and result.severity == WARN
        if not result.allowed and not overriding:
            return None, result

        message = ChatMessage.objects.create(
            listing=listing,
            buyer_id=buyer_id,
            seller_id=listing.seller_id,
            sender=sender,
            body=body or "",
            kind=MessageKind.TEXT,
            severity=GuardSeverity.WARN if overriding else GuardSeverity.CLEAN,
            overridden=overriding,
        )
        MessageGuard.record_sent(sender.pk)

        duration = (timezone.now() - start_time).total_seconds() * 1000
        logger.info(
            f"Message {message.pk} sent by user {sender.pk} on listing {listing.pk} "
            f"in {duration:.2f}ms{' (warning overridden)' if overriding else ''}"
        )
        remaining = MessageGuard.remaining(sender.pk)
        return message, GuardResult(
            severity=result.severity,
            rule=result.rule,
            user_message=result.user_message,
            details=result.details,
            remaining=remaining,
        )

    @staticmethod
    def post_offer_notice(offer, actor, text: str) -> Optional[ChatMessage]:
        """
        System notice for an offer transition made by ``actor``. The notice
        goes through the guard and counts against the actor's window; when
        the guard stops it nothing is posted and None is returned.
        """
        result = MessageGuard.check(actor.pk, text)
        if not result.allowed:
            logger.info(
                f"Notice for offer {offer.pk} skipped for user {actor.pk}: {result.rule}"
            )
            return None

        message = ChatMessage.objects.create(
            listing_id=offer.listing_id,
            buyer_id=offer.buyer_id,
            seller_id=offer.seller_id,
            sender=None,
            body=text,
            kind=MessageKind.OFFER_NOTICE,
            offer=offer,
        )
        MessageGuard.record_sent(actor.pk)
        return message

    @staticmethod
    def thread_for(user, listing_id):
        """Messages on a listing visible to ``user``."""
        messages = ChatMessage.objects.filter(listing_id=listing_id)
        if user.is_staff:
            return messages
        return messages.filter(buyer=user) | messages.filter(seller=user)
