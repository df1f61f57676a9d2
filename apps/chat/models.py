from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.core.models import BaseModel


class MessageKind(models.TextChoices):
    TEXT = "text", _("Text")
    OFFER_NOTICE = "offer_notice", _("Offer Notice")


class GuardSeverity(models.TextChoices):
    CLEAN = "clean", _("Clean")
    WARN = "warn", _("Warn")


class ChatMessage(BaseModel):
    """
    A message in the buyer/seller thread of a listing. Offer notices are
    system messages and have no sender.
    """

    listing = models.ForeignKey(
        "listings.Listing", on_delete=models.CASCADE, related_name="messages"
    )
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_threads_as_buyer",
        help_text=_("The buyer side of the thread"),
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_threads_as_seller",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="sent_messages",
    )
    body = models.TextField(blank=True)
    kind = models.CharField(
        max_length=20, choices=MessageKind.choices, default=MessageKind.TEXT
    )
    offer = models.ForeignKey(
        "offers.Offer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notices",
    )
    severity = models.CharField(
        max_length=10, choices=GuardSeverity.choices, default=GuardSeverity.CLEAN
    )
    overridden = models.BooleanField(
        default=False, help_text=_("Sender chose to send despite a warning")
    )

    class Meta:
        db_table = "chat_messages"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["listing", "buyer", "created_at"]),
        ]

    def __str__(self):
        return f"{self.kind} on {self.listing_id} from {self.sender_id}"

    @property
    def recipient_id(self):
        if self.sender_id is None:
            return None
        return self.seller_id if self.sender_id == self.buyer_id else self.buyer_id
