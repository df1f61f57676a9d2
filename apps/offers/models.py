import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.models import BaseModel


class OfferStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    COUNTERED = "countered", _("Countered")
    ACCEPTED = "accepted", _("Accepted")
    DECLINED = "declined", _("Declined")
    WITHDRAWN = "withdrawn", _("Withdrawn")


ACTIVE_OFFER_STATUSES = (OfferStatus.PENDING, OfferStatus.COUNTERED)
TERMINAL_OFFER_STATUSES = (
    OfferStatus.ACCEPTED,
    OfferStatus.DECLINED,
    OfferStatus.WITHDRAWN,
)


class Offer(BaseModel):
    """
    A buyer's price proposal on a listing, optionally answered by a seller
    counter. Amounts are minor units.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    listing = models.ForeignKey(
        "listings.Listing", on_delete=models.CASCADE, related_name="offers"
    )
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="offers_as_buyer",
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="offers_as_seller",
    )
    amount = models.PositiveIntegerField(help_text=_("Buyer's offer in minor units"))
    message = models.TextField(blank=True, null=True)
    counter_amount = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Seller's counter in minor units")
    )
    status = models.CharField(
        max_length=20,
        choices=OfferStatus.choices,
        default=OfferStatus.PENDING,
        db_index=True,
    )

    class Meta:
        db_table = "offers"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["listing", "status"]),
            models.Index(fields=["buyer", "status"]),
            models.Index(fields=["seller", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["listing", "buyer", "seller"],
                condition=Q(status__in=["pending", "countered"]),
                name="unique_active_offer_per_thread",
            ),
        ]

    def __str__(self):
        return f"Offer {self.id} - {self.amount} - {self.status}"

    @property
    def agreed_amount(self):
        """The price both parties settle on if this offer is accepted."""
        return self.counter_amount if self.counter_amount is not None else self.amount

    @property
    def is_active(self):
        return self.status in ACTIVE_OFFER_STATUSES


class OfferHistory(models.Model):
    ACTION_CHOICES = (
        ("offered", "Offered"),
        ("countered", "Countered"),
        ("accepted", "Accepted"),
        ("declined", "Declined"),
        ("withdrawn", "Withdrawn"),
    )

    offer = models.ForeignKey(Offer, on_delete=models.CASCADE, related_name="history")
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    amount = models.PositiveIntegerField(null=True, blank=True)
    timestamp = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True, null=True)

    class Meta:
        db_table = "offer_history"
        ordering = ["-timestamp"]
        verbose_name_plural = "Offer histories"

    def __str__(self):
        return f"{self.action} by {self.user} on {self.timestamp.strftime('%Y-%m-%d %H:%M')}"
