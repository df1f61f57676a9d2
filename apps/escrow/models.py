import uuid

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.core.models import BaseModel


class EscrowHoldStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    DISPUTED = "disputed", _("Disputed")
    RELEASED = "released", _("Released")


def default_release_conditions():
    return {
        "delivery_confirmed": True,
        "no_active_dispute": True,
        "dispute_window_passed": False,
    }


class EscrowHold(BaseModel):
    """
    Funds held for a delivered order until ``release_at``.

    ``release_at`` is fixed when the hold is created; a dispute pauses the
    release by flipping the status, it never moves the clock.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(
        "orders.Order", on_delete=models.PROTECT, related_name="escrow_hold"
    )
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_holds_as_buyer",
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_holds_as_seller",
    )
    amount = models.PositiveIntegerField(help_text=_("Held amount in minor units"))
    commission_amount = models.PositiveIntegerField(default=0)
    net_seller_amount = models.PositiveIntegerField(default=0)
    delivery_confirmed_at = models.DateTimeField()
    release_at = models.DateTimeField(db_index=True)
    released_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=EscrowHoldStatus.choices,
        default=EscrowHoldStatus.PENDING,
        db_index=True,
    )
    release_conditions = models.JSONField(default=default_release_conditions)

    class Meta:
        db_table = "escrow_holds"
        ordering = ["release_at"]
        indexes = [
            models.Index(fields=["status", "release_at"]),
        ]

    def __str__(self):
        return f"EscrowHold {self.id} - {self.status} until {self.release_at}"
