import uuid
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from apps.core.models import BaseModel


class DisputeReason(models.TextChoices):
    """
    An enumeration of possible reasons for a dispute.
    """

    ITEM_NOT_RECEIVED = "item_not_received", _("Item Not Received")
    ITEM_NOT_AS_DESCRIBED = "item_not_as_described", _("Item Not As Described")
    DAMAGED = "damaged", _("Item Damaged")
    WRONG_ITEM = "wrong_item", _("Wrong Item Received")
    OTHER = "other", _("Other")


class DisputeStatus(models.TextChoices):
    """
    An enumeration of possible statuses for a dispute.
    """

    OPEN = "open", _("Open")
    UNDER_REVIEW = "under_review", _("Under Review")
    RESOLVED_REFUND = "resolved_refund", _("Resolved: Full Refund")
    RESOLVED_PARTIAL_REFUND = "resolved_partial_refund", _("Resolved: Partial Refund")
    RESOLVED_NO_REFUND = "resolved_no_refund", _("Resolved: No Refund")
    CLOSED = "closed", _("Closed")


ACTIVE_DISPUTE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)
RESOLUTION_STATUSES = (
    DisputeStatus.RESOLVED_REFUND,
    DisputeStatus.RESOLVED_PARTIAL_REFUND,
    DisputeStatus.RESOLVED_NO_REFUND,
    DisputeStatus.CLOSED,
)


class Dispute(BaseModel):
    """
    Represents a dispute raised on a delivered or shipped order.

    While a dispute is open or under review the order's escrow hold is
    paused. Each order can have at most one unresolved dispute.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="disputes",
        help_text=_("The order under dispute"),
    )
    raised_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="raised_disputes",
        help_text=_("User who opened this dispute"),
    )
    reason = models.CharField(
        max_length=30,
        choices=DisputeReason.choices,
        help_text=_("Why the dispute was raised"),
    )
    description = models.TextField(
        help_text=_("Details provided by the user opening the dispute")
    )
    evidence_urls = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Links to photos or documents backing the claim"),
    )
    status = models.CharField(
        max_length=30,
        choices=DisputeStatus.choices,
        default=DisputeStatus.OPEN,
        help_text=_("Current status of the dispute"),
    )
    resolution_amount = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text=_("Amount refunded to the buyer, in minor units"),
    )
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_disputes",
        help_text=_("Staff or moderator who resolved this dispute"),
    )
    resolution_note = models.TextField(
        blank=True,
        help_text=_("Notes on how dispute was resolved"),
    )
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "disputes"
        verbose_name = _("Dispute")
        verbose_name_plural = _("Disputes")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["raised_by"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(status__in=["open", "under_review"]),
                name="unique_active_dispute_per_order",
            ),
        ]

    def __str__(self):
        return f"Dispute({self.order_id}) by {self.raised_by_id} - {self.get_reason_display()}"

    @property
    def is_active(self):
        return self.status in ACTIVE_DISPUTE_STATUSES
