import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.models import BaseModel


class OrderStatus(models.TextChoices):
    PENDING_PAYMENT = "pending_payment", _("Pending Payment")
    PAID = "paid", _("Paid")
    SHIPPED = "shipped", _("Shipped")
    DELIVERED = "delivered", _("Delivered")
    CANCELLED = "cancelled", _("Cancelled")
    REFUNDED = "refunded", _("Refunded")


class Order(BaseModel):
    """
    A payable order, usually materialized from an accepted offer.
    ``amount`` is the agreed price, ``total`` what the buyer pays.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    listing = models.ForeignKey(
        "listings.Listing", on_delete=models.PROTECT, related_name="orders"
    )
    offer = models.ForeignKey(
        "offers.Offer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
        help_text=_("The accepted offer this order came from"),
    )
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="purchases"
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="sales"
    )
    amount = models.PositiveIntegerField(help_text=_("Agreed price in minor units"))
    service_fee = models.PositiveIntegerField(default=0)
    total = models.PositiveIntegerField()
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_PAYMENT,
        db_index=True,
    )
    payment_reference = models.CharField(max_length=100, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True)
    carrier = models.CharField(max_length=100, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivery_confirmed_at = models.DateTimeField(null=True, blank=True)
    delivery_photo_url = models.URLField(max_length=500, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["buyer", "status"]),
            models.Index(fields=["seller", "status"]),
            models.Index(fields=["listing", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["offer"],
                condition=~Q(status="cancelled"),
                name="unique_live_order_per_offer",
            ),
        ]

    def __str__(self):
        return f"Order {self.id} - {self.status}"


class TrackingStatus(models.TextChoices):
    PENDING = "Pending", _("Pending")
    PROCESSING = "Processing", _("Processing")
    SHIPPED = "Shipped", _("Shipped")
    IN_TRANSIT = "In Transit", _("In Transit")
    OUT_FOR_DELIVERY = "Out for Delivery", _("Out for Delivery")
    DELIVERED = "Delivered", _("Delivered")
    CANCELLED = "Cancelled", _("Cancelled")
    RETURNED = "Returned", _("Returned")


class OrderTracking(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="tracking")
    status = models.CharField(max_length=20, choices=TrackingStatus.choices)
    notes = models.TextField(blank=True)
    photo_url = models.URLField(max_length=500, blank=True)
    location = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "order_tracking"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.order_id} - {self.status}"
