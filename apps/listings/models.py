from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.core.models import BaseModel


class ListingStatus(models.TextChoices):
    ACTIVE = "active", _("Active")
    SOLD = "sold", _("Sold")
    ARCHIVED = "archived", _("Archived")


class Listing(BaseModel):
    """
    The item a buyer negotiates over. Only the fields the negotiation and
    settlement flow read are kept here; catalog details live elsewhere.
    """

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listings",
        help_text=_("User selling the item"),
    )
    title = models.CharField(max_length=255)
    price = models.PositiveIntegerField(
        help_text=_("Asking price in minor units (cents)")
    )
    status = models.CharField(
        max_length=20,
        choices=ListingStatus.choices,
        default=ListingStatus.ACTIVE,
        db_index=True,
    )

    class Meta:
        db_table = "listings"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.title} ({self.price})"

    @property
    def is_active(self):
        return self.status == ListingStatus.ACTIVE
