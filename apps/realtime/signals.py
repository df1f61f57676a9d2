from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.chat.models import ChatMessage
from apps.disputes.models import Dispute
from apps.escrow.models import EscrowHold
from apps.offers.models import Offer
from apps.orders.models import Order

from .publisher import INSERT, UPDATE, publish_row_change


@receiver(post_save, sender=Offer)
@receiver(post_save, sender=Order)
@receiver(post_save, sender=EscrowHold)
@receiver(post_save, sender=Dispute)
@receiver(post_save, sender=ChatMessage)
def publish_saved_row(sender, instance, created, **kwargs):
    """
    Sends saved rows to both parties through Django Channels. Conditional
    ``QuerySet.update()`` writes skip this signal and publish explicitly.
    """
    if kwargs.get("raw"):
        return
    publish_row_change(instance, INSERT if created else UPDATE)
