import json
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from rest_framework.renderers import JSONRenderer

logger = logging.getLogger("realtime")

INSERT = "insert"
UPDATE = "update"


def user_group(user_id) -> str:
    return f"user_{user_id}"


def _registry():
    from apps.chat.models import ChatMessage
    from apps.chat.serializers import ChatMessageSerializer
    from apps.disputes.models import Dispute
    from apps.disputes.serializers import DisputeSerializer
    from apps.escrow.models import EscrowHold
    from apps.escrow.serializers import EscrowHoldSerializer
    from apps.offers.models import Offer
    from apps.offers.serializers import OfferSerializer
    from apps.orders.models import Order
    from apps.orders.serializers import OrderSerializer

    return {
        Offer: ("offers", OfferSerializer),
        Order: ("orders", OrderSerializer),
        EscrowHold: ("escrow_holds", EscrowHoldSerializer),
        Dispute: ("disputes", DisputeSerializer),
        ChatMessage: ("chat_messages", ChatMessageSerializer),
    }


def to_primitive(data):
    """Plain JSON types only, so any channel layer backend can carry the row."""
    return json.loads(JSONRenderer().render(data))


def serialize_row(instance):
    table, serializer_class = _registry()[type(instance)]
    return table, to_primitive(serializer_class(instance).data)


def serialize_rows(queryset):
    rows = [serialize_row(instance)[1] for instance in queryset]
    return rows


def parties_for(instance):
    """Users whose sessions should hear about a change to ``instance``."""
    if hasattr(instance, "buyer_id") and hasattr(instance, "seller_id"):
        return {instance.buyer_id, instance.seller_id}
    order = instance.order
    return {order.buyer_id, order.seller_id}


def publish_row_change(instance, event=UPDATE):
    """
    Push ``{event, table, row}`` to both parties once the surrounding
    transaction commits. Delivery is best effort: failures are logged and
    sessions recover on their next resync.
    """
    try:
        table, row = serialize_row(instance)
        user_ids = parties_for(instance)
    except Exception as e:
        logger.error(f"Could not build change event for {instance!r}: {str(e)}")
        return

    message = {"type": "row.changed", "event": event, "table": table, "row": row}

    def _send():
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return
        for user_id in user_ids:
            try:
                async_to_sync(channel_layer.group_send)(user_group(user_id), message)
            except Exception as e:
                logger.error(
                    f"Failed to publish {event} on {table} {row.get('id')} "
                    f"to user {user_id}: {str(e)}"
                )

    transaction.on_commit(_send)
