from rest_framework import serializers

from apps.core.serializers import TimestampedModelSerializer
from apps.listings.models import Listing

from .models import ChatMessage


class ChatMessageSerializer(TimestampedModelSerializer):
    recipient = serializers.IntegerField(source="recipient_id", read_only=True)

    class Meta:
        model = ChatMessage
        fields = [
            "id",
            "listing",
            "buyer",
            "seller",
            "sender",
            "recipient",
            "body",
            "kind",
            "offer",
            "severity",
            "overridden",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ChatMessageCreateSerializer(serializers.Serializer):
    listing = serializers.PrimaryKeyRelatedField(queryset=Listing.objects.all())
    body = serializers.CharField(allow_blank=True, trim_whitespace=False)
    buyer = serializers.IntegerField(required=False, allow_null=True)
    override = serializers.BooleanField(required=False, default=False)
