from rest_framework import serializers

from apps.core.serializers import TimestampedModelSerializer
from apps.listings.models import Listing

from .models import Offer, OfferHistory


class OfferSerializer(TimestampedModelSerializer):
    """Offer row as the API and the realtime channel see it."""

    agreed_amount = serializers.IntegerField(read_only=True)

    class Meta:
        model = Offer
        fields = [
            "id",
            "listing",
            "buyer",
            "seller",
            "amount",
            "message",
            "counter_amount",
            "agreed_amount",
            "status",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OfferHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OfferHistory
        fields = ["id", "action", "user", "amount", "timestamp", "notes"]
        read_only_fields = fields


class OfferDetailSerializer(OfferSerializer):
    history = OfferHistorySerializer(many=True, read_only=True)
    listing_title = serializers.CharField(source="listing.title", read_only=True)
    listing_price = serializers.IntegerField(source="listing.price", read_only=True)

    class Meta(OfferSerializer.Meta):
        fields = OfferSerializer.Meta.fields + [
            "listing_title",
            "listing_price",
            "history",
        ]
        read_only_fields = fields


class OfferProposeSerializer(serializers.Serializer):
    listing = serializers.PrimaryKeyRelatedField(queryset=Listing.objects.all())
    amount = serializers.IntegerField()
    message = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, max_length=1000
    )


class OfferCounterSerializer(serializers.Serializer):
    counter_amount = serializers.IntegerField()


class OfferRespondSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=["accept", "decline"])
