from rest_framework import serializers

from apps.core.serializers import TimestampedModelSerializer

from .models import Order, OrderTracking


class OrderSerializer(TimestampedModelSerializer):
    class Meta:
        model = Order
        fields = [
            "id",
            "listing",
            "offer",
            "buyer",
            "seller",
            "amount",
            "service_fee",
            "total",
            "status",
            "payment_reference",
            "tracking_number",
            "carrier",
            "paid_at",
            "shipped_at",
            "delivery_confirmed_at",
            "delivery_photo_url",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderTrackingSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderTracking
        fields = [
            "id",
            "status",
            "notes",
            "photo_url",
            "location",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields


class OrderDetailSerializer(OrderSerializer):
    tracking = OrderTrackingSerializer(many=True, read_only=True)
    listing_title = serializers.CharField(source="listing.title", read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["listing_title", "tracking"]
        read_only_fields = fields


class ConfirmDeliverySerializer(serializers.Serializer):
    photo_url = serializers.URLField(
        required=False, allow_blank=True, allow_null=True, max_length=500
    )


class ShipOrderSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(required=False, allow_blank=True, max_length=100)
    carrier = serializers.CharField(required=False, allow_blank=True, max_length=100)
