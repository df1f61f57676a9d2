from rest_framework import serializers
from django.utils.translation import gettext_lazy as _

from apps.core.serializers import TimestampedModelSerializer
from .models import RESOLUTION_STATUSES, Dispute, DisputeReason


class DisputeSerializer(TimestampedModelSerializer):
    """Dispute row as the API and the realtime channel see it."""

    reason_display = serializers.CharField(source="get_reason_display", read_only=True)
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "order",
            "raised_by",
            "reason",
            "reason_display",
            "description",
            "evidence_urls",
            "status",
            "status_display",
            "resolution_amount",
            "resolution_note",
            "resolved_by",
            "resolved_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class DisputeCreateSerializer(serializers.Serializer):
    """Serializer for opening disputes"""

    order = serializers.UUIDField(required=True)
    reason = serializers.ChoiceField(choices=DisputeReason.choices, required=True)
    description = serializers.CharField(required=True, max_length=5000)
    evidence_urls = serializers.ListField(
        child=serializers.URLField(max_length=500), required=False, max_length=10
    )


class DisputeResolutionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[(status.value, status.label) for status in RESOLUTION_STATUSES]
    )
    resolution_note = serializers.CharField(
        required=False, allow_blank=True, max_length=5000
    )
    refund_amount = serializers.IntegerField(required=False, min_value=1)

    def validate(self, attrs):
        if attrs["status"] == "resolved_partial_refund" and not attrs.get("refund_amount"):
            raise serializers.ValidationError(
                {"refund_amount": _("A partial refund needs a refund amount.")}
            )
        return attrs
