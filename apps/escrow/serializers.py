from rest_framework import serializers

from apps.core.serializers import TimestampedModelSerializer

from .models import EscrowHold


class EscrowHoldSerializer(TimestampedModelSerializer):
    class Meta:
        model = EscrowHold
        fields = [
            "id",
            "order",
            "buyer",
            "seller",
            "amount",
            "commission_amount",
            "net_seller_amount",
            "delivery_confirmed_at",
            "release_at",
            "released_at",
            "status",
            "release_conditions",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ReleaseDecisionSerializer(serializers.Serializer):
    action = serializers.CharField()
    remaining_seconds = serializers.IntegerField()


def escrow_status_payload(status):
    """Serialize the dict returned by EscrowHoldService.get_escrow_status."""
    from apps.disputes.serializers import DisputeSerializer

    hold = status.get("hold")
    dispute = status.get("active_dispute")
    decision = status.get("decision")
    return {
        "hold": EscrowHoldSerializer(hold).data if hold is not None else None,
        "active_dispute": DisputeSerializer(dispute).data if dispute is not None else None,
        "decision": ReleaseDecisionSerializer(decision).data if decision is not None else None,
    }
