from rest_framework import serializers


class TimestampedModelSerializer(serializers.ModelSerializer):
    """
    Base for rows pushed to clients. ``updated_at`` is what the realtime
    session compares to drop late events, so it is always rendered.
    """

    created_at = serializers.DateTimeField(read_only=True)
    updated_at = serializers.DateTimeField(read_only=True)
