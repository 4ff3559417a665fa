# audittrail/serializers.py
from rest_framework import serializers
from audittrail.models import ActivityLog


class ActivityLogSerializer(serializers.ModelSerializer):
    user_id = serializers.UUIDField(source="user.user_id", read_only=True, default=None)

    class Meta:
        model = ActivityLog
        fields = [
            "id",
            "created_at",
            "action",
            "user_id",
            "username",
            "resource_type",
            "resource_id",
            "ip_address",
            "user_agent",
            "request_id",
            "details",
        ]
