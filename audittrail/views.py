# audittrail/views.py
from rest_framework import viewsets
from rest_framework.pagination import PageNumberPagination
from rest_framework.filters import SearchFilter, OrderingFilter

from django_filters.rest_framework import DjangoFilterBackend
import django_filters

from audittrail.models import ActivityLog
from audittrail.serializers import ActivityLogSerializer
from authentication.permissions import IsAdminRole


class ActivityLogPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 200


class ActivityLogFilter(django_filters.FilterSet):
    # /api/audit/logs/?date_from=2025-11-08T00:00:00Z&date_to=2025-11-09T23:59:59Z
    date_from = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    date_to = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    user_id = django_filters.UUIDFilter(field_name="user__user_id")

    class Meta:
        model = ActivityLog
        fields = ["action", "resource_type", "username"]


class ActivityLogViewSet(viewsets.ReadOnlyModelViewSet):
    """
    GET /api/audit/logs/
    GET /api/audit/logs/?action=LOGIN_FAILED
    GET /api/audit/logs/?user_id=<uuid>
    GET /api/audit/logs/?search=chat
    """
    queryset = ActivityLog.objects.select_related("user").order_by("-created_at")
    serializer_class = ActivityLogSerializer
    pagination_class = ActivityLogPagination
    permission_classes = [IsAdminRole]

    filter_backends = [
        DjangoFilterBackend,
        SearchFilter,
        OrderingFilter,
    ]
    filterset_class = ActivityLogFilter
    search_fields = [
        "username",
        "action",
        "resource_type",
        "resource_id",
    ]
    ordering_fields = ["created_at", "id"]
    ordering = ["-created_at"]
