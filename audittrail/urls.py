# audittrail/urls.py
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ActivityLogViewSet

app_name = "audittrail"

router = DefaultRouter()
router.register(r"logs", ActivityLogViewSet, basename="audit-logs")

urlpatterns = [
    path("", include(router.urls)),
]
