from django.urls import path, include

urlpatterns = [
    path("api/auth/", include("authentication.urls")),
    path("api/chats/", include("chat.urls")),
    path("api/admin/", include("administration.urls")),
    path("api/audit/", include("audittrail.urls")),
    path("", include("django_prometheus.urls")),
]
