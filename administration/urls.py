from django.urls import path
from . import views

app_name = "administration"

urlpatterns = [
    path("pending-users/", views.pending_users, name="pending_users"),
    path("users/bulk-approve/", views.bulk_approve, name="bulk_approve"),
    path("users/<uuid:user_id>/approve/", views.approve_user, name="approve_user"),
    path("users/<uuid:user_id>/reject/", views.reject_user, name="reject_user"),
    path("users/<uuid:user_id>/promote/", views.promote_user, name="promote_user"),
    path("statistics/", views.statistics, name="statistics"),
]
