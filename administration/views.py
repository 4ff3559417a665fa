# administration/views.py
import logging

from rest_framework.decorators import api_view
from rest_framework.response import Response

from audittrail.models import ActivityLog
from audittrail.services import log_activity
from authentication.helpers import serialize_user
from authentication.models import User, InvalidStateError

from . import services

log = logging.getLogger(__name__)


def _admin_or_denial(request, attempted_action: str):
    """Return (admin, None) for administrators, else (None, 403 response)."""
    user = getattr(request, "user", None)
    if isinstance(user, User) and user.is_authenticated and user.is_admin:
        return user, None

    if isinstance(user, User):
        log_activity(
            user=user,
            action=ActivityLog.Action.UNAUTHORIZED_ACCESS,
            resource_type=ActivityLog.ResourceType.ADMIN,
            request=request,
            details={"attempted_action": attempted_action},
        )
        log.warning("non-admin %s attempted %s", user.username, attempted_action)
    return None, Response({"error": "관리자 권한이 필요합니다."}, status=403)


def _transition(request, user_id, attempted_action, fn, message):
    admin, denied = _admin_or_denial(request, attempted_action)
    if denied:
        return denied
    try:
        target = fn(admin, user_id, request=request)
    except services.UserNotFound:
        return Response({"error": "사용자를 찾을 수 없습니다."}, status=404)
    except InvalidStateError as e:
        return Response({"error": str(e)}, status=409)
    return Response({"message": message, "user": serialize_user(target)}, status=200)


@api_view(["GET"])
def pending_users(request):
    _, denied = _admin_or_denial(request, "LIST_PENDING_USERS")
    if denied:
        return denied
    return Response({"users": [serialize_user(u) for u in services.pending_users()]}, status=200)


@api_view(["POST"])
def approve_user(request, user_id):
    return _transition(request, user_id, "APPROVE_USER_ATTEMPT", services.approve_user, "사용자가 승인되었습니다.")


@api_view(["POST"])
def reject_user(request, user_id):
    return _transition(request, user_id, "REJECT_USER_ATTEMPT", services.reject_user, "사용자가 거부되었습니다.")


@api_view(["POST"])
def promote_user(request, user_id):
    return _transition(request, user_id, "PROMOTE_ATTEMPT", services.promote_to_admin,
                       "사용자가 관리자로 승격되었습니다.")


@api_view(["POST"])
def bulk_approve(request):
    admin, denied = _admin_or_denial(request, "BULK_APPROVE_ATTEMPT")
    if denied:
        return denied

    data = request.data
    user_ids = data.get("user_ids") if isinstance(data, dict) else data
    if not isinstance(user_ids, list) or not user_ids:
        return Response({"error": "user_ids 목록이 필요합니다."}, status=400)

    approved = services.bulk_approve(admin, user_ids, request=request)
    return Response(
        {
            "message": f"{len(approved)}명의 사용자가 승인되었습니다.",
            "approved": [serialize_user(u) for u in approved],
        },
        status=200,
    )


@api_view(["GET"])
def statistics(request):
    _, denied = _admin_or_denial(request, "VIEW_STATISTICS")
    if denied:
        return denied
    return Response(services.user_statistics().as_dict(), status=200)
