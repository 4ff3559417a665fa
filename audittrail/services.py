# audittrail/services.py
import logging

from authentication.helpers import client_ip
from authentication.models import User

from .models import ActivityLog

logger = logging.getLogger(__name__)

USER_AGENT_MAX = 500


def log_activity(*, user=None, action="", resource_type="", resource_id=None, request=None, details=None):
    details = dict(details or {})

    username = ""
    if user is not None and hasattr(user, "username"):
        username = user.username

    if not username and details.get("username"):
        username = details["username"]

    # anonymous users and foreign objects keep their name only
    if user is not None and not isinstance(user, User):
        user = None

    ip = client_ip(request) if request else None
    ua = request.META.get("HTTP_USER_AGENT", "") if request else ""
    req_id = request.META.get("HTTP_X_REQUEST_ID", "") if request else ""

    entry = ActivityLog.objects.create(
        user=user,
        username=username,
        action=action,
        resource_type=resource_type,
        resource_id="" if resource_id is None else str(resource_id),
        ip_address=ip or None,
        user_agent=ua[:USER_AGENT_MAX],
        request_id=req_id,
        details=details,
    )
    logger.info("audit action=%s resource=%s:%s user=%s", action, resource_type, entry.resource_id, username or "-")
    return entry
