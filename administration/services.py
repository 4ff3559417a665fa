# administration/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Iterable, List

from django.core.exceptions import ValidationError
from django.db import transaction

from audittrail.models import ActivityLog
from audittrail.services import log_activity
from authentication.models import User, InvalidStateError

log = logging.getLogger(__name__)

Action = ActivityLog.Action
Resource = ActivityLog.ResourceType


class UserNotFound(Exception):
    ...


@dataclass(frozen=True)
class UserStatistics:
    total_users: int
    pending_users: int
    approved_users: int
    rejected_users: int
    admin_count: int
    user_count: int

    def as_dict(self) -> dict:
        return asdict(self)


def _get_user(user_id) -> User:
    try:
        return User.objects.get(user_id=user_id)
    except (User.DoesNotExist, ValueError, ValidationError):
        raise UserNotFound(f"사용자를 찾을 수 없습니다: {user_id}")


def pending_users() -> List[User]:
    return list(User.objects.filter(status=User.Status.PENDING).order_by("created_at"))


@transaction.atomic
def approve_user(admin: User, target_id, *, request=None) -> User:
    target = _get_user(target_id)
    target.approve(admin.user_id)
    log_activity(user=admin, action=Action.APPROVE_USER, resource_type=Resource.USER,
                 resource_id=target.user_id, request=request, details={"target": target.username})
    log.info("user %s approved by %s", target.username, admin.username)
    return target


@transaction.atomic
def reject_user(admin: User, target_id, *, request=None) -> User:
    target = _get_user(target_id)
    target.reject(admin.user_id)
    log_activity(user=admin, action=Action.REJECT_USER, resource_type=Resource.USER,
                 resource_id=target.user_id, request=request, details={"target": target.username})
    log.info("user %s rejected by %s", target.username, admin.username)
    return target


@transaction.atomic
def promote_to_admin(admin: User, target_id, *, request=None) -> User:
    target = _get_user(target_id)
    target.promote()
    log_activity(user=admin, action=Action.PROMOTE_TO_ADMIN, resource_type=Resource.USER,
                 resource_id=target.user_id, request=request, details={"target": target.username})
    return target


def bulk_approve(admin: User, user_ids: Iterable, *, request=None) -> List[User]:
    """Approve every pending user in ``user_ids``; failures are audited and skipped."""
    user_ids = list(user_ids)
    approved: List[User] = []
    for uid in user_ids:
        try:
            target = _get_user(uid)
            target.approve(admin.user_id)
            approved.append(target)
        except (UserNotFound, InvalidStateError) as e:
            log_activity(user=admin, action=Action.BULK_APPROVE_FAILED, resource_type=Resource.USER,
                         resource_id=str(uid)[:64], request=request, details={"reason": type(e).__name__})

    log_activity(user=admin, action=Action.BULK_APPROVE, resource_type=Resource.USER,
                 request=request, details={"count": len(approved), "total": len(user_ids)})
    return approved


def user_statistics() -> UserStatistics:
    qs = User.objects.all()
    return UserStatistics(
        total_users=qs.count(),
        pending_users=qs.filter(status=User.Status.PENDING).count(),
        approved_users=qs.filter(status=User.Status.APPROVED).count(),
        rejected_users=qs.filter(status=User.Status.REJECTED).count(),
        admin_count=qs.filter(role=User.Role.ADMIN).count(),
        user_count=qs.filter(role=User.Role.USER).count(),
    )
