from django.http import JsonResponse
from django.views.decorators.http import require_POST, require_GET
from django.views.decorators.csrf import csrf_exempt
from django.middleware.csrf import get_token
from django.db import transaction, IntegrityError
from django.db.models import Q
from django.contrib.auth.hashers import make_password
from django_ratelimit.decorators import ratelimit

from .forms import LoginForm, RegistrationForm
from authentication.models import User
from authentication.helpers import parse_json_body, set_user_session, serialize_user
from audittrail.models import ActivityLog
from audittrail.services import log_activity

import logging

INVALID_CREDENTIALS_MSG = "이메일 또는 패스워드가 올바르지 않습니다."

logger = logging.getLogger(__name__)

Action = ActivityLog.Action
Resource = ActivityLog.ResourceType


def _first_errors(form):
    return {field: errors[0] for field, errors in form.errors.items()}


def csrf(request):
    # sets the 'csrftoken' cookie and also returns it in JSON
    return JsonResponse({"csrfToken": get_token(request)})


@csrf_exempt
@require_POST
def register(request):
    data, error = parse_json_body(request)
    if error:
        return error

    form = RegistrationForm(data)
    if not form.is_valid():
        return JsonResponse({"error": "입력값이 올바르지 않습니다.", "errors": _first_errors(form)}, status=400)

    username = form.cleaned_data['username']
    email = form.cleaned_data['email']

    if User.objects.filter(Q(username=username) | Q(email=email)).exists():
        log_activity(action=Action.REGISTER_FAILED, resource_type=Resource.USER,
                     request=request, details={"reason": "DUPLICATE", "username": username})
        return JsonResponse({"error": "이미 존재하는 사용자명 또는 이메일입니다."}, status=409)

    try:
        with transaction.atomic():
            user = User.objects.create(
                username=username,
                password=make_password(form.cleaned_data['password']),
                email=email,
            )
    except IntegrityError:
        return JsonResponse({"error": "이미 존재하는 사용자명 또는 이메일입니다."}, status=409)

    log_activity(user=user, action=Action.REGISTER, resource_type=Resource.USER,
                 resource_id=user.user_id, request=request)
    logger.info("User registered and awaiting approval: %s", user.username)

    return JsonResponse(
        {
            "user": serialize_user(user),
            "message": "회원가입이 완료되었습니다. 관리자 승인을 기다려주세요.",
        },
        status=201,
    )


@csrf_exempt
@require_POST
@ratelimit(key='ip', rate='10/m', method='POST', block=False)
def login(request):
    if getattr(request, 'limited', False):
        logger.warning("Login rate limit exceeded for IP: %s", request.META.get('REMOTE_ADDR'))
        return JsonResponse({"error": "요청이 너무 많습니다. 잠시 후 다시 시도해주세요."}, status=429)

    data, error = parse_json_body(request)
    if error:
        return error

    form = LoginForm(data)
    if not form.is_valid():
        return JsonResponse({"error": "이메일과 패스워드를 입력해주세요.", "errors": _first_errors(form)}, status=400)

    user = form.find_user()
    if user is None:
        log_activity(action=Action.LOGIN_FAILED, resource_type=Resource.USER,
                     request=request, details={"reason": "USER_NOT_FOUND"})
        return JsonResponse({"error": INVALID_CREDENTIALS_MSG}, status=401)

    if not form.password_matches(user):
        log_activity(user=user, action=Action.LOGIN_FAILED, resource_type=Resource.USER,
                     resource_id=user.user_id, request=request, details={"reason": "INVALID_PASSWORD"})
        return JsonResponse({"error": INVALID_CREDENTIALS_MSG}, status=401)

    if not user.is_authenticated:
        reason = "REJECTED" if user.status == User.Status.REJECTED else "NOT_APPROVED"
        log_activity(user=user, action=Action.LOGIN_FAILED, resource_type=Resource.USER,
                     resource_id=user.user_id, request=request, details={"reason": reason})
        return JsonResponse({"error": "관리자 승인이 필요합니다.", "status": user.status}, status=403)

    request.session.cycle_key()
    set_user_session(request, user)
    log_activity(user=user, action=Action.LOGIN_SUCCESS, resource_type=Resource.USER,
                 resource_id=user.user_id, request=request)

    return JsonResponse({"user": serialize_user(user), "message": "Login successful"}, status=200)


@csrf_exempt
@require_POST
def logout(request):
    user = getattr(request, "user", None)
    if isinstance(user, User):
        log_activity(user=user, action=Action.LOGOUT, resource_type=Resource.USER,
                     resource_id=user.user_id, request=request)
    request.session.flush()
    return JsonResponse({'message': '로그아웃되었습니다.'}, status=200)


@require_GET
def me(request):
    user = getattr(request, "user", None)
    if not isinstance(user, User):
        return JsonResponse({"error": "unauthorized"}, status=401)
    return JsonResponse({"user": serialize_user(user)}, status=200)
