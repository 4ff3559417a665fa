import json
from django.http import JsonResponse
from authentication.models import User


def parse_json_body(request):
    raw = request.body or b''
    if not raw.strip():
        return {}, None
    try:
        text = raw.decode('utf-8')
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None, JsonResponse({"error": "invalid payload"}, status=400)
    if not isinstance(data, dict):
        return None, JsonResponse({"error": "invalid payload"}, status=400)
    return data, None


def get_user_by_email_or_none(email):
    try:
        return User.objects.get(email=(email or "").lower().strip())
    except User.DoesNotExist:
        return None


def client_ip(request):
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def set_user_session(request, user):
    request.session['user_id'] = str(user.user_id)
    request.session['username'] = user.username
    request.session['user_role'] = user.role


def serialize_user(user):
    return {
        "id": str(user.user_id),
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "status": user.status,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "approved_at": user.approved_at.isoformat() if user.approved_at else None,
    }
