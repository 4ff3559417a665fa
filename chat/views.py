# chat/views.py
import functools
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django_ratelimit.decorators import ratelimit
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from authentication.models import User
from authentication.permissions import IsApprovedUser

from . import sse
from .errors import ChatError, NotFound
from .service import ChatService

log = logging.getLogger(__name__)

RATE_LIMITED_MSG = "요청이 너무 많습니다. 잠시 후 다시 시도해주세요."


def get_service() -> ChatService:
    return ChatService()


def _data(request) -> dict:
    data = getattr(request, "data", None)
    return data if isinstance(data, dict) else {}


def _chat_json(chat) -> dict:
    return {
        "id": str(chat.id),
        "title": chat.title,
        "createdAt": chat.created_at.isoformat(),
        "updatedAt": chat.updated_at.isoformat(),
    }


def _error(e: ChatError) -> Response:
    if e.status >= 500:
        log.error("chat request failed code=%s: %s", e.code.value, e)
    return Response({"error": e.public_message, "code": e.code.value}, status=e.status)


def handles_chat_errors(view):
    """Turn ChatError into the catalog JSON response; other errors propagate."""
    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except ChatError as e:
            return _error(e)
    return wrapper


@api_view(["GET", "POST"])
@permission_classes([IsApprovedUser])
@handles_chat_errors
def chats(request):
    """GET: the user's active chats, newest activity first (``?q=`` searches titles)
       POST: create a chat
    """
    service = get_service()
    if request.method == "GET":
        qs = service.list_chats(request.user, request.query_params.get("q"))
        return Response({"chats": [_chat_json(c) for c in qs]}, status=200)

    chat = service.create_chat(request.user, _data(request).get("title"), request=request)
    return Response(_chat_json(chat), status=201)


@api_view(["GET", "DELETE"])
@permission_classes([IsApprovedUser])
@handles_chat_errors
def chat_detail(request, chat_id):
    service = get_service()
    if request.method == "GET":
        return Response(_chat_json(service.get_chat(request.user, chat_id)), status=200)

    service.delete_chat(request.user, chat_id, request=request)
    return Response(status=204)


@api_view(["PUT"])
@permission_classes([IsApprovedUser])
@handles_chat_errors
def chat_title(request, chat_id):
    chat = get_service().update_title(request.user, chat_id, _data(request).get("title"), request=request)
    return Response(_chat_json(chat), status=200)


@api_view(["GET", "POST"])
@permission_classes([IsApprovedUser])
@ratelimit(key="ip", rate="30/m", method="POST", block=False)
@handles_chat_errors
def messages(request, chat_id):
    """GET: history, oldest first. POST: synchronous send, returns both messages."""
    service = get_service()
    if request.method == "GET":
        history = service.history(request.user, chat_id)
        return Response({"messages": [m.as_dict() for m in history]}, status=200)

    if getattr(request, "limited", False):
        log.warning("message rate limit exceeded for IP: %s", request.META.get("REMOTE_ADDR"))
        return Response({"error": RATE_LIMITED_MSG}, status=429)

    data = _data(request)
    exchange = service.send_message(request.user, chat_id, data.get("content"),
                                    data.get("imageUrl"), request=request)
    return Response(
        {
            "userMessage": exchange.user_message.as_dict(),
            "assistantMessage": exchange.assistant_message.as_dict() if exchange.assistant_message else None,
        },
        status=201,
    )


@api_view(["PATCH"])
@permission_classes([IsApprovedUser])
@handles_chat_errors
def message_context(request, chat_id, message_id):
    excluded = _data(request).get("excludeFromContext")
    if not isinstance(excluded, bool):
        return Response({"error": "excludeFromContext 값이 필요합니다.", "code": "INVALID_INPUT"}, status=400)
    msg = get_service().set_message_context(request.user, chat_id, message_id, excluded, request=request)
    return Response(msg.as_dict(), status=200)


# ---- streaming ----

@api_view(["POST"])
@permission_classes([IsApprovedUser])
@ratelimit(key="ip", rate="30/m", method="POST", block=False)
@handles_chat_errors
def stream_message(request, chat_id):
    """Persist the message and start streaming the reply to ``events/`` subscribers."""
    if getattr(request, "limited", False):
        log.warning("stream rate limit exceeded for IP: %s", request.META.get("REMOTE_ADDR"))
        return Response({"error": RATE_LIMITED_MSG}, status=429)

    data = _data(request)
    session, user_msg = get_service().start_stream(request.user, chat_id, data.get("content"),
                                                   data.get("imageUrl"), request=request)
    return Response(
        {"sessionId": session.session_id, "chatId": str(session.chat_id), "messageId": str(user_msg.id)},
        status=202,
    )


@api_view(["POST"])
@permission_classes([IsApprovedUser])
@handles_chat_errors
def join_chat(request, chat_id):
    chat = get_service().get_chat(request.user, chat_id)
    return Response({"chatId": str(chat.id), "status": "joined"}, status=200)


@require_GET
def events(request, chat_id):
    """SSE subscription to one chat's reply events (owner only)."""
    user = getattr(request, "user", None)
    if not isinstance(user, User) or not user.is_authenticated:
        return JsonResponse({"error": "unauthorized"}, status=401)
    try:
        chat = get_service().get_chat(user, chat_id)
    except NotFound as e:
        return JsonResponse({"error": e.public_message, "code": e.code.value}, status=e.status)
    return sse.stream_response(chat.id)
