# chat/service.py
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import connection, transaction
from django.utils import timezone

from audittrail.models import ActivityLog
from audittrail.services import log_activity

from . import sse
from .context import ContextBuilder
from .errors import ChatError, InvalidInput, InvalidState, NotFound
from .llm import ChunkSource, OllamaClient, get_chunk_source, get_client
from .models import CONTENT_MAX_LENGTH, DEFAULT_TITLE, Chat, Message
from .relay import StreamSession, StreamState, StreamingRelay

log = logging.getLogger(__name__)

Action = ActivityLog.Action
Resource = ActivityLog.ResourceType

MAX_SEND_LENGTH = 5000
DEFAULT_STREAM_WORKERS = 8


# =========================
# Worker pool
# =========================

class WorkerPool:
    """Bounded pool for relay tasks; each task releases its thread's DB connection."""

    def __init__(self, max_workers: int = DEFAULT_STREAM_WORKERS):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chat-stream")

    def submit(self, fn, *args, **kwargs):
        return self._pool.submit(self._run, fn, args, kwargs)

    @staticmethod
    def _run(fn, args, kwargs):
        try:
            return fn(*args, **kwargs)
        finally:
            connection.close()

    def shutdown(self, wait: bool = True):
        self._pool.shutdown(wait=wait)


_pool: Optional[WorkerPool] = None
_pool_lock = threading.Lock()


def get_worker_pool() -> WorkerPool:
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = WorkerPool(getattr(settings, "CHAT_STREAM_WORKERS", DEFAULT_STREAM_WORKERS))
        return _pool


# =========================
# Validation helpers
# =========================

def clean_content(content) -> str:
    text = "" if content is None else str(content)
    if not text.strip():
        raise InvalidInput("메시지는 필수입니다.")
    if len(text) > MAX_SEND_LENGTH:
        raise InvalidInput(f"메시지는 {MAX_SEND_LENGTH}자를 초과할 수 없습니다.")
    return text


def clean_image_url(image_url) -> Optional[str]:
    if image_url is None:
        return None
    image_url = str(image_url).strip()
    return image_url or None


def clean_title(title) -> str:
    try:
        return Chat.clean_title(title)
    except ValidationError as e:
        raise InvalidInput(e.messages[0]) from e


def fit_reply(text: str, chat_id) -> str:
    if len(text) > CONTENT_MAX_LENGTH:
        log.warning("assistant reply truncated chat=%s length=%d", chat_id, len(text))
        return text[:CONTENT_MAX_LENGTH]
    return text


@dataclass
class Exchange:
    """One completed send: the persisted user message and the assistant reply."""
    user_message: Message
    assistant_message: Message


# =========================
# Service
# =========================

class ChatService:
    """
    Chat operations for one authenticated user.

    Collaborators are injectable so tests can swap the inference client,
    the chunk source and the executor that runs streamed replies.
    """

    def __init__(self,
                 client_factory: Callable[[], OllamaClient] = get_client,
                 source_factory: Callable[[], ChunkSource] = get_chunk_source,
                 builder_factory: Callable[[], ContextBuilder] = ContextBuilder.from_settings,
                 executor=None,
                 publisher_factory=sse.publisher_for):
        self.client_factory = client_factory
        self.source_factory = source_factory
        self.builder_factory = builder_factory
        self._executor = executor
        self.publisher_factory = publisher_factory

    @property
    def executor(self):
        return self._executor or get_worker_pool()

    # ---- chats ----

    def list_chats(self, user, query: Optional[str] = None):
        qs = Chat.objects.filter(user=user, deleted=False)
        query = (query or "").strip()
        if query:
            qs = qs.filter(title__icontains=query)
        return qs.order_by("-updated_at")

    def get_chat(self, user, chat_id) -> Chat:
        chat = Chat.objects.filter(pk=chat_id, user=user, deleted=False).first()
        if chat is None:
            raise NotFound(f"chat {chat_id} not found for user {user.user_id}")
        return chat

    def create_chat(self, user, title=None, request=None) -> Chat:
        title = DEFAULT_TITLE if title is None or not str(title).strip() else clean_title(title)
        chat = Chat.objects.create(user=user, title=title)
        log_activity(user=user, action=Action.CREATE_CHAT, resource_type=Resource.CHAT,
                     resource_id=chat.id, request=request, details={"title": chat.title})
        return chat

    def update_title(self, user, chat_id, title, request=None) -> Chat:
        chat = self.get_chat(user, chat_id)
        old = chat.title
        chat.update_title(clean_title(title))
        log_activity(user=user, action=Action.UPDATE_CHAT, resource_type=Resource.CHAT,
                     resource_id=chat.id, request=request, details={"old_title": old, "new_title": chat.title})
        return chat

    def delete_chat(self, user, chat_id, request=None) -> None:
        chat = self.get_chat(user, chat_id)
        chat.soft_delete()
        log_activity(user=user, action=Action.DELETE_CHAT, resource_type=Resource.CHAT,
                     resource_id=chat.id, request=request, details={"title": chat.title})

    # ---- messages ----

    def history(self, user, chat_id) -> List[Message]:
        chat = self.get_chat(user, chat_id)
        return list(chat.messages.all())

    def set_message_context(self, user, chat_id, message_id, excluded: bool, request=None) -> Message:
        chat = self.get_chat(user, chat_id)
        msg = chat.messages.filter(pk=message_id).first()
        if msg is None:
            raise NotFound(f"message {message_id} not in chat {chat_id}")
        msg.set_exclude_from_context(excluded)
        log_activity(user=user, action=Action.UPDATE_MESSAGE_CONTEXT, resource_type=Resource.MESSAGE,
                     resource_id=msg.id, request=request, details={"excludeFromContext": msg.exclude_from_context})
        return msg

    def _record_user_message(self, user, chat: Chat, content: str, image_url: Optional[str],
                             request=None, streaming: bool = False):
        """Persist the user's message first; returns (message, history before it)."""
        with transaction.atomic():
            prior = list(chat.messages.all())
            msg = Message.objects.create(chat=chat, role=Message.Role.USER, content=content, image_url=image_url)
            chat.touch()
        log_activity(user=user, action=Action.SEND_MESSAGE, resource_type=Resource.MESSAGE,
                     resource_id=msg.id, request=request,
                     details={"chatId": str(chat.id), "length": len(content), "streaming": streaming})
        return msg, prior

    def _save_reply(self, chat_id, text: str) -> Optional[Message]:
        if not text or not text.strip():
            log.warning("empty assistant reply not persisted chat=%s", chat_id)
            return None
        with transaction.atomic():
            reply = Message.objects.create(chat_id=chat_id, role=Message.Role.ASSISTANT,
                                           content=fit_reply(text, chat_id))
            Chat.objects.filter(pk=chat_id).update(updated_at=timezone.now())
        return reply

    def send_message(self, user, chat_id, content, image_url=None, request=None) -> Exchange:
        """Synchronous send: persist, ask the model, persist the reply."""
        chat = self.get_chat(user, chat_id)
        content = clean_content(content)
        image_url = clean_image_url(image_url)

        user_msg, prior = self._record_user_message(user, chat, content, image_url, request=request)
        try:
            prompt = self.builder_factory().build(content, image_url, prior)
            text = self.client_factory().complete(prompt)
        except ChatError as e:
            log.warning("sync reply failed chat=%s code=%s: %s", chat.id, e.code.value, e)
            log_activity(user=user, action=Action.AI_ERROR, resource_type=Resource.CHAT,
                         resource_id=chat.id, request=request, details={"code": e.code.value})
            raise

        reply = self._save_reply(chat.id, text)
        return Exchange(user_message=user_msg, assistant_message=reply)

    # ---- streaming ----

    def start_stream(self, user, chat_id, content, image_url=None, request=None):
        """
        Persist the user message and hand the reply to the worker pool. The
        chat needs a live ``events/`` subscriber first, there is no replay.
        Returns ``(session, user_message)``; events arrive on the chat's SSE topic.
        """
        chat = self.get_chat(user, chat_id)
        content = clean_content(content)
        image_url = clean_image_url(image_url)
        if sse.subscriber_count(chat.id) == 0:
            raise InvalidState("이벤트 구독(events/) 후에 메시지를 전송해주세요.")

        user_msg, prior = self._record_user_message(user, chat, content, image_url,
                                                    request=request, streaming=True)
        session = StreamSession(chat_id=chat.id)
        sse.register_session(session)
        try:
            self.executor.submit(self.run_stream, session, user, content, image_url, prior)
        except RuntimeError:
            sse.release_session(session)
            raise
        return session, user_msg

    def run_stream(self, session: StreamSession, user, content: str,
                   image_url: Optional[str], prior: List[Message]) -> StreamState:
        relay = StreamingRelay(self.publisher_factory(session.chat_id),
                               on_complete=lambda s, text: self._save_reply(s.chat_id, text))

        def produce():
            prompt = self.builder_factory().build(content, image_url, prior)
            yield from self.source_factory().chunks(prompt, session.cancel_event)

        try:
            state = relay.run(session, produce)
        finally:
            sse.release_session(session)

        if state is StreamState.FAILED:
            log_activity(user=user, action=Action.AI_ERROR, resource_type=Resource.CHAT,
                         resource_id=session.chat_id,
                         details={"code": session.error_code.value, "sessionId": session.session_id})
        return state
