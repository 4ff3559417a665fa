# chat/relay.py
"""
Streaming relay: forwards reply chunks for one in-flight AI response to its
subscribers, in production order, and ends the session with exactly one
terminal event.

    OPEN -> STREAMING -> COMPLETED   (one {"isStreaming": false} event, then persist)
                      -> FAILED      (one SYSTEM error event, nothing persisted)
                      -> CANCELLED   (subscriber gone, silent, nothing persisted)

``publish`` returns how many subscribers received the event, or None when the
transport cannot tell. A fan-out of 0 means nobody is listening any more, and
the session is cancelled instead of completed.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

from django.utils import timezone

from .errors import ChatError, ErrorCode, user_message

logger = logging.getLogger(__name__)

ROLE_ASSISTANT = "ASSISTANT"
ROLE_SYSTEM = "SYSTEM"

Publisher = Callable[[dict], Optional[int]]
CompletionHook = Callable[["StreamSession", str], Any]


class StreamState(str, Enum):
    OPEN = "OPEN"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.FAILED, StreamState.CANCELLED)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class StreamSession:
    """State of one in-flight assistant reply. Lives only as long as the task."""
    chat_id: Any
    session_id: str = field(default_factory=_new_id)
    message_id: str = field(default_factory=lambda: f"{_new_id()}_ai")
    state: StreamState = StreamState.OPEN
    error_code: Optional[ErrorCode] = None
    chunks: List[str] = field(default_factory=list)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def sequence(self) -> int:
        return len(self.chunks)

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()


def _base_event(session: StreamSession, **extra) -> dict:
    event = {
        "id": session.message_id,
        "sessionId": session.session_id,
        "chatId": str(session.chat_id),
        "timestamp": timezone.now().isoformat(),
    }
    event.update(extra)
    return event


def chunk_event(session: StreamSession, content: str) -> dict:
    return _base_event(session, type="chunk", content=content, role=ROLE_ASSISTANT,
                       isStreaming=True, sequence=session.sequence)


def completion_event(session: StreamSession) -> dict:
    return _base_event(session, type="complete", content="", role=ROLE_ASSISTANT, isStreaming=False)


def error_event(session: StreamSession, code: ErrorCode, message: str) -> dict:
    event = _base_event(session, type="error", content=message, role=ROLE_SYSTEM,
                        isStreaming=False, isError=True, code=code.value)
    event["id"] = f"{session.session_id}_error"
    return event


class StreamingRelay:
    """Delivers one session's events to ``publish`` and guards its state machine."""

    def __init__(self, publish: Publisher, on_complete: Optional[CompletionHook] = None):
        self.publish = publish
        self.on_complete = on_complete

    # ---- transitions ----

    def start(self, session: StreamSession) -> bool:
        with session._lock:
            if session.state is not StreamState.OPEN:
                return False
            session.state = StreamState.STREAMING
        logger.info("stream start chat=%s session=%s", session.chat_id, session.session_id)
        return True

    def emit_chunk(self, session: StreamSession, content: str) -> bool:
        """Forward one chunk. Returns False once the session no longer accepts chunks."""
        with session._lock:
            if session.state is not StreamState.STREAMING:
                return False
            if session.cancelled:
                session.state = StreamState.CANCELLED
                logger.info("stream cancelled chat=%s session=%s after %d chunks",
                            session.chat_id, session.session_id, session.sequence)
                return False
            if self.publish(chunk_event(session, content)) == 0:
                self._drop_unheard(session)
                return False
            session.chunks.append(content)
        return True

    def complete(self, session: StreamSession) -> bool:
        """Emit the single completion event, then hand the reply to ``on_complete``."""
        with session._lock:
            if session.state is not StreamState.STREAMING:
                return False
            if session.cancelled:
                session.state = StreamState.CANCELLED
                return False
            if self.publish(completion_event(session)) == 0:
                self._drop_unheard(session)
                return False
            session.state = StreamState.COMPLETED

        logger.info("stream complete chat=%s session=%s chunks=%d",
                    session.chat_id, session.session_id, session.sequence)
        if self.on_complete is not None:
            try:
                self.on_complete(session, session.text)
            except Exception:
                logger.exception("persisting reply failed chat=%s session=%s", session.chat_id, session.session_id)
        return True

    def fail(self, session: StreamSession, error: BaseException) -> bool:
        """Emit the single error event. Raw error text never reaches the subscriber."""
        code = error.code if isinstance(error, ChatError) else ErrorCode.INTERNAL
        with session._lock:
            if session.state is not StreamState.STREAMING:
                return False
            if session.cancelled:
                session.state = StreamState.CANCELLED
                return False
            session.state = StreamState.FAILED
            session.error_code = code
            self.publish(error_event(session, code, user_message(code)))
        return True

    @staticmethod
    def _drop_unheard(session: StreamSession) -> None:
        # caller holds session._lock
        session.cancel()
        session.state = StreamState.CANCELLED
        logger.info("no subscriber left chat=%s session=%s, cancelling after %d chunks",
                    session.chat_id, session.session_id, session.sequence)

    # ---- driver ----

    def run(self, session: StreamSession, produce: Callable[[], Iterable[str]]) -> StreamState:
        """
        Pull chunks from ``produce()`` and relay them. ``produce`` may raise at
        any point (prompt assembly, upstream call, mid-stream); that ends the
        session with an error event.
        """
        self.start(session)
        try:
            for content in produce():
                if not self.emit_chunk(session, content):
                    break
        except ChatError as e:
            if e.code is ErrorCode.UPSTREAM_TIMEOUT:
                logger.warning("stream timeout chat=%s session=%s: %s", session.chat_id, session.session_id, e)
            else:
                logger.error("stream failed chat=%s session=%s: %s", session.chat_id, session.session_id, e)
            self.fail(session, e)
        except Exception as e:
            logger.exception("stream crashed chat=%s session=%s", session.chat_id, session.session_id)
            self.fail(session, e)
        else:
            if session.cancelled:
                with session._lock:
                    if not session.state.is_terminal:
                        session.state = StreamState.CANCELLED
            else:
                self.complete(session)
        return session.state
