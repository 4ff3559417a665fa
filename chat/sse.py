import json
import logging
from queue import Empty, Queue
from threading import Lock
from typing import Dict, List, Set

from django.http import StreamingHttpResponse

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15

_clients: Dict[str, List[Queue]] = {}
_sessions: Dict[str, Set] = {}
_lock = Lock()


def topic_for(chat_id) -> str:
    return f"chat:{chat_id}"


def subscriber_count(chat_id) -> int:
    with _lock:
        return len(_clients.get(topic_for(chat_id), []))


def subscribe(chat_id) -> Queue:
    q = Queue()
    with _lock:
        _clients.setdefault(topic_for(chat_id), []).append(q)
    return q


def unsubscribe(chat_id, q: Queue) -> None:
    """Drop one subscriber; the last one leaving cancels in-flight replies for the chat."""
    topic = topic_for(chat_id)
    orphaned = ()
    with _lock:
        arr = _clients.get(topic, [])
        if q in arr:
            arr.remove(q)
        if not arr:
            _clients.pop(topic, None)
            orphaned = tuple(_sessions.get(topic, ()))
    for session in orphaned:
        logger.info("last subscriber left chat=%s, cancelling session=%s", chat_id, session.session_id)
        session.cancel()


def register_session(session) -> None:
    with _lock:
        _sessions.setdefault(topic_for(session.chat_id), set()).add(session)


def release_session(session) -> None:
    topic = topic_for(session.chat_id)
    with _lock:
        active = _sessions.get(topic)
        if active is not None:
            active.discard(session)
            if not active:
                _sessions.pop(topic, None)


def publish(chat_id, event: dict) -> int:
    """Enqueue a JSON event for every subscriber of a chat. Returns the fan-out."""
    encoded = json.dumps(event, ensure_ascii=False)
    with _lock:
        queues = list(_clients.get(topic_for(chat_id), []))
        for q in queues:
            q.put(encoded)
    return len(queues)


def publisher_for(chat_id):
    return lambda event: publish(chat_id, event)


def event_stream(chat_id, q: Queue, keepalive: float = KEEPALIVE_SECONDS):
    try:
        yield "retry: 3000\n\n"
        while True:
            try:
                data = q.get(timeout=keepalive)
            except Empty:
                yield ": keepalive\n\n"
                continue
            yield f"data: {data}\n\n"
    finally:
        unsubscribe(chat_id, q)


def stream_response(chat_id) -> StreamingHttpResponse:
    q = subscribe(chat_id)
    resp = StreamingHttpResponse(event_stream(chat_id, q), content_type="text/event-stream")
    resp["Cache-Control"] = "no-cache"
    resp["X-Accel-Buffering"] = "no"
    return resp


def reset() -> None:
    with _lock:
        _clients.clear()
        _sessions.clear()
