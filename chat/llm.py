# chat/llm.py
"""
Client for the on-device inference server (Ollama-compatible ``/api/generate``).

Two ways to obtain a reply progressively, behind one ``ChunkSource`` interface:

* ``SimulatedStream`` asks for the whole completion and re-segments it into
  words with a small pacing delay (``WordChunker``).
* ``NativeStream`` consumes the server's own NDJSON stream (``stream: true``).

The relay only sees ``ChunkSource.chunks()``, so switching is configuration.
"""
from __future__ import annotations

import json
import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FUTimeout
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Protocol

import requests
from django.conf import settings

from .errors import InferenceTimeout, UpstreamUnavailable
from .monitoring import track_inference

logger = logging.getLogger(__name__)

# ===== Base config =====

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "gemma3n:e4b"
DEFAULT_TIMEOUT_S = 60
DEFAULT_STREAM_DELAY_S = 0.05
GENERATE_PATH = "/api/generate"

_WHITESPACE = re.compile(r"\s+")


def _setting(name, default):
    return getattr(settings, name, None) or default


# ===== Word chunking =====

@dataclass
class WordChunker:
    """Split a finished reply into word chunks separated by single-space chunks."""

    delay: float = DEFAULT_STREAM_DELAY_S

    def split(self, text: str) -> List[str]:
        words = [w for w in _WHITESPACE.split(text or "") if w]
        chunks: List[str] = []
        for i, word in enumerate(words):
            if i:
                chunks.append(" ")
            chunks.append(word)
        return chunks

    def iter_chunks(self, text: str, cancel: Optional[threading.Event] = None) -> Iterator[str]:
        chunks = self.split(text)
        for i, chunk in enumerate(chunks):
            if cancel is not None and cancel.is_set():
                return
            yield chunk
            if i < len(chunks) - 1 and self.delay > 0:
                if cancel is not None:
                    if cancel.wait(self.delay):
                        return
                else:
                    time.sleep(self.delay)


# ===== HTTP client =====

class OllamaClient:
    """Adapter over the inference server's HTTP API."""

    def __init__(self, base_url: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None, http=None):
        self.base_url = (base_url or _setting("OLLAMA_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.model = model or _setting("OLLAMA_MODEL", DEFAULT_MODEL)
        self.timeout = float(timeout or _setting("OLLAMA_TIMEOUT", DEFAULT_TIMEOUT_S))
        self.http = http or requests

    @property
    def url(self) -> str:
        return self.base_url + GENERATE_PATH

    def _post(self, body: dict, timeout: float, stream: bool = False):
        try:
            resp = self.http.post(self.url, json=body, timeout=timeout, stream=stream)
            resp.raise_for_status()
            return resp
        except requests.Timeout as e:
            raise InferenceTimeout(f"inference timed out after {timeout}s") from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"inference request failed: {type(e).__name__}") from e

    @staticmethod
    def _parse_completion(resp) -> str:
        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable("malformed inference payload") from e
        text = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise UpstreamUnavailable("empty inference response")
        return text

    @track_inference("generate")
    def complete(self, prompt: str, model: Optional[str] = None, timeout: Optional[float] = None) -> str:
        """Return the full completion for ``prompt``."""
        timeout = float(timeout or self.timeout)
        body = {"model": model or self.model, "prompt": prompt, "stream": False}

        # one executor per call, so the deadline starts when the request does
        ex = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        try:
            fut = ex.submit(lambda: self._parse_completion(self._post(body, timeout)))
            try:
                return fut.result(timeout=timeout)
            except FUTimeout:
                logger.warning("inference_app_timeout model=%s timeout=%ss", body["model"], timeout)
                raise InferenceTimeout(f"inference timed out after {timeout}s")
        finally:
            ex.shutdown(wait=False)

    def stream_generate(self, prompt: str, model: Optional[str] = None,
                        timeout: Optional[float] = None) -> Iterator[str]:
        """Yield response fragments from the server's NDJSON stream."""
        timeout = float(timeout or self.timeout)
        body = {"model": model or self.model, "prompt": prompt, "stream": True}
        deadline = time.monotonic() + timeout
        resp = self._post(body, timeout, stream=True)
        try:
            for line in resp.iter_lines(decode_unicode=True):
                if time.monotonic() > deadline:
                    logger.warning("inference_stream_deadline model=%s timeout=%ss", body["model"], timeout)
                    raise InferenceTimeout(f"inference stream exceeded {timeout}s")
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except ValueError as e:
                    raise UpstreamUnavailable("malformed inference stream line") from e
                if not isinstance(event, dict):
                    raise UpstreamUnavailable("malformed inference stream line")
                if event.get("error"):
                    raise UpstreamUnavailable("inference server reported an error")
                piece = event.get("response") or ""
                if piece:
                    yield piece
                if event.get("done"):
                    return
        except requests.Timeout as e:
            raise InferenceTimeout(f"inference stream stalled for {timeout}s") from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"inference stream broken: {type(e).__name__}") from e
        finally:
            resp.close()

    def complete_streaming(self, prompt: str, model: Optional[str] = None, timeout: Optional[float] = None,
                           on_chunk: Optional[Callable[[str], None]] = None,
                           cancel: Optional[threading.Event] = None) -> str:
        """Deliver the reply chunk by chunk through ``on_chunk``; returns the full text."""
        source = SimulatedStream(self, WordChunker(delay=stream_delay()), model=model, timeout=timeout)
        delivered = []
        for chunk in source.chunks(prompt, cancel):
            delivered.append(chunk)
            if on_chunk is not None:
                on_chunk(chunk)
        return "".join(delivered)


# ===== Chunk sources =====

class ChunkSource(Protocol):
    def chunks(self, prompt: str, cancel: Optional[threading.Event] = None) -> Iterator[str]:
        ...


class SimulatedStream:
    """Stopgap streaming: one full completion, re-emitted word by word."""

    def __init__(self, client: OllamaClient, chunker: Optional[WordChunker] = None,
                 model: Optional[str] = None, timeout: Optional[float] = None):
        self.client = client
        self.chunker = chunker or WordChunker()
        self.model = model
        self.timeout = timeout

    def chunks(self, prompt: str, cancel: Optional[threading.Event] = None) -> Iterator[str]:
        text = self.client.complete(prompt, model=self.model, timeout=self.timeout)
        yield from self.chunker.iter_chunks(text, cancel)


class NativeStream:
    """Incremental decode straight from the server."""

    def __init__(self, client: OllamaClient, model: Optional[str] = None, timeout: Optional[float] = None):
        self.client = client
        self.model = model
        self.timeout = timeout

    def chunks(self, prompt: str, cancel: Optional[threading.Event] = None) -> Iterator[str]:
        stream = self.client.stream_generate(prompt, model=self.model, timeout=self.timeout)
        try:
            for piece in stream:
                if cancel is not None and cancel.is_set():
                    return
                yield piece
        finally:
            stream.close()


# ===== Public API =====

def stream_delay() -> float:
    value = getattr(settings, "CHAT_STREAM_DELAY", None)
    return DEFAULT_STREAM_DELAY_S if value is None else float(value)


def get_client() -> OllamaClient:
    return OllamaClient()


def get_chunk_source(client: Optional[OllamaClient] = None) -> ChunkSource:
    client = client or get_client()
    if getattr(settings, "CHAT_NATIVE_STREAMING", False):
        return NativeStream(client)
    return SimulatedStream(client, WordChunker(delay=stream_delay()))
