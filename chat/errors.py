# chat/errors.py
"""
Error taxonomy for the chat core.

Every error carries an ``ErrorCode`` from a fixed catalog. Clients only ever
see the catalog message; the underlying cause stays in logs and Sentry.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    INTERNAL = "INTERNAL"


MESSAGES = {
    ErrorCode.INVALID_INPUT: "입력값이 올바르지 않습니다.",
    ErrorCode.NOT_FOUND: "채팅을 찾을 수 없습니다.",
    ErrorCode.INVALID_STATE: "요청을 처리할 수 없는 상태입니다.",
    ErrorCode.UPSTREAM_UNAVAILABLE: "죄송합니다. AI 서비스에 연결할 수 없습니다. 잠시 후 다시 시도해주세요.",
    ErrorCode.UPSTREAM_TIMEOUT: "죄송합니다. AI 응답 시간이 초과되었습니다. 잠시 후 다시 시도해주세요.",
    ErrorCode.INTERNAL: "죄송합니다. 알 수 없는 오류가 발생했습니다.",
}


def user_message(code: ErrorCode) -> str:
    return MESSAGES.get(code, MESSAGES[ErrorCode.INTERNAL])


class ChatError(Exception):
    code = ErrorCode.INTERNAL
    status = 500

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.code.value)
        self.detail = detail

    @property
    def public_message(self) -> str:
        return user_message(self.code)


class InvalidInput(ChatError):
    """Empty or oversized message/title. Raised before any side effect."""
    code = ErrorCode.INVALID_INPUT
    status = 400

    @property
    def public_message(self) -> str:
        # validation details are written by us, never by a dependency
        return self.detail or user_message(self.code)


class NotFound(ChatError):
    code = ErrorCode.NOT_FOUND
    status = 404


class InvalidState(ChatError):
    code = ErrorCode.INVALID_STATE
    status = 409

    @property
    def public_message(self) -> str:
        return self.detail or user_message(self.code)


class UpstreamUnavailable(ChatError):
    """Inference server unreachable, non-2xx or malformed payload."""
    code = ErrorCode.UPSTREAM_UNAVAILABLE
    status = 502


class InferenceTimeout(UpstreamUnavailable):
    """Inference call exceeded the configured timeout."""
    code = ErrorCode.UPSTREAM_TIMEOUT
    status = 504
