# chat/context.py
"""
Prompt assembly for the inference server.

A prompt is the fixed assistant preamble, a tail window of the chat history
that fits the token budget, and the current question. A "forget everything"
request short-circuits to a fixed reset template with no history at all.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from django.conf import settings

from . import tokens
from .errors import InvalidInput

logger = logging.getLogger(__name__)

CONTEXT_WINDOW = 32_000
CONTEXT_RATIO = 0.8
MAX_CONTEXT_MESSAGES = 70
HISTORY_PREVIEW_CHARS = 200

DEFAULT_RESET_KEYWORDS = (
    "이전 대화 잊어버려", "이전 대화 잊어", "대화 잊어버려",
    "대화 내용 초기화", "대화 초기화", "컨텍스트 초기화",
    "새로 시작해", "새로 시작하자", "처음부터 시작",
    "리셋", "reset", "clear",
    "기억 지워", "기억 삭제", "잊어버려",
    "대화 지워", "히스토리 삭제", "이전 내용 삭제",
)

RESET_ACK = "네, 이전 대화 내용을 모두 잊었습니다. 새로운 대화를 시작하겠습니다. 무엇을 도와드릴까요?"

RESET_TEMPLATE = (
    "=== 대화 초기화 요청 ===\n"
    "이전 대화 내용을 모두 잊고 새로운 대화를 시작합니다.\n\n"
    "현재 질문: {message}\n\n"
    "답변: " + RESET_ACK
)

SYSTEM_PREAMBLE = (
    "=== Gemma 3n AI 어시스턴트 지침 ===\n"
    "모델: Google Gemma 3n (효율적 온디바이스 멀티모달 모델)\n"
    "역할: 친근하고 도움이 되는 한국어 전문 AI 어시스턴트\n\n"
    "핵심 원칙:\n"
    "• 정확하고 실용적인 정보를 간결하게 제공\n"
    "• 친근하고 자연스러운 한국어 대화 스타일 유지\n"
    "• 이전 대화 맥락을 적극 활용한 일관된 답변\n"
    "• 불확실한 정보는 명확히 구분하여 표시\n"
    "• 복잡한 내용은 단계별로 체계적으로 설명\n"
    "• 텍스트와 이미지를 함께 고려한 멀티모달 이해\n\n"
    "응답 가이드라인:\n"
    "• 사용자 의도를 정확히 파악하고 개인화된 답변 제공\n"
    "• 한국 문화와 언어 특성을 고려한 적절한 표현 사용\n"
    "• 필요시 구체적 예시나 친숙한 비유 활용\n"
    "• 추가 궁금증을 예상하고 관련 정보나 도움 제안\n"
    "• 같은 질문에는 항상 일관된 정보 제공\n"
    "• 온디바이스 환경의 장점(개인정보 보호, 빠른 응답)을 활용\n\n"
)

CONSISTENCY_REMINDER = "\n\n답변 시 위의 이전 대화를 참고하여 일관성 있게 답변하세요."

ROLE_LABELS = {"USER": "사용자", "ASSISTANT": "AI"}


def _role_name(role) -> str:
    return str(getattr(role, "value", role)).upper()


def _has_image(url) -> bool:
    return bool(url and str(url).strip())


def _preview(content: str) -> str:
    if len(content) > HISTORY_PREVIEW_CHARS:
        return content[:HISTORY_PREVIEW_CHARS - 3] + "..."
    return content


def default_token_budget() -> int:
    window = getattr(settings, "CHAT_CONTEXT_WINDOW", CONTEXT_WINDOW)
    ratio = getattr(settings, "CHAT_CONTEXT_RATIO", CONTEXT_RATIO)
    return int(window * ratio)


@dataclass
class PromptContext:
    """Per-request input to prompt assembly. Never persisted."""
    message: str
    image_url: Optional[str] = None
    history: List = field(default_factory=list)
    is_reset: bool = False


@dataclass
class ContextBuilder:
    token_budget: int = CONTEXT_WINDOW * 8 // 10
    max_messages: int = MAX_CONTEXT_MESSAGES
    reset_keywords: Sequence[str] = DEFAULT_RESET_KEYWORDS

    @classmethod
    def from_settings(cls) -> "ContextBuilder":
        return cls(
            token_budget=default_token_budget(),
            max_messages=getattr(settings, "CHAT_MAX_CONTEXT_MESSAGES", MAX_CONTEXT_MESSAGES),
            reset_keywords=tuple(getattr(settings, "CHAT_RESET_KEYWORDS", DEFAULT_RESET_KEYWORDS)),
        )

    # ---- steps ----

    def is_reset_request(self, message: str) -> bool:
        normalized = (message or "").casefold().strip()
        return any(k.casefold() in normalized for k in self.reset_keywords if k)

    def select_history(self, prior_messages: Iterable) -> List:
        """
        Newest-first walk over the visible history: take messages while the
        running estimate stays within the budget and the count under the cap.
        Returned in chronological order.
        """
        visible = [m for m in prior_messages if not getattr(m, "exclude_from_context", False)]
        used = 0
        taken = []
        for msg in reversed(visible):
            cost = tokens.estimate(msg.content)
            if used + cost > self.token_budget:
                break
            used += cost
            taken.append(msg)
            if len(taken) >= self.max_messages:
                break
        taken.reverse()
        logger.debug("context window: %d/%d messages, ~%d tokens", len(taken), len(visible), used)
        return taken

    def prepare(self, message: str, image_url: Optional[str] = None, prior_messages: Iterable = ()) -> PromptContext:
        if message is None or not str(message).strip():
            raise InvalidInput("메시지는 필수입니다.")
        if self.is_reset_request(message):
            return PromptContext(message=message, image_url=image_url, is_reset=True)
        return PromptContext(
            message=message,
            image_url=image_url,
            history=self.select_history(prior_messages or ()),
        )

    def render(self, ctx: PromptContext) -> str:
        if ctx.is_reset:
            return RESET_TEMPLATE.format(message=ctx.message)

        parts = [SYSTEM_PREAMBLE]

        if ctx.history:
            parts.append("이전 대화 내용:\n")
            for msg in ctx.history:
                label = ROLE_LABELS.get(_role_name(msg.role), "AI")
                parts.append(f"{label}: {_preview(msg.content)}\n")
                image = getattr(msg, "image_url", None)
                if _has_image(image):
                    parts.append(f"  (이미지: {image})\n")
            parts.append("\n")

        parts.append("현재 질문:\n")
        if _has_image(ctx.image_url):
            parts.append(f"이미지 URL: {ctx.image_url}\n")
        parts.append(ctx.message)
        parts.append(CONSISTENCY_REMINDER)
        return "".join(parts)

    def build(self, message: str, image_url: Optional[str] = None, prior_messages: Iterable = ()) -> str:
        return self.render(self.prepare(message, image_url, prior_messages))


def build_prompt(current_message: str, image_url: Optional[str] = None,
                 prior_messages: Iterable = (), reset_keywords: Optional[Sequence[str]] = None) -> str:
    """Assemble the prompt for ``current_message`` using configured limits."""
    builder = ContextBuilder.from_settings()
    if reset_keywords is not None:
        builder.reset_keywords = tuple(reset_keywords)
    return builder.build(current_message, image_url, prior_messages)
