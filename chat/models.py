import uuid

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from .errors import InvalidState

DEFAULT_TITLE = "새 채팅"
TITLE_MAX_LENGTH = 100
CONTENT_MAX_LENGTH = 10_000


class Chat(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey("authentication.User", on_delete=models.CASCADE, related_name="chats")
    title = models.CharField(max_length=TITLE_MAX_LENGTH, default=DEFAULT_TITLE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now)
    deleted = models.BooleanField(default=False)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [models.Index(fields=["user", "deleted", "-updated_at"])]

    def __str__(self):
        return f"{self.title} ({self.id})"

    @staticmethod
    def clean_title(title) -> str:
        title = (title or "").strip()
        if not title:
            raise ValidationError("채팅 제목은 필수입니다.")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"채팅 제목은 {TITLE_MAX_LENGTH}자를 초과할 수 없습니다.")
        return title

    def _ensure_active(self):
        if self.deleted:
            raise InvalidState("삭제된 채팅입니다.")

    def touch(self):
        self.updated_at = timezone.now()
        self.save(update_fields=["updated_at"])

    def update_title(self, title):
        self._ensure_active()
        self.title = self.clean_title(title)
        self.updated_at = timezone.now()
        self.save(update_fields=["title", "updated_at"])

    def soft_delete(self):
        self._ensure_active()
        self.deleted = True
        self.updated_at = timezone.now()
        self.save(update_fields=["deleted", "updated_at"])


class Message(models.Model):
    class Role(models.TextChoices):
        USER = "USER", "User"
        ASSISTANT = "ASSISTANT", "Assistant"

    id = models.BigAutoField(primary_key=True)
    chat = models.ForeignKey(Chat, on_delete=models.CASCADE, related_name="messages")
    role = models.CharField(max_length=10, choices=Role.choices)
    content = models.TextField(max_length=CONTENT_MAX_LENGTH)
    image_url = models.CharField(max_length=2048, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    exclude_from_context = models.BooleanField(default=False)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.role}: {self.content[:40]}"

    def clean(self):
        if not self.content or not self.content.strip():
            raise ValidationError({"content": "메시지 내용은 필수입니다."})
        if len(self.content) > CONTENT_MAX_LENGTH:
            raise ValidationError({"content": f"메시지는 {CONTENT_MAX_LENGTH}자를 초과할 수 없습니다."})
        if self.image_url is not None and not self.image_url.strip():
            raise ValidationError({"image_url": "이미지 URL이 비어 있습니다."})

    def set_exclude_from_context(self, excluded: bool):
        self.exclude_from_context = bool(excluded)
        self.save(update_fields=["exclude_from_context"])

    def as_dict(self) -> dict:
        return {
            "id": str(self.id),
            "chatId": str(self.chat_id),
            "role": self.role,
            "content": self.content,
            "imageUrl": self.image_url,
            "createdAt": self.created_at.isoformat(),
            "excludeFromContext": self.exclude_from_context,
        }
