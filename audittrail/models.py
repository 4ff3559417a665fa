# audittrail/models.py
from django.db import models


class ActivityLog(models.Model):
    class Action(models.TextChoices):
        # auth / session
        REGISTER = "REGISTER", "Register"
        REGISTER_FAILED = "REGISTER_FAILED", "Register failed"
        LOGIN_SUCCESS = "LOGIN_SUCCESS", "Login success"
        LOGIN_FAILED = "LOGIN_FAILED", "Login failed"
        LOGOUT = "LOGOUT", "Logout"

        # chat
        CREATE_CHAT = "CREATE_CHAT", "Chat created"
        UPDATE_CHAT = "UPDATE_CHAT", "Chat title updated"
        DELETE_CHAT = "DELETE_CHAT", "Chat deleted"
        SEND_MESSAGE = "SEND_MESSAGE", "Message sent"
        UPDATE_MESSAGE_CONTEXT = "UPDATE_MESSAGE_CONTEXT", "Message context flag updated"
        AI_ERROR = "AI_ERROR", "AI service error"

        # admin
        APPROVE_USER = "APPROVE_USER", "User approved"
        REJECT_USER = "REJECT_USER", "User rejected"
        PROMOTE_TO_ADMIN = "PROMOTE_TO_ADMIN", "User promoted to admin"
        BULK_APPROVE = "BULK_APPROVE", "Users bulk approved"
        BULK_APPROVE_FAILED = "BULK_APPROVE_FAILED", "Bulk approval failed for user"
        UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS", "Unauthorized admin access"

    class ResourceType(models.TextChoices):
        USER = "USER", "User"
        CHAT = "CHAT", "Chat"
        MESSAGE = "MESSAGE", "Message"
        ADMIN = "ADMIN", "Admin"

    # who did it (null for system / anonymous events)
    user = models.ForeignKey(
        "authentication.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="activity_logs",
    )

    # snapshot of username at the time of the event
    username = models.CharField(max_length=150, blank=True, default="")

    # what happened
    action = models.CharField(max_length=50, choices=Action.choices)
    resource_type = models.CharField(max_length=50, choices=ResourceType.choices)
    resource_id = models.CharField(max_length=64, blank=True, default="")

    # when
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    # request context
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True, default="")
    request_id = models.CharField(max_length=128, blank=True, default="")

    # extra
    details = models.JSONField(blank=True, default=dict)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["action", "created_at"]),
            models.Index(fields=["resource_type", "resource_id"]),
        ]

    def __str__(self):
        who = self.username or "system"
        return f"[{self.action}] by {who} at {self.created_at}"

    @property
    def is_system_log(self):
        return self.user_id is None
