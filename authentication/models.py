from django.db import models
import uuid
from django.core.validators import MinLengthValidator
from django.utils import timezone


class InvalidStateError(Exception):
    """Raised when an approval transition is attempted from a non-pending state."""


class User(models.Model):
    class Role(models.TextChoices):
        USER = "USER", "User"
        ADMIN = "ADMIN", "Admin"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    user_id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    username = models.CharField(
        max_length=50,
        unique=True
    )
    password = models.CharField(
        max_length=255,
        validators=[MinLengthValidator(8)]
    )
    email = models.EmailField(
        max_length=100,
        unique=True
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.USER)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)

    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.UUIDField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    last_accessed = models.DateTimeField(auto_now=True)
    created_at = models.DateTimeField(auto_now_add=True)

    USERNAME_FIELD = 'username'
    REQUIRED_FIELDS = ['email']

    class Meta:
        ordering = ("created_at",)

    def __str__(self):
        return self.username

    @classmethod
    def create_admin(cls, username, encoded_password, email):
        """Create an administrator that is approved from the start."""
        return cls.objects.create(
            username=username,
            password=encoded_password,
            email=email,
            role=cls.Role.ADMIN,
            status=cls.Status.APPROVED,
            approved_at=timezone.now(),
        )

    @property
    def is_authenticated(self):
        """
        A user counts as authenticated only when the account exists,
        is active and has been approved by an administrator.
        """
        if not getattr(self, 'user_id', None):
            return False
        if not getattr(self, 'is_active', True):
            return False
        if self.status != self.Status.APPROVED:
            return False
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN

    @property
    def is_approved(self):
        return self.status == self.Status.APPROVED

    def _decide(self, status, admin_id):
        if self.status != self.Status.PENDING:
            raise InvalidStateError("이미 처리된 사용자입니다")
        self.status = status
        self.approved_by = admin_id
        self.approved_at = timezone.now()
        self.save(update_fields=['status', 'approved_by', 'approved_at'])

    def approve(self, admin_id):
        self._decide(self.Status.APPROVED, admin_id)

    def reject(self, admin_id):
        self._decide(self.Status.REJECTED, admin_id)

    def promote(self):
        if not self.is_approved:
            raise InvalidStateError("승인된 사용자만 관리자로 승격할 수 있습니다")
        self.role = self.Role.ADMIN
        self.save(update_fields=['role'])
