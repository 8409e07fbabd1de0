# gibber/models/user.py
"""
Database model for users.
Represents a user account, containing authentication credentials,
profile information and login state.
"""
import uuid
from tortoise import fields, models

class User(models.Model):
    """
    User database model.

    Relationships:
    - Has one UserInvites record (referenced by invites_id, created in the
      same transaction as the user)
    - Has at most one Friends record (created on first friendship)

    Security:
    - Password is stored as an argon2 hash (never store plain text passwords)
    - Email is unique and stored lower-cased
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)  # Primary key: unique user identifier
    first_name = fields.CharField(max_length=128)
    last_name = fields.CharField(max_length=128)
    email = fields.CharField(max_length=256, unique=True, index=True)  # Login key (unique, indexed for fast lookups)
    password_hash = fields.CharField(max_length=255)
    logged_in = fields.BooleanField(default=False)  # True while a session is attached
    last_login = fields.DatetimeField(null=True)
    invites_id = fields.UUIDField(null=True)  # Relationship record reference, stamped at creation
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "users"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return str(self.id)
