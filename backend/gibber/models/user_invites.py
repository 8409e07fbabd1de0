# gibber/models/user_invites.py
"""
Database model for per-user relationship records.
Tracks every invitation a user has sent or received, by state. The state of
an invitation is positional: it is whichever list currently holds the peer id.
"""
import uuid
from enum import Enum
from tortoise import fields, models

class InviteKind(str, Enum):
    """Names of the five invitation sets (also the column names)."""
    SENT = "sent"
    RECEIVED = "received"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

class UserInvites(models.Model):
    """
    Relationship record, one per user.

    All list fields hold peer user ids as strings:
    - sent: active invitations sent by the user
    - received: active invitations received by the user
    - accepted: received invitations the user accepted
    - rejected: received invitations the user rejected
    - cancelled: sent invitations the user cancelled
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user_id = fields.UUIDField(unique=True, index=True)  # Owning user
    sent = fields.JSONField(default=list)
    received = fields.JSONField(default=list)
    accepted = fields.JSONField(default=list)
    rejected = fields.JSONField(default=list)
    cancelled = fields.JSONField(default=list)

    class Meta:
        table = "user_invites"

    def ids(self, kind: InviteKind) -> list[str]:
        return list(getattr(self, InviteKind(kind).value) or [])
