# gibber/models/friends.py
import uuid
from tortoise import fields, models

class Friends(models.Model):
    # One row per user, created on the first accepted invitation
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user_id = fields.UUIDField(unique=True, index=True)
    friend_ids = fields.JSONField(default=list)  # peer user ids as strings

    class Meta:
        table = "friends"
