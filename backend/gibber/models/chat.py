# gibber/models/chat.py
"""
Database models for chats.
A Chat exists once per unordered user pair; the pair is stored in canonical
order (user_1 sorts lower than user_2 as a string) so both users read and
write the same record.
"""
import uuid
from tortoise import fields, models

class Chat(models.Model):
    """
    Chat between two users.

    Relationships:
    - Has many ChatMessage rows (one-to-many, via related_name="messages")
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user_1 = fields.CharField(max_length=36, index=True)  # Lower id of the pair
    user_2 = fields.CharField(max_length=36, index=True)  # Higher id of the pair
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "chats"
        unique_together = (("user_1", "user_2"),)

class ChatMessage(models.Model):
    id = fields.BigIntField(pk=True)  # Stored sequence (append order)
    chat = fields.ForeignKeyField("models.Chat", related_name="messages", on_delete=fields.CASCADE)
    sender_id = fields.CharField(max_length=36)
    text = fields.TextField()
    timestamp = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "chat_messages"
        ordering = ["id"]
