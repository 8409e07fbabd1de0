# gibber/models/__init__.py
"""
Database models module initialization.
Exports all database models for convenient imports throughout the server.

Each Tortoise model plays the role of one document collection:
- User: user account, credentials and login state
- UserInvites: per-user relationship record (five invitation sets)
- Friends: per-user friend list
- Chat / ChatMessage: per-pair message log
"""
from .user import User
from .user_invites import UserInvites, InviteKind
from .friends import Friends
from .chat import Chat, ChatMessage
