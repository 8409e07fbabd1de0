# gibber/services/chat_store.py
"""
Chat Store

Append-only message log per unordered user pair. Both directions of a
conversation resolve to the same Chat row through canonical_pair().
"""
import logging

from gibber.core.errors import NoDocumentUpdate, NotFound, store_errors
from gibber.models.chat import Chat, ChatMessage

logger = logging.getLogger(__name__)


def canonical_pair(user_a, user_b) -> tuple[str, str]:
    """Order two user ids so the lower one (as a string) comes first."""
    a, b = str(user_a), str(user_b)
    return (a, b) if a <= b else (b, a)


class ChatStore:
    """Per-pair chat records and their messages."""

    async def get_chat(self, user_a, user_b) -> Chat:
        user_1, user_2 = canonical_pair(user_a, user_b)
        with store_errors(f"fetching chat for users {user_1} and {user_2}"):
            chat = await Chat.get_or_none(user_1=user_1, user_2=user_2)
        if chat is None:
            raise NotFound(f"no chat found with user IDs {user_1} and {user_2}")
        return chat

    async def get_messages(self, user_a, user_b) -> list[ChatMessage]:
        """All messages of the pair in stored order; empty when no chat exists yet."""
        try:
            chat = await self.get_chat(user_a, user_b)
        except NotFound:
            return []
        with store_errors(f"fetching messages of chat {chat.id}"):
            return await ChatMessage.filter(chat_id=chat.id).order_by("id")

    async def append_message(self, sender, receiver, text: str) -> ChatMessage:
        """
        Append a message from sender to receiver.
        Creates the chat record on the first message between the pair.

        Raises:
            NoDocumentUpdate: the message was not stored
            StoreError: the store failed
        """
        user_1, user_2 = canonical_pair(sender, receiver)
        with store_errors(f"sending msg from {sender} to {receiver}"):
            # get_or_create absorbs the race of both users sending the first message
            chat, created = await Chat.get_or_create(user_1=user_1, user_2=user_2)
            if created:
                logger.info("chat %s created for users %s and %s", chat.id, user_1, user_2)
            message = await ChatMessage.create(chat_id=chat.id, sender_id=str(sender), text=text)
        if message.id is None:
            raise NoDocumentUpdate(f"message from {sender} to {receiver} not stored")
        return message

    async def fetch_incoming(self, self_id, peer_id, after_id: int | None) -> list[ChatMessage]:
        """
        Messages authored by peer_id stored after after_id, in stored order.

        Args:
            after_id: Id of the last message already seen (None = nothing seen)
        """
        try:
            chat = await self.get_chat(self_id, peer_id)
        except NotFound:
            return []
        query = ChatMessage.filter(chat_id=chat.id, sender_id=str(peer_id))
        if after_id is not None:
            query = query.filter(id__gt=after_id)
        with store_errors(f"fetching new messages of chat {chat.id}"):
            return await query.order_by("id")
