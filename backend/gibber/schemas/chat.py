# gibber/schemas/chat.py
from datetime import datetime
from pydantic import BaseModel

from .profile import format_timestamp

__all__ = ["ChatLine"]

class ChatLine(BaseModel):
    """One message as rendered in a transcript or a live delivery."""
    sender: str  # "You" or the peer's first name
    text: str
    timestamp: datetime

    def render(self) -> str:
        return f"{self.sender} ({format_timestamp(self.timestamp)}): {self.text}"
