# gibber/schemas/profile.py
"""
Pydantic schemas for user profiles as shown on the line protocol.
"""
from datetime import datetime
from pydantic import BaseModel

__all__ = ["PublicProfile", "PersonalProfile", "format_timestamp"]

def format_timestamp(value: datetime | None) -> str:
    """Render a timestamp for display ("never" when unset)."""
    if value is None:
        return "never"
    return value.replace(microsecond=0).isoformat()

class PublicProfile(BaseModel):
    """
    Details other users may see (friend lists, invitation lists, search).
    """
    id: str
    first_name: str
    last_name: str
    email: str

    @classmethod
    def from_user(cls, user) -> "PublicProfile":
        return cls(id=str(user.id), first_name=user.first_name, last_name=user.last_name, email=user.email)

    def summary(self) -> str:
        return f"{self.first_name} {self.last_name} : {self.email}"

class PersonalProfile(PublicProfile):
    """
    Details a user sees about themself (dashboard option "See your profile").
    """
    last_login: datetime | None = None

    @classmethod
    def from_user(cls, user) -> "PersonalProfile":
        return cls(
            id=str(user.id),
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            last_login=user.last_login,
        )

    def render(self) -> str:
        return (
            "\n************ Profile ************ \n"
            f"\nFirst Name: {self.first_name}\n"
            f"Last Name: {self.last_name}\n"
            f"Email: {self.email}\n"
            f"Last Login: {format_timestamp(self.last_login)}\n"
        )
