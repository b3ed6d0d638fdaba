"""Platform user models."""

from dataclasses import dataclass


@dataclass
class User:
    """Sender display data for a platform user."""

    user_id: int
    username: str
    first_name: str = ""
    last_name: str = ""
    avatar: str = ""

    @property
    def display_name(self) -> str:
        return self.first_name or self.username

    def to_sender(self) -> dict:
        """The 'from' object of an update envelope."""
        return {
            "id": self.user_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "avatar": self.avatar,
        }
