"""Identity models - registered users and the authenticated requester."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class UserRecord(BaseModel):
    """Identity provider account for a phone number; uid is None when unregistered."""
    phone_number: str
    uid: Optional[str] = None
    display_name: str = ""
    photo_url: str = ""
    email: str = ""
    email_verified: bool = False
    custom_claims: dict[str, Any] = Field(default_factory=dict)
    disabled: bool = False

    @classmethod
    def unregistered(cls, phone_number: str) -> "UserRecord":
        return cls(phone_number=phone_number)

    @property
    def is_registered(self) -> bool:
        return bool(self.uid)


class Requester(BaseModel):
    """Authenticated caller of a write command."""
    phone_number: str
    uid: str
    display_name: str = ""
    photo_url: str = ""
    is_support_request: bool = False
    custom_claims: dict[str, Any] = Field(default_factory=dict)

    def creator_document(self) -> dict:
        return {
            "phoneNumber": self.phone_number,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
        }
