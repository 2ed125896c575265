from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class ExternalProfile(BaseModel):
    """Profile handed over by the identity provider after a successful login."""

    external_id: str = Field(..., min_length=1)
    provider_email: EmailStr
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None

    def snapshot(self) -> dict:
        return {
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "provider_email": self.provider_email,
        }


class GoogleAuthRequest(BaseModel):
    id_token: str
    platform: Optional[str] = "web"
    # Referral code passed through the OAuth round trip
    state: Optional[str] = None
