from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.features.waitlist.utils.referral_code_generator import (
    is_well_formed_referral_code,
    normalize_referral_code,
)
from app.platform.schemas import APIResponse


class PhoneUpdateIn(BaseModel):
    phone: Optional[str] = Field(default=None, max_length=32)

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class ManualSignupIn(PhoneUpdateIn):
    email: EmailStr
    referral_code: Optional[str] = None

    @field_validator("referral_code")
    @classmethod
    def validate_referral_code(cls, v: Optional[str]) -> Optional[str]:
        code = normalize_referral_code(v)
        if not code:
            return None
        if not is_well_formed_referral_code(code):
            raise ValueError("Referral code must be 6 uppercase letters or digits")
        return code


class PhoneUpdateByEmailIn(PhoneUpdateIn):
    email: EmailStr


class ExternalProfileOut(BaseModel):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    provider_email: Optional[str] = None


class ReferrerOut(BaseModel):
    id: str
    email: str
    name: str


class RegistrantOut(BaseModel):
    id: str
    email: str
    phone: Optional[str] = None
    source: str
    is_active: bool
    referral_code: str
    referred_by: Optional[str] = None
    referral_count: int
    referral_rewards: int
    external_profile: Optional[ExternalProfileOut] = None
    joined_at: datetime

    class Config:
        from_attributes = True


class RegistrantSummaryOut(BaseModel):
    """What a caller is allowed to learn about an existing registrant."""

    id: str
    email: str
    source: str
    joined_at: datetime

    class Config:
        from_attributes = True


class SignupOut(BaseModel):
    user: RegistrantOut
    share_url: str
    referred_by: Optional[ReferrerOut] = None
    referral_error: Optional[str] = None
    is_new_user: bool


class CheckEmailOut(BaseModel):
    exists: bool
    source: Optional[str] = None
    joined_at: Optional[datetime] = None


class WaitlistStatsOut(BaseModel):
    total: int
    by_source: Dict[str, int]
    recent_signups: int


class PaginationOut(BaseModel):
    current_page: int
    total_pages: int
    total_users: int
    has_next: bool
    has_prev: bool


class RegistrantListOut(BaseModel):
    users: List[RegistrantOut]
    pagination: PaginationOut


class WaitlistStatsResponse(APIResponse[WaitlistStatsOut]):
    pass


class SignupResponse(APIResponse[SignupOut]):
    pass
