from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ReferralValidationOut(BaseModel):
    valid: bool
    referrer: Optional["ReferrerPublicOut"] = None


class ReferrerPublicOut(BaseModel):
    id: str
    name: str


class ReferralSummaryOut(BaseModel):
    referral_code: str
    referral_count: int
    referral_rewards: int
    share_url: str


class LeaderboardEntryOut(BaseModel):
    email: str
    referral_code: str
    referral_count: int
    referral_rewards: int

    class Config:
        from_attributes = True


class ReferralStatsOut(BaseModel):
    total_referrals: int
    total_referrers: int
    top_referrers: List[LeaderboardEntryOut]


class ReferredRegistrantOut(BaseModel):
    id: str
    email: str
    source: str
    joined_at: datetime

    class Config:
        from_attributes = True


ReferralValidationOut.model_rebuild()
