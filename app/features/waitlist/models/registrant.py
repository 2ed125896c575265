import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from app.platform.db.base import BaseModel


class RegistrantSource(str, enum.Enum):
    MANUAL = "manual"
    EXTERNAL = "external"


def _utcnow():
    return datetime.now(timezone.utc)


class Registrant(BaseModel):
    """
    One row per person on the waitlist.

    Unique on email, on referral code and (sparsely, NULLs allowed) on the
    linked external identity. Rows are never deleted; `is_active` is flipped
    off instead.
    """

    __tablename__ = "registrants"

    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)

    external_id = Column(String(255), nullable=True)
    # {"display_name": ..., "avatar_url": ..., "provider_email": ...}
    external_profile = Column(JSON, nullable=True)

    source = Column(String(20), nullable=False, default=RegistrantSource.MANUAL.value)
    is_active = Column(Boolean, nullable=False, default=True)

    referral_code = Column(String(16), nullable=False)
    referred_by = Column(String, ForeignKey("registrants.id"), nullable=True, index=True)
    referral_count = Column(Integer, nullable=False, default=0)
    referral_rewards = Column(Integer, nullable=False, default=0)
    # Flipped once the referrer's counters were bumped for `referred_by`
    referral_credited = Column(Boolean, nullable=False, default=False)

    joined_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("uq_registrants_email", "email", unique=True),
        Index("uq_registrants_external_id", "external_id", unique=True),
        Index("uq_registrants_referral_code", "referral_code", unique=True),
        Index("ix_registrants_joined_at", "joined_at"),
    )

    @property
    def display_name(self) -> str:
        profile = self.external_profile or {}
        return profile.get("display_name") or self.email.split("@")[0]

    def __repr__(self):
        return f"<Registrant(id={self.id}, email={self.email}, source={self.source})>"
