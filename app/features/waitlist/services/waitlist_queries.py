import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.exceptions import RegistrantNotFoundError
from app.features.waitlist.models.registrant import Registrant, RegistrantSource
from app.features.waitlist.services.identity_store import RegistrantStore
from app.platform.config import settings


def build_share_url(referral_code: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/?ref={referral_code}"


class WaitlistQueryService:
    """Read-only views over the waitlist. Deactivated registrants are hidden unless asked for."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = RegistrantStore(db)

    async def _count(self, *criteria, include_inactive: bool = False) -> int:
        query = select(func.count(Registrant.id)).where(*criteria)
        if not include_inactive:
            query = query.where(Registrant.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalar_one()

    async def get_by_id(self, registrant_id: str) -> Registrant:
        # Direct id lookups also return deactivated records
        registrant = await self.store.find_by_id(registrant_id)
        if not registrant:
            raise RegistrantNotFoundError()
        return registrant

    async def get_by_email(self, email: str, include_inactive: bool = False) -> Registrant:
        registrant = await self.store.find_by_email(email, active_only=not include_inactive)
        if not registrant:
            raise RegistrantNotFoundError()
        return registrant

    async def check_email(self, email: str) -> dict:
        registrant = await self.store.find_by_email(email, active_only=True)
        if not registrant:
            return {"exists": False}
        return {"exists": True, "source": registrant.source, "joined_at": registrant.joined_at}

    async def list_registrants(
        self,
        page: int = 1,
        limit: int = 50,
        source: Optional[RegistrantSource] = None,
        include_inactive: bool = False,
    ) -> dict:
        criteria = []
        if source:
            criteria.append(Registrant.source == RegistrantSource(source).value)
        if not include_inactive:
            criteria.append(Registrant.is_active.is_(True))

        total = await self._count(*criteria, include_inactive=True)

        result = await self.db.execute(
            select(Registrant)
            .where(*criteria)
            .order_by(Registrant.joined_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        users = result.scalars().all()

        return {
            "users": users,
            "pagination": {
                "current_page": page,
                "total_pages": math.ceil(total / limit) if limit else 0,
                "total_users": total,
                "has_next": page * limit < total,
                "has_prev": page > 1,
            },
        }

    async def waitlist_stats(self) -> dict:
        since = datetime.now(timezone.utc) - timedelta(days=settings.RECENT_SIGNUP_DAYS)
        by_source = {
            source.value: await self._count(Registrant.source == source.value)
            for source in RegistrantSource
        }
        return {
            "total": await self._count(),
            "by_source": by_source,
            "recent_signups": await self._count(Registrant.joined_at >= since),
        }

    async def referral_stats(self, limit: int = settings.REFERRAL_LEADERBOARD_SIZE) -> dict:
        result = await self.db.execute(
            select(Registrant)
            .where(Registrant.is_active.is_(True), Registrant.referral_count > 0)
            .order_by(Registrant.referral_count.desc(), Registrant.joined_at.asc())
            .limit(limit)
        )
        return {
            "total_referrals": await self._count(Registrant.referred_by.is_not(None)),
            "total_referrers": await self._count(Registrant.referral_count > 0),
            "top_referrers": result.scalars().all(),
        }

    async def referral_summary(self, email: str) -> dict:
        registrant = await self.get_by_email(email)
        return {
            "referral_code": registrant.referral_code,
            "referral_count": registrant.referral_count,
            "referral_rewards": registrant.referral_rewards,
            "share_url": build_share_url(registrant.referral_code),
        }

    async def referred_by(self, referrer_id: str) -> List[Registrant]:
        await self.get_by_id(referrer_id)
        result = await self.db.execute(
            select(Registrant)
            .where(Registrant.referred_by == referrer_id, Registrant.is_active.is_(True))
            .order_by(Registrant.joined_at.desc())
        )
        return result.scalars().all()
