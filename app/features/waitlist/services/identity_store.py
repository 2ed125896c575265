import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.exceptions import (
    DuplicateEmailError,
    DuplicateExternalIdError,
    DuplicateReferralCodeError,
    RegistrantNotFoundError,
)
from app.features.waitlist.models.registrant import Registrant, RegistrantSource

logger = logging.getLogger(__name__)

# Fields `update` may touch. Referral fields belong to the ledger, the rest are immutable.
MUTABLE_FIELDS = frozenset({"phone", "external_id", "external_profile", "source"})


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class RegistrantCandidate:
    """A registrant that has not been persisted yet."""

    email: str
    source: RegistrantSource = RegistrantSource.MANUAL
    phone: Optional[str] = None
    external_id: Optional[str] = None
    external_profile: Optional[dict] = None
    referral_code: Optional[str] = None


class RegistrantStore:
    """
    Persistence for registrants.

    Uniqueness (email, external id, referral code) is left to the database
    indexes; a violated index comes back as the matching Duplicate*Error so
    callers can branch on it instead of on driver messages.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find_one(self, *criteria, active_only: bool = False) -> Optional[Registrant]:
        query = select(Registrant).where(*criteria)
        if active_only:
            query = query.where(Registrant.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_id(self, registrant_id: str, active_only: bool = False) -> Optional[Registrant]:
        return await self._find_one(Registrant.id == registrant_id, active_only=active_only)

    async def find_by_email(self, email: str, active_only: bool = False) -> Optional[Registrant]:
        return await self._find_one(
            Registrant.email == normalize_email(email), active_only=active_only
        )

    async def find_by_external_id(
        self, external_id: str, active_only: bool = False
    ) -> Optional[Registrant]:
        return await self._find_one(Registrant.external_id == external_id, active_only=active_only)

    async def find_by_referral_code(
        self, code: str, active_only: bool = False
    ) -> Optional[Registrant]:
        return await self._find_one(
            Registrant.referral_code == (code or "").strip().upper(), active_only=active_only
        )

    async def create(self, candidate: RegistrantCandidate) -> Registrant:
        """
        Insert a new registrant.

        The candidate must already carry its referral code, the row is never
        written without one.

        Raises:
            DuplicateEmailError, DuplicateExternalIdError, DuplicateReferralCodeError
        """
        if not candidate.referral_code:
            raise ValueError("Registrant candidate has no referral code")

        registrant = Registrant(
            email=normalize_email(candidate.email),
            phone=candidate.phone,
            source=RegistrantSource(candidate.source).value,
            external_id=candidate.external_id,
            external_profile=candidate.external_profile,
            referral_code=candidate.referral_code,
        )
        self.db.add(registrant)
        await self._commit()
        await self.db.refresh(registrant)
        return registrant

    async def update(self, registrant_id: str, **patch) -> Registrant:
        """Partial update of an active registrant."""
        unknown = set(patch) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        registrant = await self.find_by_id(registrant_id, active_only=True)
        if not registrant:
            raise RegistrantNotFoundError()

        for field, value in patch.items():
            if field == "source" and value is not None:
                value = RegistrantSource(value).value
            setattr(registrant, field, value)

        await self._commit()
        await self.db.refresh(registrant)
        return registrant

    async def deactivate(self, registrant_id: str) -> None:
        registrant = await self.find_by_id(registrant_id)
        if not registrant:
            raise RegistrantNotFoundError()
        if not registrant.is_active:
            return

        registrant.is_active = False
        await self._commit()
        logger.info(f"Deactivated registrant {registrant_id}")

    async def set_referrer_if_unset(self, registrant_id: str, referrer_id: str) -> bool:
        """Compare-and-set of `referred_by`. Returns False when it was already set."""
        result = await self.db.execute(
            update(Registrant)
            .where(Registrant.id == registrant_id, Registrant.referred_by.is_(None))
            .values(referred_by=referrer_id)
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        return result.rowcount == 1

    async def increment_referral_counters(self, registrant_id: str) -> None:
        # Single UPDATE so concurrent referrals never lose an increment
        await self.db.execute(
            update(Registrant)
            .where(Registrant.id == registrant_id)
            .values(
                referral_count=Registrant.referral_count + 1,
                referral_rewards=Registrant.referral_rewards + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await self._commit()

    async def mark_referral_credited(self, registrant_id: str) -> None:
        await self.db.execute(
            update(Registrant)
            .where(Registrant.id == registrant_id)
            .values(referral_credited=True)
            .execution_options(synchronize_session=False)
        )
        await self._commit()

    async def reload(self, registrant: Registrant) -> Registrant:
        await self.db.refresh(registrant)
        return registrant

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            duplicate = _duplicate_error_for(e)
            if duplicate is None:
                raise
            raise duplicate from e


# Checked in this order; the first unique index named in the violation wins.
UNIQUE_INDEX_ERRORS = (
    ("referral_code", DuplicateReferralCodeError),
    ("external_id", DuplicateExternalIdError),
    ("email", DuplicateEmailError),
)


def _violated_constraint(error: IntegrityError) -> str:
    """
    Name the constraint an integrity error is about, without any row values.

    asyncpg exposes the index name on the driver exception. Otherwise only the
    first line of the message is used: PostgreSQL puts the offending key values
    on a DETAIL line, SQLite reports `registrants.<column>`.
    """
    for source in (error.orig, getattr(error.orig, "__cause__", None)):
        constraint_name = getattr(source, "constraint_name", None)
        if constraint_name:
            return constraint_name.lower()

    lines = str(error.orig).splitlines()
    return lines[0].lower() if lines else ""


def _duplicate_error_for(error: IntegrityError) -> Optional[Exception]:
    """Map a unique index violation onto the domain error for that column."""
    constraint = _violated_constraint(error)

    for column, duplicate_error in UNIQUE_INDEX_ERRORS:
        if f"uq_registrants_{column}" in constraint or f"registrants.{column}" in constraint:
            return duplicate_error()

    logger.error(f"Unrecognised integrity error: {error.orig}")
    return None
