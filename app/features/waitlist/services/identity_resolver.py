import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.exceptions import (
    AlreadyRegisteredError,
    DuplicateEmailError,
    DuplicateExternalIdError,
    InvalidInputError,
    InvalidReferralCodeError,
    RegistrantNotFoundError,
)
from app.features.waitlist.models.registrant import Registrant, RegistrantSource
from app.features.waitlist.schemas.oauth import ExternalProfile
from app.features.waitlist.services.identity_store import (
    RegistrantCandidate,
    RegistrantStore,
    normalize_email,
)
from app.features.waitlist.services.referral_ledger import ReferralLedger

logger = logging.getLogger(__name__)


@dataclass
class SignupOutcome:
    registrant: Registrant
    is_new_user: bool
    referrer: Optional[Registrant] = None
    # Set when the referral part of the signup failed; the signup itself succeeded
    referral_error: Optional[str] = None


def public_summary(registrant: Registrant) -> dict:
    return {
        "id": registrant.id,
        "email": registrant.email,
        "source": registrant.source,
        "joined_at": registrant.joined_at,
    }


def validated_email(email: Optional[str]) -> str:
    email = normalize_email(email)
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidInputError("Please provide a valid email address", data={"email": email}) from e
    return email


class IdentityResolver:
    """
    Maps a signup event onto exactly one registrant.

    Provider logins may enrich an existing record (the provider has proven
    ownership of the email); manual submissions never touch an existing one.
    """

    def __init__(self, db: AsyncSession):
        self.store = RegistrantStore(db)
        self.ledger = ReferralLedger(self.store)

    async def handle_manual_signup(
        self, email: str, phone: Optional[str] = None, referral_code: Optional[str] = None
    ) -> SignupOutcome:
        registrant = await self.resolve_manual(email, phone)
        outcome = SignupOutcome(registrant=registrant, is_new_user=True)
        await self._attribute(outcome, referral_code)
        return outcome

    async def handle_external_login(
        self, profile: ExternalProfile, state: Optional[str] = None
    ) -> SignupOutcome:
        """`state` is the opaque OAuth round-trip value, carrying a referral code when present."""
        registrant, is_new_user = await self.resolve_external(profile)
        outcome = SignupOutcome(registrant=registrant, is_new_user=is_new_user)
        await self._attribute(outcome, state)
        return outcome

    async def resolve_manual(self, email: str, phone: Optional[str] = None) -> Registrant:
        email = validated_email(email)

        existing = await self.store.find_by_email(email)
        if existing:
            logger.info(f"Manual signup refused, {email} already registered as {existing.id}")
            raise AlreadyRegisteredError(public_summary(existing))

        candidate = RegistrantCandidate(email=email, phone=phone, source=RegistrantSource.MANUAL)
        try:
            registrant = await self.ledger.register(candidate)
        except DuplicateEmailError:
            # Lost the race against a concurrent signup for the same email
            existing = await self.store.find_by_email(email)
            logger.info(f"Concurrent manual signup for {email}, reporting existing record")
            raise AlreadyRegisteredError(public_summary(existing)) from None

        logger.info(f"Created registrant {registrant.id} via manual signup")
        return registrant

    async def resolve_external(self, profile: ExternalProfile) -> Tuple[Registrant, bool]:
        """
        Returns (registrant, is_new_user).

        1. Known external id: refresh the stored provider profile.
        2. Known email: link the external identity onto that record.
        3. Otherwise: create a provider-only registrant.
        """
        email = validated_email(profile.provider_email)

        registrant = await self.store.find_by_external_id(profile.external_id)
        if registrant:
            return await self._refresh_profile(registrant, profile), False

        registrant = await self.store.find_by_email(email)
        if registrant:
            return await self._link_external(registrant, profile), False

        candidate = RegistrantCandidate(
            email=email,
            source=RegistrantSource.EXTERNAL,
            external_id=profile.external_id,
            external_profile=profile.snapshot(),
        )
        try:
            registrant = await self.ledger.register(candidate)
        except (DuplicateExternalIdError, DuplicateEmailError):
            # A concurrent login for the same person created the row first
            logger.info(f"Concurrent provider signup for {profile.external_id}, re-resolving")
            registrant = await self.store.find_by_external_id(profile.external_id)
            if registrant:
                return await self._refresh_profile(registrant, profile), False
            registrant = await self.store.find_by_email(email)
            if not registrant:
                raise
            return await self._link_external(registrant, profile), False

        logger.info(f"Created registrant {registrant.id} via provider login")
        return registrant, True

    async def _refresh_profile(self, registrant: Registrant, profile: ExternalProfile) -> Registrant:
        _ensure_active(registrant)
        logger.info(f"Refreshing provider profile of registrant {registrant.id}")
        return await self.store.update(registrant.id, external_profile=profile.snapshot())

    async def _link_external(self, registrant: Registrant, profile: ExternalProfile) -> Registrant:
        _ensure_active(registrant)
        try:
            registrant = await self.store.update(
                registrant.id,
                external_id=profile.external_id,
                external_profile=profile.snapshot(),
                source=RegistrantSource.EXTERNAL,
            )
        except DuplicateExternalIdError:
            linked = await self.store.find_by_external_id(profile.external_id)
            if not linked:
                raise
            return await self._refresh_profile(linked, profile)

        logger.info(f"Linked provider identity onto registrant {registrant.id}")
        return registrant

    async def _attribute(self, outcome: SignupOutcome, code: Optional[str]) -> None:
        try:
            outcome.referrer = await self.ledger.attribute(outcome.registrant, code)
        except InvalidReferralCodeError as e:
            outcome.referral_error = e.message


def _ensure_active(registrant: Registrant) -> None:
    if not registrant.is_active:
        raise RegistrantNotFoundError("This waitlist registration has been deactivated")
