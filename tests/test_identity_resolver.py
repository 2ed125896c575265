from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from app.features.waitlist.exceptions import (
    AlreadyRegisteredError,
    InvalidInputError,
    RegistrantNotFoundError,
)
from app.features.waitlist.models.registrant import Registrant, RegistrantSource
from app.features.waitlist.schemas.oauth import ExternalProfile
from app.features.waitlist.services.identity_resolver import IdentityResolver


@pytest.fixture
def resolver(db_session) -> IdentityResolver:
    return IdentityResolver(db_session)


def google_profile(external_id="google-1", email="alice@x.com", name="Alice A") -> ExternalProfile:
    return ExternalProfile(
        external_id=external_id,
        provider_email=email,
        display_name=name,
        avatar_url="https://lh3.googleusercontent.com/a/alice",
    )


def first_call_misses(lookup) -> AsyncMock:
    """Wrap a store finder so its first call returns None and later calls hit the database."""
    calls = []

    async def side_effect(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await lookup(*args, **kwargs)

    return AsyncMock(side_effect=side_effect)


async def count_registrants(db_session) -> int:
    result = await db_session.execute(select(func.count(Registrant.id)))
    return result.scalar_one()


class TestManualSignup:
    @pytest.mark.asyncio
    async def test_creates_manual_registrant(self, resolver):
        outcome = await resolver.handle_manual_signup(" Alice@X.com", phone="+15550001")

        registrant = outcome.registrant
        assert outcome.is_new_user is True
        assert registrant.email == "alice@x.com"
        assert registrant.phone == "+15550001"
        assert registrant.source == RegistrantSource.MANUAL.value
        assert registrant.external_id is None
        assert len(registrant.referral_code) == 6

    @pytest.mark.asyncio
    async def test_distinct_emails_register_independently(self, resolver, db_session):
        first = await resolver.handle_manual_signup("alice@x.com")
        second = await resolver.handle_manual_signup("bob@x.com")

        assert first.registrant.id != second.registrant.id
        assert first.registrant.referral_code != second.registrant.referral_code
        assert await count_registrants(db_session) == 2

    @pytest.mark.asyncio
    async def test_resubmission_is_refused_without_mutation(self, resolver, db_session):
        first = await resolver.handle_manual_signup("alice@x.com", phone="111")
        code = first.registrant.referral_code

        with pytest.raises(AlreadyRegisteredError) as exc:
            await resolver.handle_manual_signup("ALICE@x.com", phone="222")

        assert exc.value.existing["id"] == first.registrant.id
        assert exc.value.existing["source"] == RegistrantSource.MANUAL.value
        assert await count_registrants(db_session) == 1

        stored = await resolver.store.find_by_email("alice@x.com")
        assert stored.phone == "111"
        assert stored.referral_code == code

    @pytest.mark.asyncio
    async def test_malformed_email(self, resolver, db_session):
        with pytest.raises(InvalidInputError):
            await resolver.handle_manual_signup("not-an-email")
        assert await count_registrants(db_session) == 0

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_reports_already_registered(
        self, resolver, make_registrant, db_session
    ):
        existing = await make_registrant("alice@x.com", "AB12C3")
        existing_id = existing.id

        # The first lookup misses, as it would for the slower of two concurrent requests
        with patch.object(
            resolver.store, "find_by_email", first_call_misses(resolver.store.find_by_email)
        ):
            with pytest.raises(AlreadyRegisteredError) as exc:
                await resolver.handle_manual_signup("alice@x.com")

        assert exc.value.existing["id"] == existing_id
        assert await count_registrants(db_session) == 1

    @pytest.mark.asyncio
    async def test_referral_code_credits_referrer(self, resolver, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")

        outcome = await resolver.handle_manual_signup("bob@x.com", referral_code="AB12C3")

        assert outcome.referrer.id == alice.id
        assert outcome.registrant.referred_by == alice.id
        assert alice.referral_count == 1
        assert alice.referral_rewards == 1

    @pytest.mark.asyncio
    async def test_unknown_referral_code_still_registers(self, resolver, db_session):
        outcome = await resolver.handle_manual_signup("bob@x.com", referral_code="ZZZZZZ")

        assert outcome.registrant.id
        assert outcome.registrant.referred_by is None
        assert outcome.referrer is None
        assert outcome.referral_error == "Invalid referral code"
        assert await count_registrants(db_session) == 1


class TestExternalLogin:
    @pytest.mark.asyncio
    async def test_creates_provider_registrant(self, resolver):
        outcome = await resolver.handle_external_login(google_profile())

        registrant = outcome.registrant
        assert outcome.is_new_user is True
        assert registrant.source == RegistrantSource.EXTERNAL.value
        assert registrant.external_id == "google-1"
        assert registrant.phone is None
        assert registrant.external_profile["display_name"] == "Alice A"
        assert registrant.display_name == "Alice A"

    @pytest.mark.asyncio
    async def test_repeat_login_refreshes_profile(self, resolver, db_session):
        first = await resolver.handle_external_login(google_profile(name="Alice A"))

        second = await resolver.handle_external_login(google_profile(name="Alice Adams"))

        assert second.is_new_user is False
        assert second.registrant.id == first.registrant.id
        assert second.registrant.external_profile["display_name"] == "Alice Adams"
        assert await count_registrants(db_session) == 1

    @pytest.mark.asyncio
    async def test_manual_then_external_merges(self, resolver, db_session):
        manual = await resolver.handle_manual_signup("a@x.com", phone="+15550001")
        joined_at = manual.registrant.joined_at
        code = manual.registrant.referral_code

        outcome = await resolver.handle_external_login(google_profile(email="A@x.com"))

        merged = outcome.registrant
        assert outcome.is_new_user is False
        assert merged.id == manual.registrant.id
        assert merged.source == RegistrantSource.EXTERNAL.value
        assert merged.external_id == "google-1"
        assert merged.joined_at == joined_at
        assert merged.referral_code == code
        assert merged.phone == "+15550001"
        assert await count_registrants(db_session) == 1

    @pytest.mark.asyncio
    async def test_external_then_manual_is_refused(self, resolver, db_session):
        external = await resolver.handle_external_login(google_profile(email="a@x.com"))

        with pytest.raises(AlreadyRegisteredError) as exc:
            await resolver.handle_manual_signup("a@x.com")

        assert exc.value.existing["id"] == external.registrant.id
        assert exc.value.existing["source"] == RegistrantSource.EXTERNAL.value
        assert await count_registrants(db_session) == 1

    @pytest.mark.asyncio
    async def test_concurrent_create_falls_back_to_existing(
        self, resolver, make_registrant, db_session
    ):
        existing = await make_registrant(
            "alice@x.com", "AB12C3", source=RegistrantSource.EXTERNAL, external_id="google-1"
        )
        existing_id = existing.id

        # Lookup by external id misses once: another request inserted the row meanwhile.
        # The provider email changed, so the email lookup finds nothing either.
        with patch.object(
            resolver.store,
            "find_by_external_id",
            first_call_misses(resolver.store.find_by_external_id),
        ):
            outcome = await resolver.handle_external_login(
                google_profile(email="alice.new@x.com", name="Alice New")
            )

        assert outcome.is_new_user is False
        assert outcome.registrant.id == existing_id
        assert outcome.registrant.external_profile["display_name"] == "Alice New"
        assert await count_registrants(db_session) == 1

    @pytest.mark.asyncio
    async def test_deactivated_registrant_cannot_log_in(self, resolver, store, make_registrant):
        alice = await make_registrant(
            "alice@x.com", "AB12C3", source=RegistrantSource.EXTERNAL, external_id="google-1"
        )
        await store.deactivate(alice.id)

        with pytest.raises(RegistrantNotFoundError):
            await resolver.handle_external_login(google_profile())

    @pytest.mark.asyncio
    async def test_state_carries_referral_code(self, resolver, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")

        outcome = await resolver.handle_external_login(
            google_profile(external_id="google-2", email="bob@x.com"), state="ab12c3"
        )

        assert outcome.registrant.referred_by == alice.id
        assert alice.referral_count == 1

    @pytest.mark.asyncio
    async def test_own_code_in_state_is_ignored(self, resolver, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")

        outcome = await resolver.handle_external_login(google_profile(), state="AB12C3")

        assert outcome.registrant.id == alice.id
        assert outcome.registrant.referred_by is None
        assert outcome.referral_error is None
        assert alice.referral_count == 0
