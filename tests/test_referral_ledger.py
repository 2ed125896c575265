import re
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.features.waitlist.exceptions import CodeGenerationExhaustedError, InvalidReferralCodeError
from app.features.waitlist.models.registrant import Registrant
from app.features.waitlist.services.identity_store import RegistrantCandidate
from app.features.waitlist.services.referral_ledger import ReferralLedger

GENERATOR = "app.features.waitlist.services.referral_ledger.generate_referral_code"


@pytest.fixture
def ledger(store) -> ReferralLedger:
    return ReferralLedger(store, max_attempts=3)


class TestCodeAllocation:
    @pytest.mark.asyncio
    async def test_register_assigns_a_code(self, ledger):
        registrant = await ledger.register(RegistrantCandidate(email="alice@x.com"))

        assert re.fullmatch(r"[A-Z0-9]{6}", registrant.referral_code)

    @pytest.mark.asyncio
    async def test_codes_are_unique_across_many_registrants(self, ledger, db_session):
        for i in range(40):
            await ledger.register(RegistrantCandidate(email=f"user{i}@x.com"))

        total = (await db_session.execute(select(func.count(Registrant.id)))).scalar_one()
        distinct = (
            await db_session.execute(select(func.count(func.distinct(Registrant.referral_code))))
        ).scalar_one()
        assert total == distinct == 40

    @pytest.mark.asyncio
    async def test_collision_draws_a_new_code(self, ledger, make_registrant):
        await make_registrant("alice@x.com", "AB12C3")

        with patch(GENERATOR, side_effect=["AB12C3", "ZX98Y7"]) as generator:
            bob = await ledger.register(RegistrantCandidate(email="bob@x.com"))

        assert bob.referral_code == "ZX98Y7"
        assert generator.call_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_attempts_create_nothing(self, ledger, make_registrant, db_session):
        await make_registrant("alice@x.com", "AB12C3")

        with patch(GENERATOR, return_value="AB12C3") as generator:
            with pytest.raises(CodeGenerationExhaustedError):
                await ledger.register(RegistrantCandidate(email="bob@x.com"))

        assert generator.call_count == 3
        total = (await db_session.execute(select(func.count(Registrant.id)))).scalar_one()
        assert total == 1


class TestResolveCode:
    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, ledger, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")

        assert (await ledger.resolve_code(" ab12c3 ")).id == alice.id

    @pytest.mark.asyncio
    async def test_unknown_or_empty_code_is_not_found(self, ledger):
        assert await ledger.resolve_code("ZZZZZZ") is None
        assert await ledger.resolve_code("") is None
        assert await ledger.resolve_code(None) is None

    @pytest.mark.asyncio
    async def test_deactivated_referrer_does_not_resolve(self, ledger, store, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")
        await store.deactivate(alice.id)

        assert await ledger.resolve_code("AB12C3") is None


class TestAttribution:
    @pytest.mark.asyncio
    async def test_referral_credits_the_referrer(self, ledger, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")
        bob = await make_registrant("bob@x.com", "BB12C3")

        referrer = await ledger.attribute(bob, "AB12C3")

        assert referrer.id == alice.id
        assert bob.referred_by == alice.id
        assert bob.referral_credited is True
        assert alice.referral_count == 1
        assert alice.referral_rewards == 1

    @pytest.mark.asyncio
    async def test_empty_code_is_a_noop(self, ledger, make_registrant):
        bob = await make_registrant("bob@x.com", "BB12C3")

        assert await ledger.attribute(bob, None) is None
        assert await ledger.attribute(bob, "  ") is None
        assert bob.referred_by is None

    @pytest.mark.asyncio
    async def test_unknown_code_raises(self, ledger, make_registrant):
        bob = await make_registrant("bob@x.com", "BB12C3")

        with pytest.raises(InvalidReferralCodeError) as exc:
            await ledger.attribute(bob, "zzzzzz")

        assert exc.value.code == "ZZZZZZ"
        assert bob.referred_by is None

    @pytest.mark.asyncio
    async def test_self_referral_is_ignored(self, ledger, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")

        assert await ledger.attribute(alice, "AB12C3") is None
        await ledger.store.reload(alice)
        assert alice.referred_by is None
        assert alice.referral_count == 0
        assert alice.referral_rewards == 0

    @pytest.mark.asyncio
    async def test_attribution_is_idempotent(self, ledger, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")
        bob = await make_registrant("bob@x.com", "BB12C3")

        await ledger.attribute(bob, "AB12C3")
        assert await ledger.attribute(bob, "AB12C3") is None

        await ledger.store.reload(alice)
        assert alice.referral_count == 1
        assert alice.referral_rewards == 1

    @pytest.mark.asyncio
    async def test_existing_referrer_is_never_replaced(self, ledger, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")
        carol = await make_registrant("carol@x.com", "CC12C3")
        bob = await make_registrant("bob@x.com", "BB12C3")

        await ledger.attribute(bob, "AB12C3")
        assert await ledger.attribute(bob, "CC12C3") is None

        await ledger.store.reload(carol)
        assert bob.referred_by == alice.id
        assert carol.referral_count == 0

    @pytest.mark.asyncio
    async def test_retry_finishes_an_interrupted_attribution(self, ledger, store, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")
        bob = await make_registrant("bob@x.com", "BB12C3")

        # First write landed, the counter update never happened
        await store.set_referrer_if_unset(bob.id, alice.id)
        await store.reload(bob)
        assert bob.referral_credited is False

        referrer = await ledger.attribute(bob, "AB12C3")

        assert referrer.id == alice.id
        assert alice.referral_count == 1
        assert bob.referral_credited is True

    @pytest.mark.asyncio
    async def test_several_referrals_accumulate(self, ledger, make_registrant):
        alice = await make_registrant("alice@x.com", "AB12C3")
        for i in range(3):
            friend = await make_registrant(f"friend{i}@x.com", f"FRND0{i}")
            await ledger.attribute(friend, "AB12C3")

        await ledger.store.reload(alice)
        assert alice.referral_count == 3
        assert alice.referral_rewards == 3
