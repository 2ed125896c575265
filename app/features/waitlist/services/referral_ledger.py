import logging
from typing import Optional

from app.features.waitlist.exceptions import (
    CodeGenerationExhaustedError,
    DuplicateReferralCodeError,
    InvalidReferralCodeError,
)
from app.features.waitlist.models.registrant import Registrant
from app.features.waitlist.services.identity_store import RegistrantCandidate, RegistrantStore
from app.features.waitlist.utils.referral_code_generator import (
    generate_referral_code,
    normalize_referral_code,
)
from app.platform.config import settings

logger = logging.getLogger(__name__)


class ReferralLedger:
    """
    Referral codes and referral attribution.

    Attribution touches two rows (the referred registrant and the referrer)
    with separate writes, there is no transaction spanning both:

    1. `referred_by` is set with a compare-and-set, so only one referrer can
       ever win for a given registrant.
    2. The referrer's counters are incremented with a single UPDATE.
    3. The referred registrant is marked `referral_credited`.

    A crash after 1 leaves the registrant linked but uncredited; calling
    `attribute` again with the same code finishes steps 2 and 3. A crash
    between 2 and 3 means the retry increments a second time. Counters are
    therefore at-least-once under partial failure and exactly-once otherwise.
    """

    def __init__(self, store: RegistrantStore, max_attempts: int = settings.REFERRAL_CODE_MAX_ATTEMPTS):
        self.store = store
        self.max_attempts = max_attempts

    async def register(self, candidate: RegistrantCandidate) -> Registrant:
        """
        Attach a fresh referral code to the candidate and persist it,
        drawing a new code whenever the store reports a collision.
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate.referral_code = generate_referral_code()
            try:
                return await self.store.create(candidate)
            except DuplicateReferralCodeError:
                logger.warning(
                    f"Referral code collision on attempt {attempt}/{self.max_attempts}, retrying"
                )

        logger.error(f"Could not allocate a referral code after {self.max_attempts} attempts")
        raise CodeGenerationExhaustedError()

    async def resolve_code(self, code: Optional[str]) -> Optional[Registrant]:
        """Case-insensitive lookup of an active referrer. Unknown codes yield None."""
        code = normalize_referral_code(code)
        if not code:
            return None
        return await self.store.find_by_referral_code(code, active_only=True)

    async def attribute(self, registrant: Registrant, code: Optional[str]) -> Optional[Registrant]:
        """
        Credit `registrant`'s signup to the owner of `code`.

        Returns the referrer when this call (or a retry of it) linked the two,
        None when there was nothing to do.

        Raises:
            InvalidReferralCodeError: no active registrant owns the code
        """
        code = normalize_referral_code(code)
        if not code:
            return None

        referrer = await self.resolve_code(code)
        if not referrer:
            logger.info(f"Referral code {code} not found for registrant {registrant.id}")
            raise InvalidReferralCodeError(code)

        if referrer.id == registrant.id:
            logger.info(f"Ignoring self-referral for registrant {registrant.id}")
            return None

        if registrant.referred_by is None:
            linked = await self.store.set_referrer_if_unset(registrant.id, referrer.id)
            await self.store.reload(registrant)
            if linked:
                logger.info(f"Registrant {registrant.id} referred by {referrer.id}")

        if registrant.referred_by != referrer.id:
            # Already attributed to someone else
            return None

        if registrant.referral_credited:
            return None

        await self.store.increment_referral_counters(referrer.id)
        await self.store.mark_referral_credited(registrant.id)
        await self.store.reload(registrant)
        await self.store.reload(referrer)
        logger.info(
            f"Credited referrer {referrer.id}: count={referrer.referral_count}, "
            f"rewards={referrer.referral_rewards}"
        )
        return referrer
