from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.schemas.referral import (
    LeaderboardEntryOut,
    ReferralStatsOut,
    ReferralSummaryOut,
    ReferralValidationOut,
    ReferredRegistrantOut,
    ReferrerPublicOut,
)
from app.features.waitlist.services.identity_store import RegistrantStore
from app.features.waitlist.services.referral_ledger import ReferralLedger
from app.features.waitlist.services.waitlist_queries import WaitlistQueryService
from app.platform.db.session import get_db
from app.platform.response import api_response

router = APIRouter(prefix="/referral", tags=["Referral"])


@router.get("/validate/{code}", response_model=ReferralValidationOut)
async def validate_referral_code(code: str, db: AsyncSession = Depends(get_db)):
    """Case-insensitive. An unknown code is a normal answer, not an error."""
    referrer = await ReferralLedger(RegistrantStore(db)).resolve_code(code)
    if not referrer:
        return api_response(data=ReferralValidationOut(valid=False), message="Referral code not found")

    return api_response(
        data=ReferralValidationOut(
            valid=True, referrer=ReferrerPublicOut(id=referrer.id, name=referrer.display_name)
        ),
        message="Referral code is valid",
    )


@router.get("/code/{email}", response_model=ReferralSummaryOut)
async def get_referral_code(email: str, db: AsyncSession = Depends(get_db)):
    summary = await WaitlistQueryService(db).referral_summary(email)
    return api_response(data=ReferralSummaryOut(**summary), message="Referral code retrieved")


@router.get("/stats", response_model=ReferralStatsOut)
async def referral_stats(db: AsyncSession = Depends(get_db)):
    stats = await WaitlistQueryService(db).referral_stats()
    return api_response(
        data=ReferralStatsOut(
            total_referrals=stats["total_referrals"],
            total_referrers=stats["total_referrers"],
            top_referrers=[LeaderboardEntryOut.model_validate(r) for r in stats["top_referrers"]],
        ),
        message="Referral statistics retrieved",
    )


@router.get("/referred-by/{registrant_id}")
async def get_referred_registrants(registrant_id: str, db: AsyncSession = Depends(get_db)):
    referred = await WaitlistQueryService(db).referred_by(registrant_id)
    return api_response(
        data=[ReferredRegistrantOut.model_validate(r) for r in referred],
        message="Referred users retrieved",
    )
