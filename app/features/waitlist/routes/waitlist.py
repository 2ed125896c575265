import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.exceptions import RegistrantNotFoundError
from app.features.waitlist.models.registrant import RegistrantSource
from app.features.waitlist.schemas.registrant import (
    CheckEmailOut,
    ManualSignupIn,
    PhoneUpdateByEmailIn,
    PhoneUpdateIn,
    ReferrerOut,
    RegistrantListOut,
    RegistrantOut,
    SignupOut,
    SignupResponse,
    WaitlistStatsOut,
    WaitlistStatsResponse,
)
from app.features.waitlist.schemas.story import StoryIn, StoryOut
from app.features.waitlist.services.identity_resolver import IdentityResolver, SignupOutcome
from app.features.waitlist.services.identity_store import RegistrantStore
from app.features.waitlist.services.story import submit_story
from app.features.waitlist.services.waitlist_queries import WaitlistQueryService, build_share_url
from app.features.waitlist.utils.emailer import notify_signup, welcome_email_payload
from app.platform.db.session import get_db
from app.platform.response import api_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/waitlist", tags=["Waitlist"])


def signup_out(outcome: SignupOutcome) -> SignupOut:
    referrer = outcome.referrer
    return SignupOut(
        user=RegistrantOut.model_validate(outcome.registrant),
        share_url=build_share_url(outcome.registrant.referral_code),
        referred_by=(
            ReferrerOut(id=referrer.id, email=referrer.email, name=referrer.display_name)
            if referrer
            else None
        ),
        referral_error=outcome.referral_error,
        is_new_user=outcome.is_new_user,
    )


@router.post(
    "",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Join the waitlist",
)
async def join_waitlist(
    signup_in: ManualSignupIn,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    Manual signup.

    - Existing email: 400 with the existing registration's public summary
    - Unknown referral code: the signup succeeds, `referral_error` explains why no referrer was credited
    """
    outcome = await IdentityResolver(db).handle_manual_signup(
        signup_in.email, signup_in.phone, signup_in.referral_code
    )
    background_tasks.add_task(notify_signup, welcome_email_payload(outcome.registrant))

    return api_response(
        data=signup_out(outcome),
        message="Successfully added to waitlist!",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("", response_model=RegistrantListOut, summary="List waitlist registrants")
async def list_registrants(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    source: Optional[RegistrantSource] = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
):
    result = await WaitlistQueryService(db).list_registrants(page, limit, source, include_inactive)
    return api_response(
        data=RegistrantListOut(
            users=[RegistrantOut.model_validate(u) for u in result["users"]],
            pagination=result["pagination"],
        ),
        message="Waitlist retrieved",
    )


@router.get("/stats", response_model=WaitlistStatsResponse, summary="Waitlist statistics")
async def waitlist_stats(db: AsyncSession = Depends(get_db)):
    stats = await WaitlistQueryService(db).waitlist_stats()
    return api_response(data=WaitlistStatsOut(**stats), message="Waitlist statistics retrieved")


@router.get("/check-email/{email}", response_model=CheckEmailOut)
async def check_email(email: str, db: AsyncSession = Depends(get_db)):
    result = await WaitlistQueryService(db).check_email(email)
    return api_response(data=CheckEmailOut(**result), message="Email checked")


@router.get("/users/by-email/{email}", response_model=RegistrantOut)
async def get_registrant_by_email(
    email: str, include_inactive: bool = False, db: AsyncSession = Depends(get_db)
):
    registrant = await WaitlistQueryService(db).get_by_email(email, include_inactive)
    return api_response(data=RegistrantOut.model_validate(registrant), message="User retrieved")


@router.get("/users/{registrant_id}", response_model=RegistrantOut)
async def get_registrant(registrant_id: str, db: AsyncSession = Depends(get_db)):
    registrant = await WaitlistQueryService(db).get_by_id(registrant_id)
    return api_response(data=RegistrantOut.model_validate(registrant), message="User retrieved")


@router.put("/phone", response_model=RegistrantOut, summary="Update phone number by email")
async def update_phone_by_email(payload: PhoneUpdateByEmailIn, db: AsyncSession = Depends(get_db)):
    store = RegistrantStore(db)
    registrant = await store.find_by_email(payload.email, active_only=True)
    if not registrant:
        raise RegistrantNotFoundError()

    registrant = await store.update(registrant.id, phone=payload.phone)
    return api_response(
        data=RegistrantOut.model_validate(registrant), message="Phone number updated successfully"
    )


@router.patch("/users/{registrant_id}/phone", response_model=RegistrantOut)
async def update_phone(
    registrant_id: str, payload: PhoneUpdateIn, db: AsyncSession = Depends(get_db)
):
    registrant = await RegistrantStore(db).update(registrant_id, phone=payload.phone)
    return api_response(
        data=RegistrantOut.model_validate(registrant), message="Phone number updated successfully"
    )


@router.delete("/users/{registrant_id}", summary="Remove a registrant from the waitlist")
async def deactivate_registrant(registrant_id: str, db: AsyncSession = Depends(get_db)):
    await RegistrantStore(db).deactivate(registrant_id)
    return api_response(data={"id": registrant_id}, message="User removed from waitlist")


@router.post("/stories", response_model=StoryOut, status_code=status.HTTP_201_CREATED)
async def share_story(story_in: StoryIn, db: AsyncSession = Depends(get_db)):
    story = await submit_story(db, story_in.story, story_in.email, story_in.name)
    return api_response(
        data=StoryOut.model_validate(story),
        message="Story submitted successfully",
        status_code=status.HTTP_201_CREATED,
    )
