import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.routes.waitlist import signup_out
from app.features.waitlist.schemas.oauth import GoogleAuthRequest
from app.features.waitlist.schemas.registrant import SignupResponse
from app.features.waitlist.services.identity_resolver import IdentityResolver
from app.features.waitlist.utils.emailer import notify_signup, welcome_email_payload
from app.features.waitlist.utils.google_oauth import GoogleOAuthVerifier
from app.platform.db.session import get_db
from app.platform.response import api_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/oauth", tags=["Authentication"])


@router.post(
    "/google",
    response_model=SignupResponse,
    status_code=status.HTTP_200_OK,
    summary="Join the waitlist with Google",
    description="Verify a Google Sign-In ID token and add (or link) the user on the waitlist",
)
async def google_auth(
    request: GoogleAuthRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    - **id_token**: The ID token received from Google Sign-In
    - **platform**: web, ios or android; picks the Google client id
    - **state**: the OAuth state value, carries the referral code of the inviter if any
    """
    profile = GoogleOAuthVerifier.verify_token(request.id_token, request.platform)
    outcome = await IdentityResolver(db).handle_external_login(profile, request.state)

    background_tasks.add_task(notify_signup, welcome_email_payload(outcome.registrant))
    logger.info(
        f"Google {'signup' if outcome.is_new_user else 'login'} for registrant {outcome.registrant.id}"
    )

    message = (
        "Successfully added to waitlist via Google!"
        if outcome.is_new_user
        else "Welcome back, your Google account is linked to the waitlist"
    )
    return api_response(
        data=signup_out(outcome),
        message=message,
        status_code=status.HTTP_201_CREATED if outcome.is_new_user else status.HTTP_200_OK,
    )
