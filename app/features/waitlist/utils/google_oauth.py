from typing import Optional

from fastapi import HTTPException, status
from google.auth.transport import requests
from google.oauth2 import id_token

from app.features.waitlist.schemas.oauth import ExternalProfile
from app.platform.config import settings

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class GoogleOAuthVerifier:
    """Utility class for verifying Google ID tokens"""

    @staticmethod
    def client_id_for(platform: Optional[str]) -> Optional[str]:
        if platform and platform.lower() == "android":
            return settings.GOOGLE_CLIENT_ID_ANDROID
        return settings.GOOGLE_CLIENT_ID

    @staticmethod
    def verify_token(token: str, platform: Optional[str] = "web") -> ExternalProfile:
        """
        Verify a Google ID token and return the provider profile it vouches for.

        Raises:
            HTTPException: 500 if Google sign-in is not configured, 401 if the token is invalid
        """
        client_id = GoogleOAuthVerifier.client_id_for(platform)
        if not client_id:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Google OAuth not configured",
            )

        try:
            idinfo = id_token.verify_oauth2_token(token, requests.Request(), client_id)

            if idinfo["iss"] not in GOOGLE_ISSUERS:
                raise ValueError("Wrong issuer.")
            if not idinfo.get("email"):
                raise ValueError("Token carries no email.")

            # pydantic ValidationError is a ValueError: a malformed email lands below too
            return ExternalProfile(
                external_id=idinfo["sub"],
                provider_email=idinfo["email"],
                display_name=idinfo.get("name"),
                avatar_url=idinfo.get("picture"),
            )

        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid Google token: {str(e)}"
            ) from e
