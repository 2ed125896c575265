"""
Domain errors raised by the identity store, the identity resolver and the
referral ledger.

Every error carries the HTTP status it maps to, a human readable message and an
optional payload, so the platform exception handler can render it in the
standard response envelope without knowing the individual classes.
"""

from typing import Any, Optional

from fastapi import status


class WaitlistError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Waitlist request failed"

    def __init__(self, message: Optional[str] = None, data: Optional[Any] = None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)


class InvalidInputError(WaitlistError):
    """Malformed email or referral code. Raised before any write."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid input"


class AlreadyRegisteredError(WaitlistError):
    """Manual signup for an email that already owns a registrant."""

    default_message = "Email already exists in waitlist"

    def __init__(self, existing: dict):
        super().__init__(data={"existing_user": existing})
        self.existing = existing


class InvalidReferralCodeError(WaitlistError):
    default_message = "Invalid referral code"

    def __init__(self, code: str):
        super().__init__(data={"referral_code": code})
        self.code = code


class RegistrantNotFoundError(WaitlistError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User not found"


class DuplicateEmailError(WaitlistError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Email already exists"


class DuplicateExternalIdError(WaitlistError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "External identity already linked"


class DuplicateReferralCodeError(WaitlistError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Referral code already taken"


class CodeGenerationExhaustedError(WaitlistError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Could not allocate a unique referral code"
