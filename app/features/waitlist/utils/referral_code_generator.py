import re
import secrets
import string
from typing import Optional

from app.platform.config import settings

REFERRAL_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code(length: int = settings.REFERRAL_CODE_LENGTH) -> str:
    return ''.join(secrets.choice(REFERRAL_ALPHABET) for _ in range(length))


def normalize_referral_code(code: Optional[str]) -> str:
    """Trim and upper-case a presented code. Returns "" for a missing one."""
    return (code or "").strip().upper()


def is_well_formed_referral_code(code: str) -> bool:
    return re.fullmatch(rf"[A-Z0-9]{{{settings.REFERRAL_CODE_LENGTH}}}", code) is not None
