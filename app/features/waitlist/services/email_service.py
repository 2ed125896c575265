from datetime import datetime
from typing import Optional

from app.features.waitlist.models.registrant import RegistrantSource
from app.platform.config import settings
from app.platform.services.email import env, send_email


def send_welcome_email(
    to_email: str,
    name: str,
    phone: Optional[str],
    joined_at: datetime,
    source: str,
    referral_code: Optional[str] = None,
    share_url: Optional[str] = None,
):
    """Used for: Waitlist Confirmation (manual and Google signups)"""
    template = env.get_template("welcome_email.html")
    html_content = template.render(
        name=name,
        email=to_email,
        phone=phone or "Not provided",
        joined_date=joined_at.strftime("%B %d, %Y"),
        signup_method="Google" if source == RegistrantSource.EXTERNAL.value else "Manual registration",
        referral_code=referral_code,
        share_url=share_url,
        team_name=settings.MAIL_FROM_NAME,
    )
    send_email(to_email, f"You're on the list! - {settings.APP_NAME}", html_content)
