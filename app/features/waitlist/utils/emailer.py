import logging

from app.features.waitlist.models.registrant import Registrant
from app.features.waitlist.services.email_service import send_welcome_email
from app.features.waitlist.services.waitlist_queries import build_share_url


def welcome_email_payload(registrant: Registrant) -> dict:
    """Plain values for the background task; the ORM row does not outlive the request session."""
    return {
        "to_email": registrant.email,
        "name": registrant.display_name,
        "phone": registrant.phone,
        "joined_at": registrant.joined_at,
        "source": registrant.source,
        "referral_code": registrant.referral_code,
        "share_url": build_share_url(registrant.referral_code),
    }


def notify_signup(payload: dict):
    # Never let a mail failure surface to the signup
    try:
        send_welcome_email(**payload)
    except Exception as e:
        logging.error(f"Failed to send welcome email to {payload.get('to_email')}: {e}")
