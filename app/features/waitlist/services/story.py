import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.models.registrant import RegistrantSource
from app.features.waitlist.models.story import Story
from app.features.waitlist.services.identity_store import RegistrantStore, normalize_email

logger = logging.getLogger(__name__)


async def submit_story(
    db: AsyncSession, story: str, email: Optional[str] = None, name: Optional[str] = None
) -> Story:
    """Store a testimonial, linking it to a registrant when the email is known."""
    email = normalize_email(email) or None
    registrant = await RegistrantStore(db).find_by_email(email) if email else None

    display_name = (name or "").strip()
    if not display_name and registrant and registrant.external_profile:
        display_name = registrant.external_profile.get("display_name") or ""

    entry = Story(
        registrant_id=registrant.id if registrant else None,
        email=email,
        name=display_name or "Anonymous",
        body=story.strip(),
        source=registrant.source if registrant else RegistrantSource.MANUAL.value,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    logger.info(f"Story {entry.id} submitted (registrant={entry.registrant_id})")
    return entry
