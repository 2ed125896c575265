from app.features.waitlist.models.registrant import Registrant, RegistrantSource
from app.features.waitlist.models.story import Story, StoryStatus

__all__ = ["Registrant", "RegistrantSource", "Story", "StoryStatus"]
