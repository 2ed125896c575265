from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator


class StoryIn(BaseModel):
    story: str
    email: Optional[EmailStr] = None
    name: Optional[str] = None

    @field_validator("story")
    @classmethod
    def story_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("story is required")
        return v


class StoryOut(BaseModel):
    id: str
    email: Optional[str] = None
    name: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True
