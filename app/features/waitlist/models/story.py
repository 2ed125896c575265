import enum

from sqlalchemy import JSON, Column, ForeignKey, Index, String, Text

from app.platform.db.base import BaseModel


class StoryStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Story(BaseModel):
    __tablename__ = "stories"

    registrant_id = Column(String, ForeignKey("registrants.id"), nullable=True)
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=False, default="Anonymous")
    body = Column(Text, nullable=False)
    source = Column(String(20), nullable=False, default="manual")
    status = Column(String(20), nullable=False, default=StoryStatus.PENDING.value)
    metadata_ = Column("metadata", JSON, nullable=True)

    __table_args__ = (Index("ix_stories_email_created_at", "email", "created_at"),)
