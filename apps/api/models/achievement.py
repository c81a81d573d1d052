"""Achievement model."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


ACHIEVEMENT_TYPES = ("first_purchase", "first_sale")


class Achievement(Base):
    """A milestone earned once per account."""

    __tablename__ = "achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "type", name="uq_achievements_user_type"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    earned_at = Column(DateTime(timezone=True), server_default=func.now())
