"""ListingRating model: one buyer's score for a listing."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class ListingRating(Base):
    __tablename__ = "listing_ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "listing_id", name="uq_listing_ratings_user_listing"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_listing_ratings_range"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    listing_id = Column(String, ForeignKey("marketplace_listings.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    review = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    listing = relationship("MarketplaceListing", back_populates="ratings")
