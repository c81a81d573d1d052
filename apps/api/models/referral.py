"""Referral model linking a referrer to the account that used their code."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.sql import func

from database import Base


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    referrer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    # An account can be referred once.
    referred_id = Column(String, ForeignKey("users.id"), nullable=False, unique=True)
    referrer_bonus = Column(Numeric(10, 2), nullable=False)
    referred_bonus = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
