"""SubscriptionWindow model for paid verification periods."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


WINDOW_STATUSES = ("active", "expired", "cancelled")


class SubscriptionWindow(Base):
    """One paid interval of verified status."""

    __tablename__ = "subscription_windows"
    __table_args__ = (
        CheckConstraint("period_end > period_start", name="ck_subscription_windows_period"),
        Index(
            "uq_subscription_windows_active_account",
            "account_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    receipt_id = Column(String, ForeignKey("transaction_receipts.id"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String, nullable=False, default="active", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    account = relationship("User", back_populates="subscription_windows")
