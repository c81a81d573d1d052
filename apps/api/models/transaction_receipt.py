"""TransactionReceipt model for the immutable ledger log."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, text
from sqlalchemy.sql import func

from database import Base


class TransactionReceipt(Base):
    """Immutable record of one completed value transfer.

    A NULL payer is the platform paying out (referral bonus); a NULL payee is
    the platform collecting (verification fee).
    """

    __tablename__ = "transaction_receipts"
    __table_args__ = (
        # A buyer owns a listing at most once.
        Index(
            "uq_transaction_receipts_purchase",
            "payer_id",
            "listing_id",
            unique=True,
            sqlite_where=text("kind = 'purchase'"),
            postgresql_where=text("kind = 'purchase'"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    payer_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    payee_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    kind = Column(String, nullable=False, index=True)
    listing_id = Column(String, ForeignKey("marketplace_listings.id"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False, default=0)
    transaction_token = Column(String, nullable=False, unique=True, index=True)
    note = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
