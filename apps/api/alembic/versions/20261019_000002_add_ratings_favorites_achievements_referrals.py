"""add listing ratings, favorites, achievements, referrals and purchase guard

Revision ID: 20261019_000002
Revises: 20261018_000001
Create Date: 2026-10-19 00:00:02.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_000002"
down_revision: Union[str, None] = "20261018_000001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "marketplace_listings",
        sa.Column("average_rating", sa.Numeric(3, 2), nullable=False, server_default="0.00"),
    )
    op.add_column(
        "marketplace_listings",
        sa.Column("total_ratings", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_index(
        "uq_transaction_receipts_purchase",
        "transaction_receipts",
        ["payer_id", "listing_id"],
        unique=True,
        postgresql_where=sa.text("kind = 'purchase'"),
        sqlite_where=sa.text("kind = 'purchase'"),
    )

    op.create_table(
        "listing_ratings",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("listing_id", sa.String(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("review", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["listing_id"], ["marketplace_listings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "listing_id", name="uq_listing_ratings_user_listing"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_listing_ratings_range"),
    )
    op.create_index("ix_listing_ratings_user_id", "listing_ratings", ["user_id"], unique=False)
    op.create_index("ix_listing_ratings_listing_id", "listing_ratings", ["listing_id"], unique=False)

    op.create_table(
        "favorites",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("listing_id", sa.String(), nullable=False),
        sa.Column("price_at_save", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["listing_id"], ["marketplace_listings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "listing_id", name="uq_favorites_user_listing"),
    )
    op.create_index("ix_favorites_user_id", "favorites", ["user_id"], unique=False)
    op.create_index("ix_favorites_listing_id", "favorites", ["listing_id"], unique=False)
    op.create_index("ix_favorites_created_at", "favorites", ["created_at"], unique=False)

    op.create_table(
        "achievements",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "type", name="uq_achievements_user_type"),
    )
    op.create_index("ix_achievements_user_id", "achievements", ["user_id"], unique=False)

    op.create_table(
        "referrals",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("referrer_id", sa.String(), nullable=False),
        sa.Column("referred_id", sa.String(), nullable=False),
        sa.Column("referrer_bonus", sa.Numeric(10, 2), nullable=False),
        sa.Column("referred_bonus", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["referrer_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["referred_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("referred_id"),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"], unique=False)
    op.create_index("ix_referrals_created_at", "referrals", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_referrals_created_at", table_name="referrals")
    op.drop_index("ix_referrals_referrer_id", table_name="referrals")
    op.drop_table("referrals")
    op.drop_index("ix_achievements_user_id", table_name="achievements")
    op.drop_table("achievements")
    op.drop_index("ix_favorites_created_at", table_name="favorites")
    op.drop_index("ix_favorites_listing_id", table_name="favorites")
    op.drop_index("ix_favorites_user_id", table_name="favorites")
    op.drop_table("favorites")
    op.drop_index("ix_listing_ratings_listing_id", table_name="listing_ratings")
    op.drop_index("ix_listing_ratings_user_id", table_name="listing_ratings")
    op.drop_table("listing_ratings")
    op.drop_index("uq_transaction_receipts_purchase", table_name="transaction_receipts")
    op.drop_column("marketplace_listings", "total_ratings")
    op.drop_column("marketplace_listings", "average_rating")
