"""create accounts, ledger, subscription and marketplace tables

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False, server_default="2500.00"),
        sa.Column("total_earnings", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("has_infinite_balance", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_granted_by", sa.String(), nullable=True),
        sa.Column("referral_code", sa.String(), nullable=True),
        sa.Column("referred_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)
    op.create_index(op.f("ix_users_referral_code"), "users", ["referral_code"], unique=True)
    op.create_index(op.f("ix_users_is_verified"), "users", ["is_verified"], unique=False)

    op.create_table(
        "marketplace_listings",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("seller_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("file_type", sa.String(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_marketplace_listings_seller_id", "marketplace_listings", ["seller_id"], unique=False)
    op.create_index("ix_marketplace_listings_category", "marketplace_listings", ["category"], unique=False)
    op.create_index("ix_marketplace_listings_is_active", "marketplace_listings", ["is_active"], unique=False)
    op.create_index("ix_marketplace_listings_created_at", "marketplace_listings", ["created_at"], unique=False)

    op.create_table(
        "transaction_receipts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("payer_id", sa.String(), nullable=True),
        sa.Column("payee_id", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("listing_id", sa.String(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("transaction_token", sa.String(), nullable=False),
        sa.Column("note", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["payer_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["payee_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["listing_id"], ["marketplace_listings.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transaction_receipts_payer_id", "transaction_receipts", ["payer_id"], unique=False)
    op.create_index("ix_transaction_receipts_payee_id", "transaction_receipts", ["payee_id"], unique=False)
    op.create_index("ix_transaction_receipts_kind", "transaction_receipts", ["kind"], unique=False)
    op.create_index("ix_transaction_receipts_listing_id", "transaction_receipts", ["listing_id"], unique=False)
    op.create_index(
        "ix_transaction_receipts_transaction_token",
        "transaction_receipts",
        ["transaction_token"],
        unique=True,
    )
    op.create_index("ix_transaction_receipts_created_at", "transaction_receipts", ["created_at"], unique=False)

    op.create_table(
        "subscription_windows",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("receipt_id", sa.String(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["receipt_id"], ["transaction_receipts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("period_end > period_start", name="ck_subscription_windows_period"),
    )
    op.create_index("ix_subscription_windows_account_id", "subscription_windows", ["account_id"], unique=False)
    op.create_index("ix_subscription_windows_period_end", "subscription_windows", ["period_end"], unique=False)
    op.create_index("ix_subscription_windows_status", "subscription_windows", ["status"], unique=False)
    op.create_index(
        "uq_subscription_windows_active_account",
        "subscription_windows",
        ["account_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("uq_subscription_windows_active_account", table_name="subscription_windows")
    op.drop_index("ix_subscription_windows_status", table_name="subscription_windows")
    op.drop_index("ix_subscription_windows_period_end", table_name="subscription_windows")
    op.drop_index("ix_subscription_windows_account_id", table_name="subscription_windows")
    op.drop_table("subscription_windows")
    op.drop_index("ix_transaction_receipts_created_at", table_name="transaction_receipts")
    op.drop_index("ix_transaction_receipts_transaction_token", table_name="transaction_receipts")
    op.drop_index("ix_transaction_receipts_listing_id", table_name="transaction_receipts")
    op.drop_index("ix_transaction_receipts_kind", table_name="transaction_receipts")
    op.drop_index("ix_transaction_receipts_payee_id", table_name="transaction_receipts")
    op.drop_index("ix_transaction_receipts_payer_id", table_name="transaction_receipts")
    op.drop_table("transaction_receipts")
    op.drop_index("ix_marketplace_listings_created_at", table_name="marketplace_listings")
    op.drop_index("ix_marketplace_listings_is_active", table_name="marketplace_listings")
    op.drop_index("ix_marketplace_listings_category", table_name="marketplace_listings")
    op.drop_index("ix_marketplace_listings_seller_id", table_name="marketplace_listings")
    op.drop_table("marketplace_listings")
    op.drop_index(op.f("ix_users_is_verified"), table_name="users")
    op.drop_index(op.f("ix_users_referral_code"), table_name="users")
    op.drop_index(op.f("ix_users_username"), table_name="users")
    op.drop_table("users")
