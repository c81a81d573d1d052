"""Paid verification subscriptions and their expiry sweep."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import async_session_maker
from models.subscription_window import SubscriptionWindow
from models.user import User
from services.errors import AlreadyVerified, NotFound
from services.ledger import apply_platform_debit, atomic, format_amount
from services.notifications import add_notification
from services.timeutil import add_months, isoformat, utcnow


logger = logging.getLogger(__name__)


async def _load_account_for_update(account_id: str, db: AsyncSession) -> User:
    result = await db.execute(
        select(User)
        .where(User.id == account_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise NotFound()
    return account


async def purchase_subscription(account_id: str, db: AsyncSession) -> SubscriptionWindow:
    """Charge the verification fee and open a one-period verified window."""
    async with atomic(db):
        account = await _load_account_for_update(account_id, db)
        if account.is_verified:
            raise AlreadyVerified()

        receipt = await apply_platform_debit(
            db,
            account.id,
            settings.VERIFICATION_FEE,
            kind="subscription",
            note="Verification subscription",
        )

        now = utcnow()
        period_end = add_months(now, max(int(settings.VERIFICATION_PERIOD_MONTHS), 1))
        window = SubscriptionWindow(
            id=str(uuid.uuid4()),
            account_id=account.id,
            receipt_id=receipt.id,
            amount=receipt.amount,
            period_start=now,
            period_end=period_end,
            status="active",
            created_at=now,
        )
        db.add(window)

        account.is_verified = True
        account.verified_at = now
        account.verification_expiry = period_end
        account.verification_granted_by = None

        add_notification(
            db,
            user_id=account.id,
            type="system",
            title="Verification Active",
            message="Congratulations! You are now a verified member.",
            data={"window_id": window.id, "transaction_token": receipt.transaction_token},
        )
        try:
            await db.flush()
        except IntegrityError as exc:
            # Another request opened an active window first.
            raise AlreadyVerified() from exc

    logger.info("verification_purchased account=%s window=%s ends=%s", account.id, window.id, period_end.isoformat())
    return window


async def get_active_window(account_id: str, db: AsyncSession) -> Optional[SubscriptionWindow]:
    result = await db.execute(
        select(SubscriptionWindow)
        .where(
            SubscriptionWindow.account_id == account_id,
            SubscriptionWindow.status == "active",
            SubscriptionWindow.period_end > utcnow(),
        )
        .order_by(SubscriptionWindow.period_end.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_verification_status(account_id: str, db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(select(User).where(User.id == account_id))
    account = result.scalar_one_or_none()
    if not account:
        raise NotFound()
    window = await get_active_window(account.id, db)
    return {
        "is_verified": bool(account.is_verified),
        "verified_at": isoformat(account.verified_at),
        "verification_expiry": isoformat(account.verification_expiry),
        "granted_by_admin": bool(account.verification_granted_by),
        "verification_fee": format_amount(settings.VERIFICATION_FEE),
        "active_window": serialize_window(window) if window else None,
    }


async def grant_verification(account_id: str, admin_id: str, db: AsyncSession) -> User:
    """Administrative grant: permanent, no expiry, no fee."""
    async with atomic(db):
        account = await _load_account_for_update(account_id, db)
        account.is_verified = True
        account.verified_at = utcnow()
        account.verification_expiry = None
        account.verification_granted_by = admin_id
        add_notification(
            db,
            user_id=account.id,
            type="system",
            title="Verification Granted",
            message="An admin has granted you permanent verification status.",
        )
    return account


async def revoke_verification(account_id: str, db: AsyncSession) -> int:
    """Administrative removal; active windows move to ``cancelled``."""
    async with atomic(db):
        account = await _load_account_for_update(account_id, db)
        account.is_verified = False
        account.verified_at = None
        account.verification_expiry = None
        account.verification_granted_by = None
        result = await db.execute(
            update(SubscriptionWindow)
            .where(
                SubscriptionWindow.account_id == account.id,
                SubscriptionWindow.status == "active",
            )
            .values(status="cancelled")
            .execution_options(synchronize_session=False)
        )
        cancelled = int(result.rowcount or 0)
        add_notification(
            db,
            user_id=account.id,
            type="system",
            title="Verification Removed",
            message="Your verification status has been removed by an admin.",
        )
    return cancelled


async def expire_stale_windows(db: Optional[AsyncSession] = None) -> Dict[str, int]:
    """Expire lapsed windows and drop fee-based verification past its expiry.

    Admin grants carry no expiry and are never touched. Safe to run repeatedly.
    """

    async def _run_with_session(session: AsyncSession) -> Dict[str, int]:
        now = utcnow()
        async with atomic(session):
            windows = await session.execute(
                update(SubscriptionWindow)
                .where(
                    SubscriptionWindow.status == "active",
                    SubscriptionWindow.period_end < now,
                )
                .values(status="expired")
                .execution_options(synchronize_session=False)
            )
            accounts = await session.execute(
                update(User)
                .where(
                    User.is_verified.is_(True),
                    User.verification_expiry.is_not(None),
                    User.verification_expiry < now,
                    User.verification_granted_by.is_(None),
                )
                .values(is_verified=False, verification_expiry=None)
                .execution_options(synchronize_session=False)
            )
        return {
            "expired_windows": int(windows.rowcount or 0),
            "unverified_accounts": int(accounts.rowcount or 0),
        }

    if db is not None:
        return await _run_with_session(db)
    async with async_session_maker() as session:
        return await _run_with_session(session)


def serialize_window(window: SubscriptionWindow) -> Dict[str, Any]:
    return {
        "id": window.id,
        "account_id": window.account_id,
        "receipt_id": window.receipt_id,
        "amount": format_amount(window.amount),
        "period_start": isoformat(window.period_start),
        "period_end": isoformat(window.period_end),
        "status": window.status,
        "created_at": isoformat(window.created_at),
    }
