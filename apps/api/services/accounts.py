"""Account registration, administration and platform statistics."""

from __future__ import annotations

import logging
import re
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import async_session_maker
from models.marketplace_listing import MarketplaceListing
from models.referral import Referral
from models.transaction_receipt import TransactionReceipt
from models.user import User
from services.errors import NotFound
from services.ledger import ZERO, apply_platform_credit, atomic, format_amount
from services.notifications import add_notification
from services.timeutil import isoformat, utcnow


logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,20}$")


def _normalize_username(value: Any) -> str:
    username = str(value or "").strip()
    if not USERNAME_PATTERN.match(username):
        raise HTTPException(
            status_code=422,
            detail="Username must be 3-20 characters of letters, digits, '.', '_' or '-'.",
        )
    return username


async def _unused_referral_code(db: AsyncSession) -> str:
    for _ in range(5):
        code = f"REF{uuid.uuid4().hex[:8].upper()}"
        existing = await db.execute(select(User.id).where(User.referral_code == code))
        if existing.scalar_one_or_none() is None:
            return code
    return f"REF{uuid.uuid4().hex.upper()}"


async def get_account(account_id: str, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.id == account_id))
    account = result.scalar_one_or_none()
    if not account:
        raise NotFound()
    return account


async def register_account(
    username: str,
    db: AsyncSession,
    *,
    display_name: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> User:
    """Create an account with the starting balance and pay any referral bonus."""
    normalized = _normalize_username(username)

    async with atomic(db):
        existing = await db.execute(select(User.id).where(func.lower(User.username) == normalized.lower()))
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=409, detail="Username already taken")

        account = User(
            id=str(uuid.uuid4()),
            username=normalized,
            display_name=(display_name or "").strip() or None,
            balance=settings.STARTING_BALANCE,
            total_earnings=ZERO,
            referral_code=await _unused_referral_code(db),
            created_at=utcnow(),
        )
        db.add(account)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise HTTPException(status_code=409, detail="Username already taken") from exc

        code = (referral_code or "").strip().upper()
        if code:
            referrer_result = await db.execute(select(User).where(User.referral_code == code))
            referrer = referrer_result.scalar_one_or_none()
            if referrer is not None:
                account.referred_by = referrer.id
                await apply_platform_credit(
                    db,
                    referrer.id,
                    settings.REFERRER_BONUS,
                    kind="referral_bonus",
                    note=f"Referral bonus for {account.username}",
                )
                await apply_platform_credit(
                    db,
                    account.id,
                    settings.REFERRED_BONUS,
                    kind="referral_bonus",
                    note="Welcome bonus for joining with a referral code",
                )
                db.add(
                    Referral(
                        id=str(uuid.uuid4()),
                        referrer_id=referrer.id,
                        referred_id=account.id,
                        referrer_bonus=settings.REFERRER_BONUS,
                        referred_bonus=settings.REFERRED_BONUS,
                        created_at=utcnow(),
                    )
                )
                add_notification(
                    db,
                    user_id=referrer.id,
                    type="referral",
                    title="New Referral",
                    message=(
                        f"{account.username} signed up using your referral code! "
                        f"You earned ${format_amount(settings.REFERRER_BONUS)}."
                    ),
                    data={"referred_user_id": account.id},
                )

    logger.info("account_registered account=%s referred_by=%s", account.id, account.referred_by)
    return account


async def ensure_admin_account(db: Optional[AsyncSession] = None) -> Optional[User]:
    """Create or repair the configured administrator account."""
    username = (settings.ADMIN_USERNAME or "").strip()
    if not username:
        return None

    async def _run_with_session(session: AsyncSession) -> User:
        async with atomic(session):
            result = await session.execute(select(User).where(func.lower(User.username) == username.lower()))
            admin = result.scalar_one_or_none()
            if admin is None:
                admin = User(
                    id=str(uuid.uuid4()),
                    username=_normalize_username(username),
                    display_name=settings.ADMIN_DISPLAY_NAME,
                    balance=settings.STARTING_BALANCE,
                    total_earnings=ZERO,
                    referral_code=await _unused_referral_code(session),
                    created_at=utcnow(),
                )
                session.add(admin)
            admin.is_admin = True
            admin.has_infinite_balance = True
            admin.is_suspended = False
            if not admin.is_verified or admin.verification_expiry is not None:
                admin.is_verified = True
                admin.verified_at = utcnow()
                admin.verification_expiry = None
            admin.verification_granted_by = admin.id
        return admin

    if db is not None:
        return await _run_with_session(db)
    async with async_session_maker() as session:
        return await _run_with_session(session)


async def set_suspended(account_id: str, suspended: bool, db: AsyncSession) -> User:
    async with atomic(db):
        account = await get_account(account_id, db)
        if account.is_admin and suspended:
            raise HTTPException(status_code=400, detail="Cannot suspend an admin")
        account.is_suspended = bool(suspended)
    logger.info("account_suspension account=%s suspended=%s", account.id, bool(suspended))
    return account


async def list_accounts(db: AsyncSession, *, query: Optional[str] = None, limit: int = 100) -> List[User]:
    statement = select(User)
    text = (query or "").strip()
    if text:
        statement = statement.where(User.username.ilike(f"%{text}%"))
    result = await db.execute(statement.order_by(User.created_at.desc()).limit(max(1, min(int(limit), 500))))
    return list(result.scalars().all())


async def list_referrals(account: User, db: AsyncSession) -> Dict[str, Any]:
    """Accounts that joined with ``account``'s code and the bonus it earned."""
    result = await db.execute(
        select(Referral, User.username)
        .join(User, User.id == Referral.referred_id)
        .where(Referral.referrer_id == account.id)
        .order_by(Referral.created_at.desc())
    )
    rows = result.all()
    total = sum((Decimal(str(referral.referrer_bonus or 0)) for referral, _ in rows), ZERO)
    return {
        "referral_code": account.referral_code,
        "referrals": [
            {
                "id": referral.id,
                "referred_id": referral.referred_id,
                "referred_username": username,
                "referrer_bonus": format_amount(referral.referrer_bonus),
                "created_at": isoformat(referral.created_at),
            }
            for referral, username in rows
        ],
        "total_earned": format_amount(total),
    }


async def search_users(query: Optional[str], db: AsyncSession, *, limit: int = 20) -> List[Dict[str, Any]]:
    text = (query or "").strip()
    if len(text) < 2:
        return []
    result = await db.execute(
        select(User)
        .where(User.username.ilike(f"%{text}%"), User.is_suspended.is_(False))
        .order_by(User.username)
        .limit(max(1, min(int(limit), 50)))
    )
    return [serialize_account(account, private=False) for account in result.scalars().all()]


async def get_platform_stats(db: AsyncSession) -> Dict[str, Any]:
    total_users = await db.execute(select(func.count(User.id)))
    verified_users = await db.execute(select(func.count(User.id)).where(User.is_verified.is_(True)))
    total_listings = await db.execute(select(func.count(MarketplaceListing.id)))
    purchases = await db.execute(
        select(
            func.count(TransactionReceipt.id),
            func.coalesce(func.sum(TransactionReceipt.amount), 0),
        ).where(TransactionReceipt.kind == "purchase")
    )
    purchase_count, purchase_volume = purchases.one()
    return {
        "total_users": int(total_users.scalar() or 0),
        "verified_users": int(verified_users.scalar() or 0),
        "total_listings": int(total_listings.scalar() or 0),
        "total_purchases": int(purchase_count or 0),
        "total_volume": format_amount(purchase_volume),
    }


def serialize_account(account: User, *, private: bool = True) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": account.id,
        "username": account.username,
        "display_name": account.display_name,
        "is_verified": bool(account.is_verified),
        "is_admin": bool(account.is_admin),
        "created_at": isoformat(account.created_at),
    }
    if private:
        payload.update(
            {
                "balance": format_amount(account.balance),
                "total_earnings": format_amount(account.total_earnings),
                "has_infinite_balance": bool(account.has_infinite_balance),
                "is_suspended": bool(account.is_suspended),
                "verification_expiry": isoformat(account.verification_expiry),
                "referral_code": account.referral_code,
            }
        )
    return payload
