"""Administrator operations: gifts, verification and suspension."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import require_admin
from services.accounts import (
    get_account,
    get_platform_stats,
    list_accounts,
    serialize_account,
    set_suspended,
)
from services.ledger import apply_transfer, atomic, format_amount, serialize_receipt
from services.notifications import add_notification
from services.verification import grant_verification, revoke_verification

router = APIRouter()
logger = logging.getLogger(__name__)


class GiftMoneyRequest(BaseModel):
    user_id: str
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    note: Optional[str] = Field(default=None, max_length=280)


class ToggleVerificationRequest(BaseModel):
    is_verified: bool


class ToggleSuspendRequest(BaseModel):
    is_suspended: bool


@router.get("/users")
async def admin_users(
    q: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    accounts = await list_accounts(db, query=q, limit=limit)
    return {"items": [serialize_account(account) for account in accounts]}


@router.get("/stats")
async def admin_stats(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await get_platform_stats(db)


@router.post("/gift-money")
async def gift_money(
    request: GiftMoneyRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    async with atomic(db):
        receipt = await apply_transfer(
            db,
            admin.id,
            request.user_id,
            request.amount,
            kind="gift",
            note=request.note,
        )
        note_suffix = f': "{request.note}"' if request.note else ""
        add_notification(
            db,
            user_id=request.user_id,
            type="gift",
            title="Money Gift Received",
            message=f"{admin.display_name or admin.username} sent you ${format_amount(receipt.amount)}{note_suffix}",
            data={"receipt_id": receipt.id, "amount": format_amount(receipt.amount)},
        )
    logger.info("admin_gift admin=%s recipient=%s amount=%s", admin.id, request.user_id, receipt.amount)
    return {"message": "Gift sent successfully", "gift": serialize_receipt(receipt)}


@router.post("/toggle-verification/{user_id}")
async def toggle_verification(
    user_id: str,
    request: ToggleVerificationRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if request.is_verified:
        account = await grant_verification(user_id, admin.id, db)
        return {"message": "Verification granted", "account": serialize_account(account)}

    cancelled = await revoke_verification(user_id, db)
    account = await get_account(user_id, db)
    return {
        "message": "Verification removed",
        "cancelled_windows": cancelled,
        "account": serialize_account(account),
    }


@router.post("/toggle-suspend/{user_id}")
async def toggle_suspend(
    user_id: str,
    request: ToggleSuspendRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    account = await set_suspended(user_id, request.is_suspended, db)
    return {
        "message": f"User {'suspended' if account.is_suspended else 'unsuspended'}",
        "account": serialize_account(account),
    }
