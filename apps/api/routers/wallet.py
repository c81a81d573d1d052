"""Wallet balance and transaction history router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import get_current_account
from services.ledger import RECEIPT_KINDS, get_wallet_summary, list_receipts, serialize_receipt

router = APIRouter()


@router.get("")
async def wallet_summary(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await get_wallet_summary(account, db)


@router.get("/transactions")
async def wallet_transactions(
    kind: Optional[str] = Query(default=None, pattern="^(" + "|".join(RECEIPT_KINDS) + ")$"),
    limit: int = Query(default=50, ge=1, le=200),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    receipts = await list_receipts(db, account.id, kind=kind, limit=limit)
    return {
        "items": [serialize_receipt(receipt, account.id) for receipt in receipts],
        "count": len(receipts),
    }
