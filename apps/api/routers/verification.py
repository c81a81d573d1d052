"""Verification subscription router."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import get_current_account
from routers.rate_limit import rate_limit
from services.ledger import format_amount
from services.verification import get_verification_status, purchase_subscription, serialize_window

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/purchase")
async def purchase_verification(
    _rate_limit: None = Depends(rate_limit("verification_purchase", limit=10, window_seconds=3600)),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    window = await purchase_subscription(account.id, db)
    return {
        "message": "Verification successful",
        "window": serialize_window(window),
        "balance_after": format_amount(account.balance),
    }


@router.get("/status")
async def verification_status(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await get_verification_status(account.id, db)
