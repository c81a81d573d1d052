"""Account-facing lookups: achievements, referrals and user search."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import get_current_account
from services.accounts import list_referrals, search_users
from services.achievements import list_achievements

router = APIRouter()


@router.get("/achievements")
async def my_achievements(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await list_achievements(account.id, db)}


@router.get("/referrals")
async def my_referrals(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await list_referrals(account, db)


@router.get("/users/search")
async def find_users(
    q: Optional[str] = Query(default=None, max_length=50),
    _account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await search_users(q, db)}
