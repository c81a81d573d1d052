"""Saved listings router."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import get_current_account
from services.favorites import add_favorite, is_favorite, list_favorites, remove_favorite

router = APIRouter()


@router.get("")
async def saved_listings(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await list_favorites(account.id, db)}


@router.post("/{listing_id}")
async def save_listing(
    listing_id: str,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await add_favorite(account.id, listing_id, db)


@router.delete("/{listing_id}")
async def unsave_listing(
    listing_id: str,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    await remove_favorite(account.id, listing_id, db)
    return {"ok": True}


@router.get("/{listing_id}/check")
async def check_saved(
    listing_id: str,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"is_favorite": await is_favorite(account.id, listing_id, db)}
