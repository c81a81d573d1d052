"""Notification inbox router."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import get_current_account
from services.notifications import (
    count_unread,
    delete_all_notifications,
    delete_notification,
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
)

router = APIRouter()


@router.get("")
async def inbox(
    limit: int = Query(default=50, ge=1, le=200),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await list_notifications(account.id, db, limit=limit)


@router.get("/unread-count")
async def unread_count(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"count": await count_unread(account.id, db)}


@router.patch("/{notification_id}/read")
async def read_notification(
    notification_id: str,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await mark_notification_read(account.id, notification_id, db)


@router.post("/read-all")
async def read_all_notifications(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    ids = await mark_all_notifications_read(account.id, db)
    return {"ok": True, "marked_read": len(ids)}


@router.delete("/{notification_id}")
async def remove_notification(
    notification_id: str,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    await delete_notification(account.id, notification_id, db)
    return {"ok": True}


@router.delete("")
async def clear_notifications(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    deleted = await delete_all_notifications(account.id, db)
    return {"ok": True, "deleted": deleted}
