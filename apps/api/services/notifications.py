"""Notification records written alongside ledger effects."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.notification import Notification
from services.timeutil import isoformat, utcnow


def add_notification(
    db: AsyncSession,
    *,
    user_id: str,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> Notification:
    """Stage a notification in the caller's transaction."""
    row = Notification(
        id=str(uuid.uuid4()),
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data or {},
        is_read=False,
        created_at=utcnow(),
    )
    db.add(row)
    return row


def serialize_notification(row: Notification) -> Dict[str, Any]:
    return {
        "id": row.id,
        "type": row.type,
        "title": row.title,
        "message": row.message,
        "data": row.data or {},
        "is_read": bool(row.is_read),
        "created_at": isoformat(row.created_at),
    }


async def list_notifications(user_id: str, db: AsyncSession, limit: int = 50) -> Dict[str, Any]:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(max(1, min(int(limit), 200)))
    )
    rows = result.scalars().all()
    return {
        "unread_count": await count_unread(user_id, db),
        "items": [serialize_notification(row) for row in rows],
    }


async def mark_notification_read(user_id: str, notification_id: str, db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Notification not found")
    row.is_read = True
    await db.commit()
    return serialize_notification(row)


async def mark_all_notifications_read(user_id: str, db: AsyncSession) -> List[str]:
    result = await db.execute(
        select(Notification.id).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
    )
    ids = [str(row_id) for row_id in result.scalars().all()]
    if ids:
        await db.execute(
            update(Notification)
            .where(Notification.id.in_(ids))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    return ids


async def count_unread(user_id: str, db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
    )
    return int(result.scalar() or 0)


async def delete_notification(user_id: str, notification_id: str, db: AsyncSession) -> None:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.delete(row)
    await db.commit()


async def delete_all_notifications(user_id: str, db: AsyncSession) -> int:
    result = await db.execute(
        delete(Notification)
        .where(Notification.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return int(result.rowcount or 0)
