"""Once-per-account milestones earned through marketplace activity."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.achievement import ACHIEVEMENT_TYPES, Achievement
from services.timeutil import isoformat, utcnow


async def award_achievement(db: AsyncSession, user_id: str, type: str) -> Optional[Achievement]:
    """Stage ``type`` for ``user_id`` unless already earned; returns the new row."""
    if type not in ACHIEVEMENT_TYPES:
        raise ValueError(f"Unknown achievement type: {type}")
    existing = await db.execute(
        select(Achievement.id).where(Achievement.user_id == user_id, Achievement.type == type)
    )
    if existing.scalar_one_or_none() is not None:
        return None
    row = Achievement(id=str(uuid.uuid4()), user_id=user_id, type=type, earned_at=utcnow())
    db.add(row)
    return row


async def list_achievements(user_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Achievement).where(Achievement.user_id == user_id).order_by(Achievement.earned_at.asc())
    )
    return [
        {"id": row.id, "type": row.type, "earned_at": isoformat(row.earned_at)}
        for row in result.scalars().all()
    ]
