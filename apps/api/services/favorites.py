"""Saved listings with the price seen when they were saved."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.favorite import Favorite
from models.marketplace_listing import MarketplaceListing
from models.user import User
from services.errors import AlreadyFavorited, NotFound
from services.ledger import atomic, format_amount, to_amount
from services.marketplace import serialize_listing
from services.timeutil import isoformat, utcnow


logger = logging.getLogger(__name__)


async def add_favorite(account_id: str, listing_id: str, db: AsyncSession) -> Dict[str, Any]:
    async with atomic(db):
        result = await db.execute(
            select(MarketplaceListing).where(
                MarketplaceListing.id == listing_id,
                MarketplaceListing.is_active.is_(True),
            )
        )
        listing = result.scalar_one_or_none()
        if not listing:
            raise NotFound("Listing not found")

        existing = await db.execute(
            select(Favorite.id).where(Favorite.user_id == account_id, Favorite.listing_id == listing.id)
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyFavorited()

        favorite = Favorite(
            id=str(uuid.uuid4()),
            user_id=account_id,
            listing_id=listing.id,
            price_at_save=listing.price,
            created_at=utcnow(),
        )
        db.add(favorite)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise AlreadyFavorited() from exc

    logger.info("favorite_added account=%s listing=%s", account_id, listing.id)
    return {
        "id": favorite.id,
        "listing_id": favorite.listing_id,
        "price_at_save": format_amount(favorite.price_at_save),
        "created_at": isoformat(favorite.created_at),
    }


async def remove_favorite(account_id: str, listing_id: str, db: AsyncSession) -> None:
    async with atomic(db):
        await db.execute(
            delete(Favorite)
            .where(Favorite.user_id == account_id, Favorite.listing_id == listing_id)
            .execution_options(synchronize_session=False)
        )


async def list_favorites(account_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    """Saved listings that are still for sale, newest first."""
    result = await db.execute(
        select(Favorite, MarketplaceListing, User)
        .join(MarketplaceListing, MarketplaceListing.id == Favorite.listing_id)
        .join(User, User.id == MarketplaceListing.seller_id)
        .where(Favorite.user_id == account_id, MarketplaceListing.is_active.is_(True))
        .order_by(Favorite.created_at.desc())
    )
    items = []
    for favorite, listing, seller in result.all():
        saved = to_amount(favorite.price_at_save)
        current = to_amount(listing.price)
        items.append(
            {
                "id": favorite.id,
                "listing": serialize_listing(listing, seller),
                "price_at_save": format_amount(saved),
                "current_price": format_amount(current),
                "price_drop": saved > current,
                "created_at": isoformat(favorite.created_at),
            }
        )
    return items


async def is_favorite(account_id: str, listing_id: str, db: AsyncSession) -> bool:
    result = await db.execute(
        select(Favorite.id).where(Favorite.user_id == account_id, Favorite.listing_id == listing_id)
    )
    return result.scalar_one_or_none() is not None
