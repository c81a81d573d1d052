"""Marketplace listings and the purchase flow."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.listing_rating import ListingRating
from models.marketplace_listing import MarketplaceListing
from models.transaction_receipt import TransactionReceipt
from models.user import User
from services.achievements import award_achievement
from services.errors import AlreadyPurchased, NotFound, SelfTransfer
from services.ledger import (
    CENT,
    ZERO,
    apply_transfer,
    atomic,
    format_amount,
    has_purchased,
    lock_accounts,
    positive_amount,
    serialize_receipt,
    to_amount,
)
from services.notifications import add_notification
from services.timeutil import isoformat, utcnow


logger = logging.getLogger(__name__)


def _platform_fee(price: Decimal) -> Decimal:
    rate = Decimal(str(settings.MARKETPLACE_FEE_RATE or 0))
    rate = max(Decimal("0"), min(rate, Decimal("1")))
    return (price * rate).quantize(CENT)


async def create_listing(seller_id: str, payload: Dict[str, Any], db: AsyncSession) -> MarketplaceListing:
    price = positive_amount(payload.get("price"))
    listing = MarketplaceListing(
        id=str(uuid.uuid4()),
        seller_id=seller_id,
        title=str(payload.get("title") or "").strip(),
        description=str(payload.get("description") or "").strip(),
        price=price,
        file_name=str(payload.get("file_name") or "").strip(),
        file_type=str(payload.get("file_type") or "application/octet-stream").strip(),
        file_size=max(int(payload.get("file_size") or 0), 0),
        category=payload.get("category"),
        tags=list(payload.get("tags") or []),
        downloads=0,
        views=0,
        average_rating=ZERO,
        total_ratings=0,
        is_active=True,
        created_at=utcnow(),
    )
    async with atomic(db):
        db.add(listing)
    logger.info("listing_created listing=%s seller=%s price=%s", listing.id, seller_id, price)
    return listing


async def list_listings(
    db: AsyncSession,
    *,
    query: Optional[str] = None,
    category: Optional[str] = None,
    seller_id: Optional[str] = None,
    limit: int = 50,
) -> List[Dict[str, Any]]:
    statement = (
        select(MarketplaceListing, User)
        .join(User, User.id == MarketplaceListing.seller_id)
        .where(MarketplaceListing.is_active.is_(True))
    )
    text = (query or "").strip()
    if text:
        pattern = f"%{text}%"
        statement = statement.where(
            or_(
                MarketplaceListing.title.ilike(pattern),
                MarketplaceListing.description.ilike(pattern),
            )
        )
    if category:
        statement = statement.where(MarketplaceListing.category == category)
    if seller_id:
        statement = statement.where(MarketplaceListing.seller_id == seller_id)
    result = await db.execute(
        statement.order_by(MarketplaceListing.created_at.desc()).limit(max(1, min(int(limit), 200)))
    )
    return [serialize_listing(listing, seller) for listing, seller in result.all()]


async def _get_active_listing(listing_id: str, db: AsyncSession) -> MarketplaceListing:
    result = await db.execute(
        select(MarketplaceListing).where(
            MarketplaceListing.id == listing_id,
            MarketplaceListing.is_active.is_(True),
        )
    )
    listing = result.scalar_one_or_none()
    if not listing:
        raise NotFound("Listing not found")
    return listing


async def get_listing(listing_id: str, db: AsyncSession) -> Dict[str, Any]:
    async with atomic(db):
        listing = await _get_active_listing(listing_id, db)
        listing.views = int(listing.views or 0) + 1
        seller = await db.get(User, listing.seller_id)
    return serialize_listing(listing, seller)


async def deactivate_listing(listing_id: str, account: User, db: AsyncSession) -> None:
    """Listings referenced by receipts are hidden, never deleted."""
    async with atomic(db):
        listing = await _get_active_listing(listing_id, db)
        if listing.seller_id != account.id and not account.is_admin:
            raise NotFound("Listing not found")
        listing.is_active = False


async def purchase_listing(buyer_id: str, listing_id: str, db: AsyncSession) -> TransactionReceipt:
    """Buy a listing: transfer its price from buyer to seller in one transaction."""
    async with atomic(db):
        listing = await _get_active_listing(listing_id, db)
        if listing.seller_id == buyer_id:
            raise SelfTransfer("You cannot buy your own listing")

        # Ownership is checked under the buyer's row lock so concurrent
        # purchases of the same listing by one buyer serialise here.
        accounts = await lock_accounts(db, (buyer_id, listing.seller_id))
        buyer = accounts.get(str(buyer_id))
        if buyer is None:
            raise NotFound("Buyer account not found")
        if await has_purchased(db, buyer_id, listing.id):
            raise AlreadyPurchased()

        price = to_amount(listing.price)
        try:
            receipt = await apply_transfer(
                db,
                buyer_id,
                listing.seller_id,
                price,
                kind="purchase",
                listing_id=listing.id,
                platform_fee=_platform_fee(price),
            )
        except IntegrityError as exc:
            # uq_transaction_receipts_purchase: another request bought it first.
            raise AlreadyPurchased() from exc
        listing.downloads = int(listing.downloads or 0) + 1

        await award_achievement(db, buyer_id, "first_purchase")
        await award_achievement(db, listing.seller_id, "first_sale")
        add_notification(
            db,
            user_id=buyer_id,
            type="purchase",
            title="Purchase Complete",
            message=f'You purchased "{listing.title}" for ${format_amount(price)}',
            data={"listing_id": listing.id, "receipt_id": receipt.id},
        )
        add_notification(
            db,
            user_id=listing.seller_id,
            type="sale",
            title="New Sale",
            message=f'{buyer.username} purchased "{listing.title}" for ${format_amount(price)}',
            data={"listing_id": listing.id, "receipt_id": receipt.id, "buyer_id": buyer_id},
        )

    logger.info("listing_purchased listing=%s buyer=%s token=%s", listing.id, buyer_id, receipt.transaction_token)
    return receipt


async def rate_listing(
    account_id: str,
    listing_id: str,
    rating: int,
    db: AsyncSession,
    *,
    review: Optional[str] = None,
) -> Dict[str, Any]:
    """Record or replace a buyer's 1-5 rating and refresh the listing average."""
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise HTTPException(status_code=422, detail="Rating must be between 1 and 5")

    async with atomic(db):
        result = await db.execute(
            select(MarketplaceListing)
            .where(MarketplaceListing.id == listing_id, MarketplaceListing.is_active.is_(True))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        listing = result.scalar_one_or_none()
        if not listing:
            raise NotFound("Listing not found")
        if not await has_purchased(db, account_id, listing.id):
            raise HTTPException(status_code=403, detail="You must purchase this item to rate it")

        existing = await db.execute(
            select(ListingRating).where(
                ListingRating.user_id == account_id,
                ListingRating.listing_id == listing.id,
            )
        )
        row = existing.scalar_one_or_none()
        if row is None:
            row = ListingRating(
                id=str(uuid.uuid4()),
                user_id=account_id,
                listing_id=listing.id,
                rating=rating,
                review=review,
                created_at=utcnow(),
            )
            db.add(row)
        else:
            row.rating = rating
            row.review = review
        await db.flush()

        totals = await db.execute(
            select(func.avg(ListingRating.rating), func.count(ListingRating.id)).where(
                ListingRating.listing_id == listing.id
            )
        )
        average, count = totals.one()
        listing.average_rating = Decimal(str(average or 0)).quantize(CENT)
        listing.total_ratings = int(count or 0)

    return {
        "listing_id": listing.id,
        "rating": rating,
        "average_rating": format_amount(listing.average_rating),
        "total_ratings": listing.total_ratings,
    }


async def list_my_listings(seller_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    """Every listing the seller published, removed ones included."""
    result = await db.execute(
        select(MarketplaceListing)
        .where(MarketplaceListing.seller_id == seller_id)
        .order_by(MarketplaceListing.created_at.desc())
    )
    return [serialize_listing(listing) for listing in result.scalars().all()]


async def _receipts_with_listings(db: AsyncSession, *conditions) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(TransactionReceipt, MarketplaceListing)
        .outerjoin(MarketplaceListing, MarketplaceListing.id == TransactionReceipt.listing_id)
        .where(TransactionReceipt.kind == "purchase", *conditions)
        .order_by(TransactionReceipt.created_at.desc())
    )
    items = []
    for receipt, listing in result.all():
        payload = serialize_receipt(receipt)
        payload["listing"] = serialize_listing(listing) if listing else None
        items.append(payload)
    return items


async def list_purchases(buyer_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    return await _receipts_with_listings(db, TransactionReceipt.payer_id == buyer_id)


async def list_sales(seller_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    return await _receipts_with_listings(db, TransactionReceipt.payee_id == seller_id)


def serialize_listing(listing: MarketplaceListing, seller: Optional[User] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": listing.id,
        "seller_id": listing.seller_id,
        "title": listing.title,
        "description": listing.description,
        "price": format_amount(listing.price),
        "file_name": listing.file_name,
        "file_type": listing.file_type,
        "file_size": int(listing.file_size or 0),
        "category": listing.category,
        "tags": list(listing.tags or []),
        "downloads": int(listing.downloads or 0),
        "views": int(listing.views or 0),
        "average_rating": format_amount(listing.average_rating),
        "total_ratings": int(listing.total_ratings or 0),
        "is_active": bool(listing.is_active),
        "created_at": isoformat(listing.created_at),
    }
    if seller is not None:
        payload["seller_name"] = seller.display_name or seller.username
        payload["seller_verified"] = bool(seller.is_verified)
    return payload
