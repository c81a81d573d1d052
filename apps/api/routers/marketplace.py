"""Marketplace listings and purchase router."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import get_current_account
from routers.rate_limit import rate_limit
from services.ledger import format_amount, serialize_receipt
from services.marketplace import (
    create_listing,
    deactivate_listing,
    get_listing,
    list_listings,
    list_my_listings,
    list_purchases,
    list_sales,
    purchase_listing,
    rate_listing,
    serialize_listing,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateListingRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    file_name: str = Field(min_length=1, max_length=255)
    file_type: str = Field(default="application/octet-stream", max_length=120)
    file_size: int = Field(default=0, ge=0)
    category: Optional[str] = Field(default=None, max_length=60)
    tags: List[str] = Field(default_factory=list, max_length=20)


class RateListingRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: Optional[str] = Field(default=None, max_length=2000)


@router.get("")
async def browse_listings(
    q: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    seller_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return {
        "items": await list_listings(db, query=q, category=category, seller_id=seller_id, limit=limit),
    }


@router.post("")
async def publish_listing(
    request: CreateListingRequest,
    _rate_limit: None = Depends(rate_limit("marketplace_publish", limit=30, window_seconds=3600)),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    listing = await create_listing(account.id, request.model_dump(), db)
    return serialize_listing(listing, account)


@router.get("/my/listings")
async def my_listings(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await list_my_listings(account.id, db)}


@router.get("/my/purchases")
async def my_purchases(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await list_purchases(account.id, db)}


@router.get("/my/sales")
async def my_sales(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await list_sales(account.id, db)}


@router.get("/{listing_id}")
async def listing_detail(listing_id: str, db: AsyncSession = Depends(get_db)):
    return await get_listing(listing_id, db)


@router.delete("/{listing_id}")
async def remove_listing(
    listing_id: str,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    await deactivate_listing(listing_id, account, db)
    return {"ok": True, "listing_id": listing_id}


@router.post("/{listing_id}/purchase")
async def buy_listing(
    listing_id: str,
    _rate_limit: None = Depends(rate_limit("marketplace_purchase", limit=60, window_seconds=3600)),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    receipt = await purchase_listing(account.id, listing_id, db)
    return {
        "purchase": serialize_receipt(receipt, account.id),
        "balance_after": format_amount(account.balance),
    }


@router.post("/{listing_id}/rate")
async def rate_purchased_listing(
    listing_id: str,
    request: RateListingRequest,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await rate_listing(account.id, listing_id, request.rating, db, review=request.review)
