"""
Account registration and current-account retrieval.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import get_current_account
from routers.rate_limit import rate_limit
from services.accounts import register_account, serialize_account
from services.session_token import create_session_token

router = APIRouter()


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=20)
    display_name: Optional[str] = Field(default=None, max_length=60)
    referral_code: Optional[str] = None


@router.post("/register")
async def register(
    request: RegisterRequest,
    _rate_limit: None = Depends(rate_limit("auth_register", limit=10, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Create an account and return a session token for it."""
    account = await register_account(
        request.username,
        db,
        display_name=request.display_name,
        referral_code=request.referral_code,
    )
    session = create_session_token(account.id, account.username)
    return {
        "account": serialize_account(account),
        "session_token": session["token"],
        "session_expires_at": session["expires_at"],
    }


@router.get("/me")
async def get_me(account: User = Depends(get_current_account)):
    """Get the authenticated account, balance included."""
    return serialize_account(account)
