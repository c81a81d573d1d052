"""Community room presence router."""

from fastapi import APIRouter, Depends

from models.user import User
from routers.auth_scope import get_current_account
from services.presence import list_online_users, touch_presence

router = APIRouter()


@router.post("/heartbeat")
async def heartbeat(account: User = Depends(get_current_account)):
    await touch_presence(account.id, account.username)
    return {"success": True}


@router.get("/online")
async def online_users(_account: User = Depends(get_current_account)):
    return await list_online_users()
