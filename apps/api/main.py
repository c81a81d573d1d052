"""
Developer Empire - FastAPI Backend
Main application entry point with health check and API routing.
"""

import asyncio
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    wallet,
    marketplace,
    verification,
    notifications,
    favorites,
    community,
    chat,
    admin,
)
from services.accounts import ensure_admin_account
from services.verification import expire_stale_windows

logger = logging.getLogger(__name__)


async def _run_verification_sweep() -> None:
    result = await expire_stale_windows()
    expired = int(result.get("expired_windows", 0) or 0)
    unverified = int(result.get("unverified_accounts", 0) or 0)
    if expired or unverified:
        print(f"🕒 Verification sweep: expired_windows={expired} unverified_accounts={unverified}")


async def _periodic_verification_sweep() -> None:
    interval_minutes = max(int(settings.VERIFICATION_SWEEP_INTERVAL_MINUTES), 0)
    if interval_minutes <= 0:
        return
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            await _run_verification_sweep()
        except Exception as exc:
            # Retried on the next tick.
            logger.exception("Verification sweep tick failed: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Developer Empire API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    try:
        admin = await ensure_admin_account()
        if admin is not None:
            print(f"🛡️ Admin account ready: {admin.username}")
    except Exception as exc:
        print(f"⚠️ Admin bootstrap skipped: {exc}")
    try:
        await _run_verification_sweep()
    except Exception as exc:
        print(f"⚠️ Startup verification sweep skipped: {exc}")
    sweep_task = None
    if int(settings.VERIFICATION_SWEEP_INTERVAL_MINUTES) > 0:
        sweep_task = asyncio.create_task(_periodic_verification_sweep())
        print(
            "📅 Verification expiry sweep enabled "
            f"(every {int(settings.VERIFICATION_SWEEP_INTERVAL_MINUTES)} min)."
        )
    yield
    # Shutdown
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    print("👋 Shutting down API...")


app = FastAPI(
    title="Developer Empire API",
    description="Marketplace balances, purchases and verification subscriptions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(wallet.router, prefix="/wallet", tags=["Wallet"])
app.include_router(marketplace.router, prefix="/marketplace", tags=["Marketplace"])
app.include_router(verification.router, prefix="/verification", tags=["Verification"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(favorites.router, prefix="/favorites", tags=["Favorites"])
app.include_router(community.router, tags=["Community"])
app.include_router(chat.router, prefix="/chat", tags=["Chat"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Developer Empire API",
        "version": "0.1.0",
        "status": "running"
    }
