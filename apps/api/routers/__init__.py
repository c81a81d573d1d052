"""Routers package."""

from . import (
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
