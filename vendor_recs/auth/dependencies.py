from __future__ import annotations

from fastapi import HTTPException, Request

from ..recommendations.data_store import get_wedding, with_retry


def require_user(request: Request) -> dict:
    """Raise 401 if no user is logged in."""
    user = request.session.get("user")
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_admin(request: Request) -> dict:
    """Raise 401 if not logged in, 403 if not admin."""
    user = require_user(request)
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def check_wedding_access(wedding_id: str, user: dict) -> dict:
    """Raise 404 for an unknown wedding, 403 if ``user`` does not own it.

    Admins may act on any wedding.
    """
    wedding = with_retry(get_wedding, wedding_id)
    if wedding is None:
        raise HTTPException(status_code=404, detail="Wedding not found")
    if user.get("role") != "admin" and user.get("username") not in wedding["owners"]:
        raise HTTPException(status_code=403, detail="Not your wedding")
    return wedding
