from __future__ import annotations

import logging
import os

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .auth.dependencies import check_wedding_access, require_admin, require_user
from .auth.users import authenticate
from .config import DEFAULT_CONFIG
from .errors import CacheUnavailable, RecommendationError
from .recommendations.cache import get_cache, get_cache_stats
from .recommendations.data_store import (
    delete_preferences,
    get_preferences,
    get_vendor_frame,
    save_preferences,
    with_retry,
)
from .recommendations.interactions import get_interactions, record_interaction, record_interest
from .recommendations.models import (
    InteractionRequest,
    InteractionResponse,
    InterestRequest,
    LoginRequest,
    PreferencesIn,
    RecommendationRequest,
    RecommendationResponse,
    VendorCategory,
    WeddingPreferences,
)
from .recommendations.retrieval import get_recommendations

logger = logging.getLogger(__name__)

app = FastAPI(title="Wedding Vendor Recommendation API", version="1.0.0")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "vendor-recs-secret-change-in-production"),
)


@app.exception_handler(RecommendationError)
async def recommendation_error_handler(request: Request, exc: RecommendationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def _invalidate(wedding_id: str) -> None:
    try:
        get_cache().invalidate(wedding_id)
    except CacheUnavailable:
        logger.warning("Could not invalidate cache for wedding %s", wedding_id, exc_info=True)


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata() -> dict:
    df = with_retry(get_vendor_frame)
    cities = sorted(c for c in df["city"].dropna().unique().tolist() if c)
    return {"categories": [c.value for c in VendorCategory], "cities": cities}


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── Recommendations ──────────────────────────────────────────────────────


@app.get("/recommendations", response_model=RecommendationResponse)
def recommendations(
    wedding_id: str = Query(..., min_length=1),
    category: VendorCategory | None = None,
    limit: int = Query(default=DEFAULT_CONFIG.default_limit, ge=1, le=50),
    refresh: bool = False,
    user: dict = Depends(require_user),
) -> RecommendationResponse:
    check_wedding_access(wedding_id, user)
    body = RecommendationRequest(
        wedding_id=wedding_id, category=category, limit=limit, refresh=refresh,
    )
    return get_recommendations(body)


@app.post("/recommendations", response_model=InteractionResponse)
def update_interest(
    body: InterestRequest,
    user: dict = Depends(require_user),
) -> InteractionResponse:
    check_wedding_access(body.wedding_id, user)
    record = record_interest(body.wedding_id, body.vendor_id, body.interested)
    return InteractionResponse(
        status="recorded",
        interaction_type=record.interaction_type,
        interested=record.interested,
    )


@app.post("/vendor-interactions", response_model=InteractionResponse)
def vendor_interaction(
    body: InteractionRequest,
    user: dict = Depends(require_user),
) -> InteractionResponse:
    check_wedding_access(body.wedding_id, user)
    record = record_interaction(body.wedding_id, body.vendor_id, body.interaction_type)
    return InteractionResponse(
        status="recorded",
        interaction_type=record.interaction_type,
        interested=record.interested,
    )


# ── Preferences ──────────────────────────────────────────────────────────


@app.get("/weddings/{wedding_id}/preferences", response_model=WeddingPreferences)
def read_preferences(wedding_id: str, user: dict = Depends(require_user)) -> WeddingPreferences:
    check_wedding_access(wedding_id, user)
    prefs = with_retry(get_preferences, wedding_id)
    if prefs is None:
        raise HTTPException(status_code=404, detail="No preferences set for this wedding")
    return prefs


@app.put("/weddings/{wedding_id}/preferences", response_model=WeddingPreferences)
def write_preferences(
    wedding_id: str,
    body: PreferencesIn,
    user: dict = Depends(require_user),
) -> WeddingPreferences:
    check_wedding_access(wedding_id, user)
    prefs = save_preferences(WeddingPreferences(wedding_id=wedding_id, **body.model_dump()))
    _invalidate(wedding_id)
    return prefs


@app.delete("/weddings/{wedding_id}/preferences")
def remove_preferences(wedding_id: str, user: dict = Depends(require_user)) -> dict:
    check_wedding_access(wedding_id, user)
    deleted = delete_preferences(wedding_id)
    _invalidate(wedding_id)
    return {"status": "deleted" if deleted else "not_set"}


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/analytics")
def analytics(user: dict = Depends(require_admin)) -> dict:
    return compute_analytics(get_events(), get_interactions())


@app.get("/cache/stats")
def cache_stats(user: dict = Depends(require_admin)) -> dict:
    return get_cache_stats()
