from __future__ import annotations

import logging
import time

import numpy as np
import pandas as pd

from ..analytics.store import record_event
from ..config import DEFAULT_CONFIG, RecommendationConfig
from ..errors import CacheUnavailable, InvalidInput, NotFound
from . import data_store, interactions
from .cache import RecommendationCache, get_cache
from .explain import explain
from .models import (
    CacheEntry,
    RecommendationRequest,
    RecommendationResponse,
    RecommendationScore,
    VendorSummary,
    WeddingPreferences,
)
from .scoring import (
    VendorScore,
    haversine_miles,
    popularity_percentiles,
    rank,
    score_vendor,
    split_location,
)

logger = logging.getLogger(__name__)

NO_PREFERENCES_MESSAGE = (
    "Please set your wedding preferences to get personalized recommendations"
)


def _empty_message(category: str | None) -> str:
    return f"No {category} vendors found yet" if category else "No vendors found yet"


# ── Candidate pool ───────────────────────────────────────────────────────


def _prefilter(pool: pd.DataFrame, prefs: WeddingPreferences, cap: int) -> pd.DataFrame:
    """Shrink an oversized pool to the ``cap`` most relevant vendors.

    Local vendors first (preferred city, then preferred state), then the
    nearest when coordinates are known, then the most popular.
    """
    pref_city, pref_state = split_location(prefs.preferred_location)
    cities = {c.lower() for c in prefs.preferred_cities} | ({pref_city} if pref_city else set())

    ranked = pool.assign(
        _local=pool["city_lower"].isin(cities).astype(int) * 2
        + (pool["state_lower"] == pref_state).astype(int) * bool(pref_state),
    )
    if prefs.latitude is not None and prefs.longitude is not None:
        distance = haversine_miles(
            prefs.latitude,
            prefs.longitude,
            ranked["latitude"].to_numpy(dtype=float),
            ranked["longitude"].to_numpy(dtype=float),
        )
        ranked["_distance"] = np.where(np.isnan(distance), np.inf, distance)
    else:
        ranked["_distance"] = np.inf

    ranked = ranked.sort_values(
        by=["_local", "_distance", "popularity_signal", "vendor_id"],
        ascending=[False, True, False, True],
        kind="mergesort",
    )
    return ranked.head(cap).drop(columns=["_local", "_distance"])


def candidate_pool(
    frame: pd.DataFrame,
    prefs: WeddingPreferences,
    category: str | None,
    dismissed: set[str],
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> pd.DataFrame:
    mask = frame["is_active"].astype(bool)
    if category:
        mask = mask & (frame["category"] == category)
    if dismissed:
        # Dismissed vendors are dropped before scoring
        mask = mask & ~frame["vendor_id"].isin(dismissed)

    pool = frame.loc[mask]
    if len(pool) > config.max_candidates:
        logger.info(
            "Candidate pool of %d for wedding %s capped at %d",
            len(pool), prefs.wedding_id, config.max_candidates,
        )
        pool = _prefilter(pool, prefs, config.max_candidates)
    return pool


# ── Scoring run ──────────────────────────────────────────────────────────


def _to_recommendation(
    score: VendorScore,
    prefs: WeddingPreferences,
    interested: bool | None,
    config: RecommendationConfig,
) -> RecommendationScore:
    details = explain(score, prefs, config)
    vendor = score.vendor
    return RecommendationScore(
        vendor_id=vendor.vendor_id,
        match_score=score.match_score,
        budget_match_score=score.sub_scores["budget"],
        style_match_score=score.sub_scores["style"],
        location_match_score=score.sub_scores["location"],
        rating_score=score.sub_scores["rating"],
        availability_score=score.sub_scores["availability"],
        popularity_score=score.sub_scores["popularity"],
        confidence_level=score.confidence_level,
        reason=details.reason,
        match_highlights=details.highlights,
        potential_concerns=details.concerns,
        interested=interested,
        vendor=VendorSummary(
            business_name=vendor.business_name,
            category=vendor.category,
            city=vendor.city,
            state=vendor.state,
            price_range=vendor.price_range,
            average_rating=vendor.average_rating,
            review_count=vendor.review_count,
        ),
    )


def score_pool(
    pool: pd.DataFrame,
    prefs: WeddingPreferences,
    interest: dict[str, bool],
    limit: int,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> list[RecommendationScore]:
    """Score every vendor in ``pool`` and return the top ``limit``."""
    if pool.empty:
        return []

    percentiles = popularity_percentiles(pool["popularity_signal"])
    popularity_is_real = len(pool) > 1 and pool["popularity_signal"].nunique() > 1

    scores = [
        score_vendor(
            data_store.vendor_from_row(row),
            prefs,
            popularity=pct,
            popularity_is_real=popularity_is_real,
            config=config,
        )
        for row, pct in zip(pool.to_dict("records"), percentiles.tolist())
    ]
    return [
        _to_recommendation(s, prefs, interest.get(s.vendor.vendor_id), config)
        for s in rank(scores, limit)
    ]


# ── Cache access ─────────────────────────────────────────────────────────


def _cache_lookup(
    cache: RecommendationCache, request: RecommendationRequest, category: str | None
) -> CacheEntry | None:
    try:
        entry = cache.get(request.wedding_id, category)
    except CacheUnavailable:
        logger.warning("Recommendation cache unavailable, computing fresh", exc_info=True)
        return None
    if entry is None:
        return None
    # Dismiss patches can shrink an entry below the limit it was computed for
    if len(entry.recommendations) >= request.limit or entry.is_complete:
        return entry
    return None


def _cache_store(cache: RecommendationCache, entry: CacheEntry) -> None:
    try:
        cache.put(entry)
    except CacheUnavailable:
        logger.warning("Recommendation cache unavailable, result not cached", exc_info=True)


def _record_search(
    request: RecommendationRequest,
    start_time: float,
    *,
    has_preferences: bool,
    cache_hit: bool,
    total_candidates: int,
    results_returned: int,
) -> None:
    record_event("recommendations", {
        "wedding_id": request.wedding_id,
        "category": request.category.value if request.category else None,
        "limit": request.limit,
        "refresh": request.refresh,
        "has_preferences": has_preferences,
        "total_candidates": total_candidates,
        "results_returned": results_returned,
        "response_time_ms": round((time.time() - start_time) * 1000, 1),
        "cache_hit": cache_hit,
    })


def get_recommendations(
    request: RecommendationRequest,
    cache: RecommendationCache | None = None,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> RecommendationResponse:
    start_time = time.time()
    if request.limit > config.max_limit:
        raise InvalidInput(f"limit must be at most {config.max_limit}")
    delay = config.upstream_retry_delay
    category = request.category.value if request.category else None

    retry = data_store.with_retry
    wedding = retry(data_store.get_wedding, request.wedding_id, config, delay=delay)
    if wedding is None:
        raise NotFound(f"Wedding {request.wedding_id} not found")

    prefs = retry(data_store.get_preferences, request.wedding_id, config, delay=delay)
    if prefs is None:
        _record_search(
            request, start_time,
            has_preferences=False, cache_hit=False, total_candidates=0, results_returned=0,
        )
        return RecommendationResponse(
            recommendations=[],
            has_preferences=False,
            from_cache=False,
            message=NO_PREFERENCES_MESSAGE,
        )

    cache = cache or get_cache()

    # --- Cache check ---
    if not request.refresh:
        entry = _cache_lookup(cache, request, category)
        if entry is not None:
            recs = entry.recommendations[: request.limit]
            _record_search(
                request, start_time,
                has_preferences=True, cache_hit=True,
                total_candidates=entry.total_candidates, results_returned=len(recs),
            )
            return RecommendationResponse(
                recommendations=recs,
                has_preferences=True,
                from_cache=True,
                message=None if recs else _empty_message(category),
                total_candidates=entry.total_candidates,
            )

    # --- Fresh scoring run ---
    frame = retry(data_store.get_vendor_frame, config, delay=delay)
    interest = retry(interactions.current_interest, request.wedding_id, delay=delay)
    dismissed = {vid for vid, value in interest.items() if not value}

    pool = candidate_pool(frame, prefs, category, dismissed, config)
    recs = score_pool(pool, prefs, interest, request.limit, config)

    # Written once, after scoring completes
    _cache_store(cache, CacheEntry(
        wedding_id=request.wedding_id,
        category=category or "*",
        recommendations=recs,
        # Stamped before any input was read so later changes mark it stale
        computed_at=start_time,
        limit=request.limit,
        total_candidates=len(pool),
    ))

    _record_search(
        request, start_time,
        has_preferences=True, cache_hit=False,
        total_candidates=len(pool), results_returned=len(recs),
    )
    return RecommendationResponse(
        recommendations=recs,
        has_preferences=True,
        from_cache=False,
        message=None if recs else _empty_message(category),
        total_candidates=len(pool),
    )
