"""
Deterministic multi-factor vendor scoring.

Pure functions, no store access. Six sub-scores, each 0-100:

    budget        expected tier cost against the couple's budget range
    style         share of the couple's style tags the vendor carries
    location      city match, then distance, then region
    rating        average star rating, neutral-low default without reviews
    availability  wedding date against the vendor's calendar
    popularity    percentile of popularity_signal within the candidate pool

Each sub-score also reports whether it was computed from real input or fell
back to a neutral default; that count drives the confidence level.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from ..config import DEFAULT_CONFIG, RecommendationConfig, ScoringWeights
from .models import BudgetFlexibility, ConfidenceLevel, Vendor, WeddingPreferences

FACTORS = ("budget", "style", "location", "rating", "availability", "popularity")

NEUTRAL = 50.0
EARTH_RADIUS_MILES = 3959.0

# Fraction of the over-budget penalty applied per flexibility level
_FLEX_PENALTY = {
    BudgetFlexibility.strict: 1.0,
    BudgetFlexibility.flexible: 0.75,
    BudgetFlexibility.very_flexible: 0.5,
}


@dataclass(frozen=True)
class SubScore:
    value: float
    real: bool


@dataclass
class VendorScore:
    vendor: Vendor
    sub_scores: dict[str, float]
    real_inputs: dict[str, bool]
    match_score: float
    confidence_level: ConfidenceLevel
    expected_cost: float | None = None
    matching_styles: list[str] = field(default_factory=list)

    def contributions(self, weights: ScoringWeights) -> dict[str, float]:
        w = weights.as_dict()
        return {f: w[f] * self.sub_scores[f] for f in FACTORS}


def _clamp(value: float) -> float:
    if value != value:  # NaN
        return NEUTRAL
    return round(max(0.0, min(100.0, float(value))), 2)


def haversine_miles(lat1, lon1, lat2, lon2):
    """Great-circle distance in miles; accepts scalars or numpy arrays."""
    lat1, lon1, lat2, lon2 = map(np.radians, (lat1, lon1, lat2, lon2))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def split_location(preferred_location: str | None) -> tuple[str, str]:
    """Split ``"Austin, TX"`` into lowercase ``("austin", "tx")``."""
    if not preferred_location:
        return "", ""
    parts = [p.strip().lower() for p in preferred_location.split(",")]
    city = parts[0] if parts else ""
    state = parts[1] if len(parts) > 1 else ""
    return city, state


# ── Sub-scores ───────────────────────────────────────────────────────────


def expected_cost(vendor: Vendor, config: RecommendationConfig = DEFAULT_CONFIG) -> float | None:
    """Typical dollar cost implied by the vendor's price tier and category."""
    if vendor.price_range is None:
        return None
    tiers = sorted(config.tier_costs)
    tier = min(max(vendor.price_range, tiers[0]), tiers[-1])
    multiplier = config.category_cost_multipliers.get(vendor.category, 1.0)
    return config.tier_costs[tier] * multiplier


def budget_score(
    vendor: Vendor,
    prefs: WeddingPreferences,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> SubScore:
    cost = expected_cost(vendor, config)
    if cost is None or not prefs.has_budget:
        return SubScore(NEUTRAL, False)

    low = prefs.budget_min or 0.0
    high = prefs.budget_max or None

    if cost >= low and (high is None or cost <= high):
        return SubScore(100.0, True)

    if high is not None and cost > high:
        overshoot = (cost - high) / high
        penalty = overshoot * _FLEX_PENALTY[prefs.budget_flexibility]
        return SubScore(_clamp(100.0 * (1.0 - penalty)), True)

    # Cheaper than the stated minimum is a softer mismatch
    undershoot = (low - cost) / low
    return SubScore(_clamp(100.0 * (1.0 - 0.5 * undershoot)), True)


def matching_styles(vendor: Vendor, prefs: WeddingPreferences) -> list[str]:
    wanted = {s.lower() for s in prefs.style_tags}
    return [tag for tag in vendor.style_tags if tag.lower() in wanted]


def style_score(vendor: Vendor, prefs: WeddingPreferences) -> SubScore:
    wanted = {s.lower() for s in prefs.style_tags}
    offered = {s.lower() for s in vendor.style_tags}
    if not wanted or not offered:
        return SubScore(NEUTRAL, False)

    coverage = len(wanted & offered) / len(wanted)
    if coverage >= 1.0:
        return SubScore(100.0, True)
    if coverage >= 0.5:
        return SubScore(_clamp(80.0 + (coverage - 0.5) * 40.0), True)
    if coverage > 0:
        return SubScore(_clamp(60.0 + coverage * 40.0), True)
    return SubScore(30.0, True)


def location_score(vendor: Vendor, prefs: WeddingPreferences) -> SubScore:
    if not prefs.has_location:
        return SubScore(NEUTRAL, False)

    pref_city, pref_state = split_location(prefs.preferred_location)
    cities = {c.lower() for c in prefs.preferred_cities}
    if pref_city:
        cities.add(pref_city)

    vendor_city = (vendor.city or "").strip().lower()
    vendor_state = (vendor.state or "").strip().lower()

    if vendor_city and vendor_city in cities:
        return SubScore(100.0, True)

    if (
        prefs.latitude is not None
        and prefs.longitude is not None
        and vendor.latitude is not None
        and vendor.longitude is not None
    ):
        distance = float(
            haversine_miles(prefs.latitude, prefs.longitude, vendor.latitude, vendor.longitude)
        )
        return SubScore(_clamp(100.0 * (1.0 - distance / (2.0 * prefs.max_distance_miles))), True)

    if vendor_state and pref_state:
        return SubScore(60.0 if vendor_state == pref_state else 25.0, True)
    if vendor_city and cities:
        return SubScore(40.0, True)
    return SubScore(NEUTRAL, False)


def rating_score(vendor: Vendor, config: RecommendationConfig = DEFAULT_CONFIG) -> SubScore:
    if vendor.average_rating is None or vendor.review_count == 0:
        return SubScore(config.no_review_rating_score, False)
    return SubScore(_clamp(vendor.average_rating / 5.0 * 100.0), True)


def availability_score(vendor: Vendor, prefs: WeddingPreferences) -> SubScore:
    if prefs.wedding_date is None:
        return SubScore(100.0, False)
    if prefs.wedding_date in vendor.booked_dates or vendor.available is False:
        return SubScore(0.0, True)
    # A published calendar without the date counts as known availability
    if vendor.available is True or vendor.booked_dates:
        return SubScore(100.0, True)
    return SubScore(NEUTRAL, False)


def popularity_percentiles(signals: pd.Series) -> pd.Series:
    """Mid-rank percentile (0-100) of each signal within the pool.

    Equal signals and single-vendor pools land on 50.
    """
    if signals.empty:
        return signals.astype(float)
    ranks = signals.rank(method="average")
    return ((ranks - 0.5) / len(signals) * 100.0).clip(0.0, 100.0).round(2)


# ── Aggregation ──────────────────────────────────────────────────────────


def aggregate(sub_scores: dict[str, float], weights: ScoringWeights) -> float:
    """Weighted sum of the six sub-scores, reproducible from them alone."""
    w = weights.as_dict()
    return round(sum(w[f] * sub_scores[f] for f in FACTORS), 2)


def confidence_for(real_count: int) -> ConfidenceLevel:
    if real_count >= 5:
        return ConfidenceLevel.very_high
    if real_count == 4:
        return ConfidenceLevel.high
    if real_count >= 2:
        return ConfidenceLevel.medium
    return ConfidenceLevel.low


def score_vendor(
    vendor: Vendor,
    prefs: WeddingPreferences,
    popularity: float,
    popularity_is_real: bool = True,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> VendorScore:
    subs = {
        "budget": budget_score(vendor, prefs, config),
        "style": style_score(vendor, prefs),
        "location": location_score(vendor, prefs),
        "rating": rating_score(vendor, config),
        "availability": availability_score(vendor, prefs),
        "popularity": SubScore(_clamp(popularity), popularity_is_real),
    }
    values = {f: _clamp(s.value) for f, s in subs.items()}
    real = {f: s.real for f, s in subs.items()}

    return VendorScore(
        vendor=vendor,
        sub_scores=values,
        real_inputs=real,
        match_score=aggregate(values, config.weights),
        confidence_level=confidence_for(sum(real.values())),
        expected_cost=expected_cost(vendor, config),
        matching_styles=matching_styles(vendor, prefs),
    )


def rank(scores: list[VendorScore], limit: int | None = None) -> list[VendorScore]:
    """Order by match score, then review count, then vendor id."""
    ordered = sorted(
        scores,
        key=lambda s: (-s.match_score, -s.vendor.review_count, s.vendor.vendor_id),
    )
    return ordered if limit is None else ordered[:limit]
