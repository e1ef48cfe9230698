from __future__ import annotations

from dataclasses import dataclass

from ..config import DEFAULT_CONFIG, RecommendationConfig
from .models import WeddingPreferences
from .scoring import FACTORS, VendorScore

PREFERENCE_FACTORS = ("budget", "style", "location")

_QUALITY_REASONS = {
    "rating": "Highly rated by past couples",
    "availability": "Available on your wedding date",
    "popularity": "Popular with couples planning their weddings",
}

GENERIC_REASON = "A solid option to consider in this category"


@dataclass
class Explanation:
    reason: str
    highlights: list[str]
    concerns: list[str]


def _ranked_factors(score: VendorScore, config: RecommendationConfig) -> list[str]:
    """Factors by contribution, highest first; ties keep FACTORS order."""
    contributions = score.contributions(config.weights)
    return sorted(FACTORS, key=lambda f: (-contributions[f], FACTORS.index(f)))


def build_reason(score: VendorScore, config: RecommendationConfig = DEFAULT_CONFIG) -> str:
    ranked = [f for f in _ranked_factors(score, config) if score.real_inputs[f]]
    if not ranked:
        return GENERIC_REASON

    primary = ranked[0]
    if primary not in PREFERENCE_FACTORS:
        if score.sub_scores[primary] >= config.strong_threshold:
            return _QUALITY_REASONS[primary]
        return GENERIC_REASON

    runner_up = ranked[1] if len(ranked) > 1 else None
    if (
        runner_up in PREFERENCE_FACTORS
        and score.sub_scores[runner_up] >= config.strong_threshold
    ):
        first, second = sorted((primary, runner_up), key=PREFERENCE_FACTORS.index)
        return f"Matches your {first} and {second} preferences"
    return f"Matches your {primary} preferences"


def _highlight(factor: str, score: VendorScore) -> str:
    vendor = score.vendor
    if factor == "budget":
        return "Well within your budget"
    if factor == "style":
        if score.matching_styles:
            return f"Great fit for your {' & '.join(score.matching_styles[:2])} style"
        return "Matches your wedding style"
    if factor == "location":
        return f"Based in {vendor.city}" if vendor.city else "Conveniently located near you"
    if factor == "rating":
        rating = vendor.average_rating or 0.0
        if rating >= 4.8:
            return f"Exceptional {rating:.1f}★ rating from {vendor.review_count} reviews"
        return f"Highly rated ({rating:.1f}★)"
    if factor == "availability":
        return "Available on your wedding date"
    return "Popular with other couples"


def build_highlights(score: VendorScore, config: RecommendationConfig = DEFAULT_CONFIG) -> list[str]:
    highlights = [
        _highlight(f, score)
        for f in _ranked_factors(score, config)
        if score.real_inputs[f] and score.sub_scores[f] >= config.strong_threshold
    ]
    return highlights[: config.max_highlights]


_WEAK_CONCERNS = {
    "budget": "Priced outside your budget range",
    "style": "Style may not match your vision",
    "location": "Located outside your preferred area",
    "rating": "Below-average customer ratings",
    "availability": "May not be available on your wedding date",
    "popularity": "Less established than similar vendors",
}


def build_concerns(
    score: VendorScore,
    prefs: WeddingPreferences,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> list[str]:
    vendor = score.vendor
    flagged: set[str] = set()
    concerns: list[str] = []

    # Hard flags, most severe first
    if score.real_inputs["availability"] and score.sub_scores["availability"] == 0:
        concerns.append("Already booked on your wedding date")
        flagged.add("availability")
    if (
        score.expected_cost is not None
        and prefs.budget_max
        and score.expected_cost > prefs.budget_max
    ):
        concerns.append("Likely above your maximum budget")
        flagged.add("budget")
    if vendor.review_count == 0 or vendor.average_rating is None:
        concerns.append("No reviews yet")
        flagged.add("rating")
    elif vendor.review_count < 5:
        concerns.append("Limited customer reviews")

    weak = [
        f
        for f in sorted(FACTORS, key=lambda f: (score.sub_scores[f], FACTORS.index(f)))
        if f not in flagged
        and score.real_inputs[f]
        and score.sub_scores[f] <= config.weak_threshold
    ]
    concerns.extend(_WEAK_CONCERNS[f] for f in weak)
    return concerns[: config.max_concerns]


def explain(
    score: VendorScore,
    prefs: WeddingPreferences,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> Explanation:
    return Explanation(
        reason=build_reason(score, config),
        highlights=build_highlights(score, config),
        concerns=build_concerns(score, prefs, config),
    )
