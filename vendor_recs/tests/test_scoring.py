from __future__ import annotations

from datetime import date

import pandas as pd
import pytest

from vendor_recs.config import DEFAULT_CONFIG, ScoringWeights
from vendor_recs.recommendations.models import (
    BudgetFlexibility,
    ConfidenceLevel,
    Vendor,
    WeddingPreferences,
)
from vendor_recs.recommendations.scoring import (
    FACTORS,
    aggregate,
    availability_score,
    budget_score,
    confidence_for,
    expected_cost,
    haversine_miles,
    location_score,
    popularity_percentiles,
    rank,
    rating_score,
    score_vendor,
    split_location,
    style_score,
)

AUSTIN = (30.2672, -97.7431)
DALLAS = (32.7767, -96.797)


def _prefs(**overrides) -> WeddingPreferences:
    data = {"wedding_id": "w-test"}
    data.update(overrides)
    return WeddingPreferences(**data)


def _vendor(**overrides) -> Vendor:
    data = {"vendor_id": "v-test", "business_name": "Test Vendor", "category": "Photography"}
    data.update(overrides)
    return Vendor(**data)


# ── Budget ───────────────────────────────────────────────────────────────


def test_expected_cost_applies_category_multiplier():
    assert expected_cost(_vendor(price_range=2)) == 3000.0
    assert expected_cost(_vendor(category="Venue", price_range=2)) == 9000.0


def test_expected_cost_clamps_tier_and_handles_missing():
    assert expected_cost(_vendor(price_range=7)) == 8000.0
    assert expected_cost(_vendor(price_range=0)) == 1000.0
    assert expected_cost(_vendor(price_range=None)) is None


def test_budget_within_range_is_full_score():
    sub = budget_score(_vendor(price_range=2), _prefs(budget_min=2000, budget_max=4000))
    assert sub.value == 100.0
    assert sub.real


def test_budget_without_budget_is_neutral():
    sub = budget_score(_vendor(price_range=2), _prefs())
    assert sub.value == 50.0
    assert not sub.real


def test_budget_without_price_tier_is_neutral():
    sub = budget_score(_vendor(price_range=None), _prefs(budget_max=4000))
    assert sub.value == 50.0
    assert not sub.real


@pytest.mark.parametrize(
    "flexibility,expected",
    [
        (BudgetFlexibility.strict, 0.0),
        (BudgetFlexibility.flexible, 25.0),
        (BudgetFlexibility.very_flexible, 50.0),
    ],
)
def test_budget_overshoot_softened_by_flexibility(flexibility, expected):
    prefs = _prefs(budget_min=2000, budget_max=4000, budget_flexibility=flexibility)
    assert budget_score(_vendor(price_range=4), prefs).value == expected


def test_budget_below_minimum_is_soft_mismatch():
    sub = budget_score(_vendor(price_range=1), _prefs(budget_min=2000, budget_max=4000))
    assert sub.value == 75.0
    assert sub.real


# ── Style ────────────────────────────────────────────────────────────────


def test_style_full_coverage():
    prefs = _prefs(style_tags=["Rustic", "outdoor"])
    vendor = _vendor(style_tags=["rustic", "outdoor", "documentary"])
    assert style_score(vendor, prefs).value == 100.0


def test_style_partial_coverage():
    vendor = _vendor(style_tags=["rustic"])
    assert style_score(vendor, _prefs(style_tags=["rustic", "outdoor"])).value == 80.0
    assert style_score(vendor, _prefs(style_tags=["rustic", "boho", "garden"])).value == 73.33


def test_style_no_overlap_and_missing_tags():
    prefs = _prefs(style_tags=["rustic"])
    assert style_score(_vendor(style_tags=["modern"]), prefs).value == 30.0
    missing = style_score(_vendor(style_tags=[]), prefs)
    assert missing.value == 50.0
    assert not missing.real


# ── Location ─────────────────────────────────────────────────────────────


def test_split_location():
    assert split_location("Austin, TX") == ("austin", "tx")
    assert split_location("Austin") == ("austin", "")
    assert split_location(None) == ("", "")


def test_haversine_austin_to_dallas():
    distance = float(haversine_miles(*AUSTIN, *DALLAS))
    assert 175 < distance < 190


def test_location_city_match():
    sub = location_score(_vendor(city="Austin"), _prefs(preferred_location="austin, tx"))
    assert sub.value == 100.0
    assert sub.real


def test_location_preferred_cities_match():
    sub = location_score(_vendor(city="Round Rock"), _prefs(preferred_cities=["Round Rock"]))
    assert sub.value == 100.0


def test_location_distance_decay():
    prefs = _prefs(latitude=AUSTIN[0], longitude=AUSTIN[1], max_distance_miles=40)
    near = _vendor(city="Pflugerville", latitude=AUSTIN[0], longitude=AUSTIN[1])
    far = _vendor(city="Dallas", latitude=DALLAS[0], longitude=DALLAS[1])
    assert location_score(near, prefs).value == 100.0
    assert location_score(far, prefs).value == 0.0


def test_location_state_fallback():
    prefs = _prefs(preferred_location="Austin, TX")
    assert location_score(_vendor(city="Houston", state="TX"), prefs).value == 60.0
    assert location_score(_vendor(city="Denver", state="CO"), prefs).value == 25.0


def test_location_without_preference_is_neutral():
    sub = location_score(_vendor(city="Austin"), _prefs())
    assert sub.value == 50.0
    assert not sub.real


# ── Rating / availability / popularity ───────────────────────────────────


def test_rating_scaled_to_hundred():
    assert rating_score(_vendor(average_rating=4.5, review_count=10)).value == 90.0


def test_rating_without_reviews_is_neutral_low():
    for vendor in (_vendor(), _vendor(average_rating=4.5, review_count=0)):
        sub = rating_score(vendor)
        assert sub.value == DEFAULT_CONFIG.no_review_rating_score
        assert not sub.real


def test_availability_cases():
    prefs = _prefs(wedding_date=date(2025, 6, 1))
    assert availability_score(_vendor(booked_dates=[date(2025, 6, 1)]), prefs).value == 0.0
    assert availability_score(_vendor(available=False), prefs).value == 0.0
    assert availability_score(_vendor(available=True), prefs).value == 100.0

    unknown = availability_score(_vendor(), prefs)
    assert unknown.value == 50.0
    assert not unknown.real

    no_date = availability_score(_vendor(available=False), _prefs())
    assert no_date.value == 100.0
    assert not no_date.real


def test_published_calendar_without_the_date_counts_as_available():
    prefs = _prefs(wedding_date=date(2025, 6, 1))
    sub = availability_score(_vendor(booked_dates=[date(2025, 5, 24)]), prefs)
    assert sub.value == 100.0
    assert sub.real


def test_popularity_percentiles():
    pct = popularity_percentiles(pd.Series([10, 40, 20, 30]))
    assert pct.tolist() == [12.5, 87.5, 37.5, 62.5]
    assert popularity_percentiles(pd.Series([5, 5])).tolist() == [50.0, 50.0]
    assert popularity_percentiles(pd.Series([7])).tolist() == [50.0]


# ── Aggregation ──────────────────────────────────────────────────────────


def test_weights_must_sum_to_one():
    with pytest.raises(ValueError):
        ScoringWeights(budget=0.5)
    with pytest.raises(ValueError):
        ScoringWeights(budget=0.5, style=-0.05)


def test_match_score_reproducible_from_sub_scores():
    prefs = _prefs(
        budget_min=2000, budget_max=4000, style_tags=["rustic"],
        preferred_location="Austin", wedding_date=date(2025, 6, 1),
    )
    score = score_vendor(
        _vendor(price_range=3, style_tags=["rustic", "boho"], city="Houston",
                average_rating=4.1, review_count=8, available=True),
        prefs, popularity=33.3,
    )
    weights = DEFAULT_CONFIG.weights.as_dict()
    expected = round(sum(weights[f] * score.sub_scores[f] for f in FACTORS), 2)
    assert score.match_score == expected
    assert aggregate(score.sub_scores, DEFAULT_CONFIG.weights) == expected
    assert all(0 <= v <= 100 for v in score.sub_scores.values())


def test_perfect_vendor_scores_hundred():
    prefs = _prefs(
        budget_min=2000, budget_max=4000, style_tags=["rustic"],
        preferred_location="Austin", wedding_date=date(2025, 6, 1),
    )
    vendor = _vendor(price_range=2, style_tags=["rustic"], city="Austin",
                     average_rating=5.0, review_count=100, available=True)
    score = score_vendor(vendor, prefs, popularity=100.0)
    assert score.match_score == 100.0
    assert score.confidence_level is ConfidenceLevel.very_high


def test_empty_preferences_give_low_confidence():
    score = score_vendor(_vendor(), _prefs(), popularity=50.0, popularity_is_real=False)
    assert score.confidence_level is ConfidenceLevel.low
    assert 0 <= score.match_score <= 100


@pytest.mark.parametrize(
    "real_count,level",
    [
        (6, ConfidenceLevel.very_high),
        (5, ConfidenceLevel.very_high),
        (4, ConfidenceLevel.high),
        (3, ConfidenceLevel.medium),
        (2, ConfidenceLevel.medium),
        (1, ConfidenceLevel.low),
        (0, ConfidenceLevel.low),
    ],
)
def test_confidence_thresholds(real_count, level):
    assert confidence_for(real_count) is level


def test_scoring_is_deterministic():
    prefs = _prefs(budget_max=5000, style_tags=["modern"], preferred_location="Dallas")
    vendor = _vendor(price_range=3, style_tags=["modern"], city="Dallas",
                     average_rating=4.4, review_count=20)
    first = score_vendor(vendor, prefs, popularity=40.0)
    second = score_vendor(vendor, prefs, popularity=40.0)
    assert first.sub_scores == second.sub_scores
    assert first.match_score == second.match_score


def test_rank_breaks_ties_by_reviews_then_id():
    prefs = _prefs()
    scores = [
        score_vendor(_vendor(vendor_id=vid, review_count=reviews), prefs, popularity=50.0)
        for vid, reviews in [("v-b", 3), ("v-c", 9), ("v-a", 3)]
    ]
    assert [s.vendor.vendor_id for s in rank(scores)] == ["v-c", "v-a", "v-b"]
    assert len(rank(scores, limit=2)) == 2


def test_good_fit_outranks_poor_fit():
    prefs = _prefs(
        budget_min=2000, budget_max=4000, style_tags=["rustic"],
        preferred_location="Austin", wedding_date=date(2025, 6, 1),
    )
    vendor_a = _vendor(vendor_id="v-a", price_range=2, style_tags=["rustic", "outdoor"],
                       city="Austin", average_rating=4.8, review_count=50, available=True)
    vendor_b = _vendor(vendor_id="v-b", price_range=4, style_tags=["modern"],
                       city="Dallas", average_rating=3.2, review_count=12)
    score_a = score_vendor(vendor_a, prefs, popularity=50.0)
    score_b = score_vendor(vendor_b, prefs, popularity=50.0)

    assert score_a.sub_scores["budget"] >= 75
    assert score_a.sub_scores["style"] >= 75
    assert score_a.match_score == 94.2
    assert score_b.match_score == 34.8
    assert [s.vendor.vendor_id for s in rank([score_b, score_a])] == ["v-a", "v-b"]
