from __future__ import annotations

from unittest.mock import MagicMock, patch

import redis
from fastapi.testclient import TestClient

from vendor_recs.app import app
from vendor_recs.recommendations import data_store, interactions
from vendor_recs.recommendations.cache import (
    RecommendationCache,
    RedisCacheBackend,
    get_cache,
    set_cache,
)
from vendor_recs.recommendations.interactions import (
    current_interest,
    get_interactions,
    record_interest,
)
from vendor_recs.recommendations.models import InteractionType, RecommendationRequest
from vendor_recs.recommendations.retrieval import get_recommendations

client = TestClient(app)

WEDDING = "w-austin-2025"


def _login(c, username="avery"):
    c.post("/auth/login", json={"username": username, "password": f"{username}123"})


def _photography(**params):
    params.update({"wedding_id": WEDDING, "category": "Photography"})
    return client.get("/recommendations", params=params).json()


def _interest(vendor_id, interested, wedding_id=WEDDING):
    return client.post(
        "/recommendations",
        json={"wedding_id": wedding_id, "vendor_id": vendor_id, "interested": interested},
    )


def _by_id(body):
    return {r["vendor_id"]: r for r in body["recommendations"]}


def test_save_marks_cached_entry():
    _login(client)
    _photography()
    resp = _interest("v-001", True)
    assert resp.status_code == 200
    assert resp.json() == {"status": "recorded", "interaction_type": "save", "interested": True}

    body = _photography()
    assert body["from_cache"] is True
    assert _by_id(body)["v-001"]["interested"] is True
    assert _by_id(body)["v-002"]["interested"] is None


def test_saved_flag_merged_into_fresh_results():
    _login(client)
    _interest("v-002", True)
    body = _photography(refresh=True)
    assert _by_id(body)["v-002"]["interested"] is True


def test_dismiss_removes_vendor_from_cached_results():
    _login(client)
    assert "v-003" in _by_id(_photography())
    _interest("v-003", False)

    body = _photography()
    assert body["from_cache"] is True
    assert "v-003" not in _by_id(body)
    assert body["total_candidates"] == 3


def test_dismissed_vendor_excluded_from_fresh_results():
    _login(client)
    _interest("v-001", False)
    body = _photography(refresh=True)
    assert "v-001" not in _by_id(body)
    assert body["total_candidates"] == 3


def test_saving_a_dismissed_vendor_restores_it():
    _login(client)
    _interest("v-001", False)
    assert "v-001" not in _by_id(_photography())

    _interest("v-001", True)
    body = _photography()
    assert body["from_cache"] is False
    assert _by_id(body)["v-001"]["interested"] is True
    assert current_interest(WEDDING) == {"v-001": True}


def test_view_leaves_interest_and_cache_alone():
    _login(client)
    _photography()
    resp = client.post(
        "/vendor-interactions",
        json={"wedding_id": WEDDING, "vendor_id": "v-001", "interaction_type": "view"},
    )
    assert resp.status_code == 200
    assert resp.json()["interested"] is None

    body = _photography()
    assert body["from_cache"] is True
    assert _by_id(body)["v-001"]["interested"] is None
    assert current_interest(WEDDING) == {}


def test_vendor_interactions_dismiss():
    _login(client)
    resp = client.post(
        "/vendor-interactions",
        json={"wedding_id": WEDDING, "vendor_id": "v-004", "interaction_type": "dismiss"},
    )
    assert resp.json()["interested"] is False
    assert "v-004" not in _by_id(_photography())


def test_duplicate_records_are_appended():
    _login(client)
    _interest("v-002", False)
    _interest("v-002", False)
    records = get_interactions(WEDDING, "v-002")
    assert len(records) == 2
    assert all(r.interaction_type is InteractionType.dismiss for r in records)


def test_latest_reaction_wins():
    _login(client)
    _interest("v-005", True)
    _interest("v-005", False)
    assert current_interest(WEDDING) == {"v-005": False}


def test_unknown_vendor_404():
    _login(client)
    resp = _interest("v-999", True)
    assert resp.status_code == 404
    assert get_interactions() == []


def test_other_couples_wedding_403():
    _login(client)
    assert _interest("v-009", True, wedding_id="w-dallas-2026").status_code == 403


def test_invalid_interaction_type_422():
    _login(client)
    resp = client.post(
        "/vendor-interactions",
        json={"wedding_id": WEDDING, "vendor_id": "v-001", "interaction_type": "like"},
    )
    assert resp.status_code == 422


def test_interest_recorded_when_cache_down():
    failing = MagicMock()
    failing.smembers.side_effect = redis.ConnectionError("down")
    set_cache(RecommendationCache(RedisCacheBackend(failing)))

    record = record_interest(WEDDING, "v-001", False)
    assert record.interested is False
    assert current_interest(WEDDING) == {"v-001": False}


def test_dismiss_during_scoring_run_is_not_served_from_cache():
    real_interest = interactions.current_interest
    calls = []

    def dismiss_after_read(wedding_id):
        state = real_interest(wedding_id)
        if not calls:
            calls.append(wedding_id)
            record_interest(wedding_id, "v-001", False)
        return state

    request = RecommendationRequest(wedding_id=WEDDING, category="Photography")
    with patch(
        "vendor_recs.recommendations.interactions.current_interest",
        side_effect=dismiss_after_read,
    ):
        first = get_recommendations(request)
    # The run read its inputs before the dismiss landed
    assert "v-001" in [r.vendor_id for r in first.recommendations]

    second = get_recommendations(request)
    assert second.from_cache is False
    assert "v-001" not in [r.vendor_id for r in second.recommendations]
    assert get_recommendations(request).from_cache is True


def test_preference_write_during_scoring_run_is_not_served_from_cache():
    request = RecommendationRequest(wedding_id=WEDDING, category="Photography")
    real_frame = data_store.get_vendor_frame

    def write_after_read(config):
        frame = real_frame(config)
        prefs = data_store.get_preferences(WEDDING)
        data_store.save_preferences(prefs.model_copy(update={"style_tags": ["modern"]}))
        get_cache().invalidate(WEDDING)
        return frame

    with patch(
        "vendor_recs.recommendations.data_store.get_vendor_frame",
        side_effect=write_after_read,
    ):
        get_recommendations(request)

    assert get_recommendations(request).from_cache is False
