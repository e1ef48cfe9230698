from __future__ import annotations

import pytest

from vendor_recs.analytics.store import clear_events
from vendor_recs.recommendations import data_store
from vendor_recs.recommendations.cache import MemoryCacheBackend, RecommendationCache, set_cache
from vendor_recs.recommendations.interactions import clear_interactions


@pytest.fixture(autouse=True)
def fresh_state():
    """Reload seed data and start every test with an empty in-memory cache."""
    data_store.reset_stores()
    clear_interactions()
    clear_events()
    set_cache(RecommendationCache(MemoryCacheBackend(), ttl_seconds=3600))
    yield
