from __future__ import annotations

from collections import Counter
from typing import Any

from ..recommendations.models import InteractionRecord, InteractionType


def compute_analytics(
    events: list[dict[str, Any]],
    interactions: list[InteractionRecord],
) -> dict[str, Any]:
    requests = [e for e in events if e["type"] == "recommendations"]
    total = len(requests)

    # Average response time
    times = [r["response_time_ms"] for r in requests if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Top categories
    category_counter: Counter[str] = Counter()
    for r in requests:
        category_counter[r.get("category") or "all"] += 1
    top_categories = [{"name": n, "count": c} for n, c in category_counter.most_common(10)]

    # Requests that could not be scored or came back empty
    without_preferences = sum(1 for r in requests if not r.get("has_preferences", True))
    empty_results = sum(
        1 for r in requests if r.get("has_preferences", True) and r.get("results_returned") == 0
    )
    refreshes = sum(1 for r in requests if r.get("refresh"))

    # Cache stats
    scored = [r for r in requests if r.get("has_preferences", True)]
    cache_hits = sum(1 for r in scored if r.get("cache_hit"))
    cache_misses = len(scored) - cache_hits

    # Interaction summary
    type_counter: Counter[str] = Counter(i.interaction_type.value for i in interactions)
    saves = type_counter.get(InteractionType.save.value, 0)
    dismissals = type_counter.get(InteractionType.dismiss.value, 0)
    reactions = saves + dismissals

    return {
        "total_requests": total,
        "avg_response_time_ms": avg_time,
        "top_categories": top_categories,
        "requests_without_preferences": without_preferences,
        "empty_results": empty_results,
        "refresh_requests": refreshes,
        "cache_stats": {
            "hits": cache_hits,
            "misses": cache_misses,
            "hit_rate": round(cache_hits / len(scored) * 100, 1) if scored else 0.0,
        },
        "interaction_summary": {
            "total": len(interactions),
            "views": type_counter.get(InteractionType.view.value, 0),
            "saves": saves,
            "dismissals": dismissals,
            "save_rate": round(saves / reactions * 100, 1) if reactions else 0.0,
        },
    }
