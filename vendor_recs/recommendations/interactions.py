"""
Interaction Log and interest handling.

The log is append-only. A pair's current interest is the most recent
``save``/``dismiss``; ``view`` records never change it. Repeated identical
records are always appended so the audit trail stays complete.
"""
from __future__ import annotations

import logging
import threading
import time

from ..config import DEFAULT_CONFIG, RecommendationConfig
from ..errors import CacheUnavailable, NotFound
from . import data_store
from .cache import RecommendationCache, get_cache
from .models import CacheEntry, InteractionRecord, InteractionType

logger = logging.getLogger(__name__)

_log: list[InteractionRecord] = []
_lock = threading.Lock()


def append_interaction(
    wedding_id: str, vendor_id: str, interaction_type: InteractionType
) -> InteractionRecord:
    interested = {
        InteractionType.save: True,
        InteractionType.dismiss: False,
    }.get(interaction_type)
    record = InteractionRecord(
        wedding_id=wedding_id,
        vendor_id=vendor_id,
        interaction_type=interaction_type,
        interested=interested,
        timestamp=time.time(),
    )
    with _lock:
        _log.append(record)
    return record


def get_interactions(
    wedding_id: str | None = None, vendor_id: str | None = None
) -> list[InteractionRecord]:
    with _lock:
        records = list(_log)
    return [
        r
        for r in records
        if (wedding_id is None or r.wedding_id == wedding_id)
        and (vendor_id is None or r.vendor_id == vendor_id)
    ]


def current_interest(wedding_id: str) -> dict[str, bool]:
    """Map vendor id to the latest save/dismiss value for a wedding."""
    state: dict[str, bool] = {}
    for record in get_interactions(wedding_id):
        if record.interaction_type is not InteractionType.view:
            state[record.vendor_id] = bool(record.interested)
    return state


def _check_targets(wedding_id: str, vendor_id: str, config: RecommendationConfig) -> None:
    delay = config.upstream_retry_delay
    if data_store.with_retry(data_store.get_wedding, wedding_id, config, delay=delay) is None:
        raise NotFound(f"Wedding {wedding_id} not found")
    frame = data_store.with_retry(data_store.get_vendor_frame, config, delay=delay)
    if not (frame["vendor_id"] == vendor_id).any():
        raise NotFound(f"Vendor {vendor_id} not found")


def _patch_interest(vendor_id: str, interested: bool):
    def patch(entry: CacheEntry) -> CacheEntry | None:
        recs = entry.recommendations
        if not any(r.vendor_id == vendor_id for r in recs):
            return None
        if interested:
            updated = [
                r.model_copy(update={"interested": True}) if r.vendor_id == vendor_id else r
                for r in recs
            ]
            return entry.model_copy(update={"recommendations": updated})
        # Dismissed vendors leave the ranking entirely
        remaining = [r for r in recs if r.vendor_id != vendor_id]
        return entry.model_copy(
            update={
                "recommendations": remaining,
                "total_candidates": max(0, entry.total_candidates - 1),
            }
        )

    return patch


def record_interest(
    wedding_id: str,
    vendor_id: str,
    interested: bool,
    cache: RecommendationCache | None = None,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> InteractionRecord:
    """Append a save/dismiss record and bring cached results in line."""
    _check_targets(wedding_id, vendor_id, config)
    previous = current_interest(wedding_id).get(vendor_id)
    record = append_interaction(
        wedding_id,
        vendor_id,
        InteractionType.save if interested else InteractionType.dismiss,
    )

    cache = cache or get_cache()
    try:
        if interested and previous is False:
            # Re-saved vendor must be able to re-enter the ranking
            cache.invalidate(wedding_id)
        else:
            cache.update(wedding_id, _patch_interest(vendor_id, interested))
    except CacheUnavailable:
        logger.warning(
            "Cache unavailable while recording interest for wedding %s", wedding_id,
            exc_info=True,
        )
    return record


def record_view(
    wedding_id: str,
    vendor_id: str,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> InteractionRecord:
    _check_targets(wedding_id, vendor_id, config)
    return append_interaction(wedding_id, vendor_id, InteractionType.view)


def record_interaction(
    wedding_id: str,
    vendor_id: str,
    interaction_type: InteractionType,
    cache: RecommendationCache | None = None,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> InteractionRecord:
    if interaction_type is InteractionType.view:
        return record_view(wedding_id, vendor_id, config)
    return record_interest(
        wedding_id,
        vendor_id,
        interaction_type is InteractionType.save,
        cache=cache,
        config=config,
    )


def clear_interactions() -> None:
    with _lock:
        _log.clear()
