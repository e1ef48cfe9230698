"""
In-process stand-ins for the stores the engine reads from.

- Vendor Catalog: a pandas DataFrame loaded lazily from CSV.
- Wedding registry and Preference Store: seeded from JSON, mutated through
  ``save_preferences`` / ``delete_preferences``.

Every read raises ``UpstreamUnavailable`` when the backing source cannot be
read, never an empty result.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from datetime import date
from typing import Any, Callable, Iterable, TypeVar

import pandas as pd
from pydantic import ValidationError

from ..config import DEFAULT_CONFIG, RecommendationConfig
from ..errors import UpstreamUnavailable
from .models import Vendor, WeddingPreferences

logger = logging.getLogger(__name__)

T = TypeVar("T")

VENDOR_COLUMNS = [
    "vendor_id",
    "business_name",
    "category",
    "price_range",
    "city",
    "state",
    "latitude",
    "longitude",
    "average_rating",
    "review_count",
    "style_tags",
    "available",
    "booked_dates",
    "popularity_signal",
    "is_active",
]

_lock = threading.Lock()
_vendors: pd.DataFrame | None = None
_weddings: dict[str, dict[str, Any]] | None = None
_preferences: dict[str, WeddingPreferences] = {}


def with_retry(
    fn: Callable[..., T], *args: Any, delay: float = DEFAULT_CONFIG.upstream_retry_delay
) -> T:
    """Call ``fn``; on ``UpstreamUnavailable`` wait ``delay`` and try once more."""
    try:
        return fn(*args)
    except UpstreamUnavailable:
        logger.warning(
            "Upstream read %s failed, retrying once in %.2fs",
            getattr(fn, "__name__", repr(fn)), delay,
            exc_info=True,
        )
        time.sleep(delay)
        return fn(*args)


# ── Vendor Catalog ───────────────────────────────────────────────────────


def _split_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if str(v).strip()]
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return []
    return [s.strip() for s in str(value).split(",") if s.strip()]


def _parse_dates(value: Any) -> list[date]:
    dates: list[date] = []
    for raw in _split_list(value):
        try:
            dates.append(date.fromisoformat(raw[:10]))
        except ValueError:
            continue
    return dates


def _parse_tristate(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    raw = str(value).strip().lower()
    if raw in ("true", "1", "yes"):
        return True
    if raw in ("false", "0", "no"):
        return False
    return None


def _normalize(df: pd.DataFrame) -> pd.DataFrame:
    for col in VENDOR_COLUMNS:
        if col not in df.columns:
            df[col] = pd.NA

    df = df[VENDOR_COLUMNS].copy()
    df["vendor_id"] = df["vendor_id"].astype(str)
    df["business_name"] = df["business_name"].fillna("").astype(str)
    df["category"] = df["category"].fillna("").astype(str)
    df["price_range"] = pd.to_numeric(df["price_range"], errors="coerce")
    for col in ("latitude", "longitude", "average_rating"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["review_count"] = (
        pd.to_numeric(df["review_count"], errors="coerce").fillna(0).clip(lower=0).astype(int)
    )
    df["popularity_signal"] = (
        pd.to_numeric(df["popularity_signal"], errors="coerce").fillna(0.0).clip(lower=0.0)
    )
    df["is_active"] = df["is_active"].apply(_parse_tristate).fillna(True).astype(bool)
    df["available"] = df["available"].apply(_parse_tristate).astype(object)

    # Pre-parse list columns once so scoring never re-splits strings
    df["style_tags_list"] = df["style_tags"].apply(_split_list)
    df["booked_dates_list"] = df["booked_dates"].apply(_parse_dates)

    # Lowercase location for case-insensitive lookup
    df["city_lower"] = df["city"].fillna("").astype(str).str.strip().str.lower()
    df["state_lower"] = df["state"].fillna("").astype(str).str.strip().str.lower()

    return df.reset_index(drop=True)


def _load_vendors(config: RecommendationConfig) -> pd.DataFrame:
    try:
        df = pd.read_csv(config.vendor_csv, dtype={"vendor_id": str})
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise UpstreamUnavailable(f"Vendor catalog unavailable: {exc}") from exc
    return _normalize(df)


def get_vendor_frame(config: RecommendationConfig = DEFAULT_CONFIG) -> pd.DataFrame:
    """Return the in-memory vendor DataFrame, loading it on first call."""
    global _vendors
    if _vendors is None:
        frame = _load_vendors(config)
        with _lock:
            if _vendors is None:
                _vendors = frame
    return _vendors


def set_vendors(vendors: Iterable[Vendor | dict[str, Any]]) -> None:
    """Replace the catalog, e.g. from an import job or a test fixture."""
    global _vendors
    rows = [v.model_dump() if isinstance(v, Vendor) else dict(v) for v in vendors]
    frame = _normalize(pd.DataFrame(rows) if rows else pd.DataFrame(columns=VENDOR_COLUMNS))
    with _lock:
        _vendors = frame


def vendor_from_row(row: dict[str, Any]) -> Vendor:
    """Build a validated ``Vendor`` from a normalized catalog row."""

    def _opt(key: str) -> Any:
        value = row.get(key)
        if value is None or (not isinstance(value, (list, tuple)) and pd.isna(value)):
            return None
        return value

    price = _opt("price_range")
    available = _opt("available")
    return Vendor(
        vendor_id=str(row["vendor_id"]),
        business_name=row.get("business_name") or "",
        category=row.get("category") or "",
        price_range=int(price) if price is not None else None,
        city=_opt("city"),
        state=_opt("state"),
        latitude=_opt("latitude"),
        longitude=_opt("longitude"),
        average_rating=_opt("average_rating"),
        review_count=int(row.get("review_count") or 0),
        style_tags=list(row.get("style_tags_list") or []),
        available=bool(available) if available is not None else None,
        booked_dates=list(row.get("booked_dates_list") or []),
        popularity_signal=float(row.get("popularity_signal") or 0.0),
        is_active=bool(row.get("is_active", True)),
    )


# ── Weddings & preferences ───────────────────────────────────────────────


def _load_weddings(config: RecommendationConfig) -> None:
    global _weddings, _preferences
    try:
        raw = json.loads(config.weddings_json.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise UpstreamUnavailable(f"Preference store unavailable: {exc}") from exc

    weddings: dict[str, dict[str, Any]] = {}
    preferences: dict[str, WeddingPreferences] = {}
    for item in raw:
        wedding_id = str(item["wedding_id"])
        weddings[wedding_id] = {
            "wedding_id": wedding_id,
            "owners": list(item.get("owners", [])),
        }
        prefs = item.get("preferences")
        if prefs:
            try:
                preferences[wedding_id] = WeddingPreferences(wedding_id=wedding_id, **prefs)
            except ValidationError as exc:
                raise UpstreamUnavailable(
                    f"Stored preferences for wedding {wedding_id} are invalid"
                ) from exc
    # Nothing is published until the whole file has validated
    _weddings = weddings
    _preferences = preferences


def _ensure_loaded(config: RecommendationConfig) -> dict[str, dict[str, Any]]:
    if _weddings is None:
        with _lock:
            if _weddings is None:
                _load_weddings(config)
    return _weddings  # type: ignore[return-value]


def get_wedding(
    wedding_id: str, config: RecommendationConfig = DEFAULT_CONFIG
) -> dict[str, Any] | None:
    return _ensure_loaded(config).get(wedding_id)


def register_wedding(
    wedding_id: str,
    owners: list[str],
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> dict[str, Any]:
    weddings = _ensure_loaded(config)
    with _lock:
        weddings[wedding_id] = {"wedding_id": wedding_id, "owners": list(owners)}
    return weddings[wedding_id]


def get_preferences(
    wedding_id: str, config: RecommendationConfig = DEFAULT_CONFIG
) -> WeddingPreferences | None:
    _ensure_loaded(config)
    return _preferences.get(wedding_id)


def save_preferences(
    prefs: WeddingPreferences, config: RecommendationConfig = DEFAULT_CONFIG
) -> WeddingPreferences:
    _ensure_loaded(config)
    with _lock:
        _preferences[prefs.wedding_id] = prefs
    return prefs


def delete_preferences(wedding_id: str, config: RecommendationConfig = DEFAULT_CONFIG) -> bool:
    _ensure_loaded(config)
    with _lock:
        return _preferences.pop(wedding_id, None) is not None


def reset_stores() -> None:
    """Drop all loaded state; the next read reloads from the seed files."""
    global _vendors, _weddings
    with _lock:
        _vendors = None
        _weddings = None
        _preferences.clear()

