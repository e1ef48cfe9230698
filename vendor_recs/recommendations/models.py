from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from ..config import DEFAULT_CONFIG


class VendorCategory(str, Enum):
    venue = "Venue"
    photography = "Photography"
    videography = "Videography"
    catering = "Catering"
    florist = "Florist"
    bakery = "Bakery"
    music = "Music"
    hair_makeup = "Hair & Makeup"
    transportation = "Transportation"
    planner = "Planner"
    officiant = "Officiant"
    rentals = "Rentals"


class BudgetFlexibility(str, Enum):
    strict = "strict"
    flexible = "flexible"
    very_flexible = "very_flexible"


class InteractionType(str, Enum):
    save = "save"
    dismiss = "dismiss"
    view = "view"


class ConfidenceLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    very_high = "very_high"


# ── Store records ────────────────────────────────────────────────────────


class PreferencesIn(BaseModel):
    """Preferences as written by the couple; the wedding id comes from the path."""

    budget_min: float | None = Field(default=None, ge=0)
    budget_max: float | None = Field(default=None, ge=0)
    budget_flexibility: BudgetFlexibility = BudgetFlexibility.strict
    style_tags: list[str] = Field(default_factory=list)
    preferred_location: str | None = None
    preferred_cities: list[str] = Field(default_factory=list)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    max_distance_miles: float = Field(default=50.0, gt=0)
    wedding_date: date | None = None

    @field_validator("style_tags", "preferred_cities")
    @classmethod
    def _strip_blank(cls, values: list[str]) -> list[str]:
        return [v.strip() for v in values if v and v.strip()]

    @model_validator(mode="after")
    def _check_budget_range(self) -> "PreferencesIn":
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("budget_min must not exceed budget_max")
        return self

    @property
    def has_budget(self) -> bool:
        return bool(self.budget_max) or bool(self.budget_min)

    @property
    def has_location(self) -> bool:
        return bool(
            (self.preferred_location and self.preferred_location.strip())
            or self.preferred_cities
            or (self.latitude is not None and self.longitude is not None)
        )


class WeddingPreferences(PreferencesIn):
    wedding_id: str = Field(..., min_length=1)


class Vendor(BaseModel):
    vendor_id: str = Field(..., min_length=1)
    business_name: str = ""
    category: str
    price_range: int | None = None
    city: str | None = None
    state: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    average_rating: float | None = None
    review_count: int = Field(default=0, ge=0)
    style_tags: list[str] = Field(default_factory=list)
    available: bool | None = None
    booked_dates: list[date] = Field(default_factory=list)
    popularity_signal: float = Field(default=0.0, ge=0)
    is_active: bool = True


class InteractionRecord(BaseModel):
    wedding_id: str
    vendor_id: str
    interaction_type: InteractionType
    interested: bool | None = None
    timestamp: float


# ── Scores ───────────────────────────────────────────────────────────────


class VendorSummary(BaseModel):
    business_name: str
    category: str
    city: str | None
    state: str | None
    price_range: int | None
    average_rating: float | None
    review_count: int


class RecommendationScore(BaseModel):
    vendor_id: str
    match_score: float = Field(ge=0, le=100)
    budget_match_score: float = Field(ge=0, le=100)
    style_match_score: float = Field(ge=0, le=100)
    location_match_score: float = Field(ge=0, le=100)
    rating_score: float = Field(ge=0, le=100)
    availability_score: float = Field(ge=0, le=100)
    popularity_score: float = Field(ge=0, le=100)
    confidence_level: ConfidenceLevel
    reason: str
    match_highlights: list[str] = Field(default_factory=list)
    potential_concerns: list[str] = Field(default_factory=list)
    interested: bool | None = None
    vendor: VendorSummary | None = None


class CacheEntry(BaseModel):
    wedding_id: str
    category: str
    recommendations: list[RecommendationScore]
    computed_at: float
    limit: int
    total_candidates: int
    # Set when a patch brought the entry up to date with a later change
    synced_at: float | None = None
    from_cache: bool = False

    @property
    def is_complete(self) -> bool:
        """True when the entry holds every eligible candidate."""
        return len(self.recommendations) >= self.total_candidates


# ── API payloads ─────────────────────────────────────────────────────────


class RecommendationRequest(BaseModel):
    wedding_id: str = Field(..., min_length=1)
    category: VendorCategory | None = None
    limit: int = Field(default=DEFAULT_CONFIG.default_limit, ge=1, le=50)
    refresh: bool = False


class RecommendationResponse(BaseModel):
    recommendations: list[RecommendationScore]
    has_preferences: bool
    from_cache: bool = False
    message: str | None = None
    total_candidates: int = 0


class InterestRequest(BaseModel):
    wedding_id: str = Field(..., min_length=1)
    vendor_id: str = Field(..., min_length=1)
    interested: bool


class InteractionRequest(BaseModel):
    wedding_id: str = Field(..., min_length=1)
    vendor_id: str = Field(..., min_length=1)
    interaction_type: InteractionType


class InteractionResponse(BaseModel):
    status: str
    interaction_type: InteractionType
    interested: bool | None


class LoginRequest(BaseModel):
    username: str
    password: str
