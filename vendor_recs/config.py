from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

_DATA_DIR = Path(__file__).resolve().parent / "data"


@dataclass(frozen=True)
class ScoringWeights:
    budget: float = 0.25
    style: float = 0.20
    location: float = 0.15
    rating: float = 0.20
    availability: float = 0.10
    popularity: float = 0.10

    def __post_init__(self) -> None:
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.4f}")
        if any(w < 0 for w in self.as_dict().values()):
            raise ValueError("Scoring weights must be non-negative")

    def as_dict(self) -> dict[str, float]:
        return {
            "budget": self.budget,
            "style": self.style,
            "location": self.location,
            "rating": self.rating,
            "availability": self.availability,
            "popularity": self.popularity,
        }


@dataclass(frozen=True)
class RecommendationConfig:
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    # Expected cost of a vendor at each price tier, before the category multiplier
    tier_costs: dict[int, float] = field(
        default_factory=lambda: {1: 1000.0, 2: 3000.0, 3: 5500.0, 4: 8000.0}
    )
    category_cost_multipliers: dict[str, float] = field(
        default_factory=lambda: {
            "Venue": 3.0,
            "Catering": 2.5,
            "Planner": 1.5,
            "Photography": 1.0,
            "Videography": 1.0,
            "Music": 0.8,
            "Florist": 0.8,
            "Rentals": 0.6,
            "Hair & Makeup": 0.4,
            "Transportation": 0.4,
            "Bakery": 0.3,
            "Officiant": 0.2,
        }
    )

    strong_threshold: float = 75.0
    weak_threshold: float = 40.0
    no_review_rating_score: float = 40.0
    max_highlights: int = 5
    max_concerns: int = 3

    default_limit: int = 10
    max_limit: int = 50
    max_candidates: int = int(os.getenv("RECS_MAX_CANDIDATES", "500"))

    cache_ttl_seconds: int = int(os.getenv("RECS_CACHE_TTL_SECONDS", "3600"))
    redis_url: str = os.getenv("REDIS_URL", "")
    upstream_retry_delay: float = float(os.getenv("RECS_UPSTREAM_RETRY_DELAY", "0.2"))

    vendor_csv: Path = Path(os.getenv("RECS_VENDOR_CSV", str(_DATA_DIR / "vendors.csv")))
    weddings_json: Path = Path(os.getenv("RECS_WEDDINGS_JSON", str(_DATA_DIR / "weddings.json")))


DEFAULT_CONFIG = RecommendationConfig()
