from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..domain import OrderEvent, Product, ViewEvent

EXCLUDED_SCORE = -1.0
UNCATEGORIZED = "uncategorized"


class ScoreReason(str, Enum):
    RECENTLY_PURCHASED = "recently_purchased"
    CATEGORY_MATCH = "category_match"
    VIEWED = "viewed"
    TRENDING = "trending"
    NEW = "new"


class RecommendationSource(str, Enum):
    PERSONALIZED = "personalized"
    TRENDING_FALLBACK = "trending_fallback"


class TrendingShelfSource(str, Enum):
    RECENT = "recent"
    EXTENDED = "extended"
    NEWEST = "newest"


class ScoredProduct(BaseModel):
    product: Product
    score: float
    reasons: List[ScoreReason] = Field(default_factory=list)

    @property
    def excluded(self) -> bool:
        return self.score < 0


class AffinityProfile(BaseModel):
    category_scores: Dict[str, float] = Field(default_factory=dict)
    view_scores: Dict[str, float] = Field(default_factory=dict)


class RecommendationQuery(BaseModel):
    user_id: Optional[str] = None


class UserSignals(BaseModel):
    catalog: List[Product] = Field(default_factory=list)
    orders: List[OrderEvent] = Field(default_factory=list)
    views: List[ViewEvent] = Field(default_factory=list)
    aggregate: Dict[str, int] = Field(default_factory=dict)


class RecommendationResult(BaseModel):
    recommended: List[Product] = Field(default_factory=list)
    trending: List[Product] = Field(default_factory=list)
    source: RecommendationSource = RecommendationSource.PERSONALIZED


class TrendingItem(BaseModel):
    product: Product
    trend_score: float = 0.0
    order_count: int = 0


class TrendingShelf(BaseModel):
    source: TrendingShelfSource
    generated_at: datetime
    items: List[TrendingItem] = Field(default_factory=list)
