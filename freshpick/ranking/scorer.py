from __future__ import annotations

from datetime import datetime, timedelta
from typing import AbstractSet, Iterable, List, Mapping, Optional, Set

from ..clock import as_utc
from ..domain import OrderEvent, Product
from ..jitter import JitterSource
from .domain import EXCLUDED_SCORE, AffinityProfile, ScoredProduct, ScoreReason

EXCLUSION_WINDOW = timedelta(days=14)
NEW_PRODUCT_AGE = timedelta(days=7)
RECENT_PRODUCT_AGE = timedelta(days=14)
NEW_PRODUCT_BONUS = 10.0
RECENT_PRODUCT_BONUS = 5.0
TRENDING_REASON_THRESHOLD = 5.0


def recently_purchased_ids(orders: Iterable[OrderEvent], now: datetime) -> Set[str]:
    cutoff = now - EXCLUSION_WINDOW
    purchased: Set[str] = set()
    for order in orders:
        if order.qualifies and as_utc(order.created_at) > cutoff:
            purchased.update(item.product_id for item in order.line_items)
    return purchased


def freshness_bonus(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return 0.0
    age = now - as_utc(created_at)
    if age < NEW_PRODUCT_AGE:
        return NEW_PRODUCT_BONUS
    if age < RECENT_PRODUCT_AGE:
        return RECENT_PRODUCT_BONUS
    return 0.0


class ProductScorer:
    def __init__(self, jitter: JitterSource) -> None:
        self._jitter = jitter

    def score(
        self,
        product: Product,
        affinity: AffinityProfile,
        trending: Mapping[str, float],
        excluded: AbstractSet[str],
        now: datetime,
    ) -> ScoredProduct:
        if product.id in excluded:
            return ScoredProduct(product=product, score=EXCLUDED_SCORE, reasons=[ScoreReason.RECENTLY_PURCHASED])

        score = 0.0
        reasons: List[ScoreReason] = []

        category_score = affinity.category_scores.get(product.category_id or "", 0.0)
        if category_score:
            score += category_score
            reasons.append(ScoreReason.CATEGORY_MATCH)

        view_score = affinity.view_scores.get(product.id, 0.0)
        if view_score:
            score += view_score
            reasons.append(ScoreReason.VIEWED)

        trending_score = trending.get(product.id, 0.0)
        score += trending_score
        if trending_score > TRENDING_REASON_THRESHOLD:
            reasons.append(ScoreReason.TRENDING)

        bonus = freshness_bonus(product.created_at, now)
        score += bonus
        if bonus == NEW_PRODUCT_BONUS:
            reasons.append(ScoreReason.NEW)

        score += self._jitter.next()
        return ScoredProduct(product=product, score=score, reasons=reasons)

    def score_all(
        self,
        products: Iterable[Product],
        affinity: AffinityProfile,
        trending: Mapping[str, float],
        excluded: AbstractSet[str],
        now: datetime,
    ) -> List[ScoredProduct]:
        return [self.score(product, affinity, trending, excluded, now) for product in products]


def rank_eligible(scored: Iterable[ScoredProduct]) -> List[ScoredProduct]:
    eligible = [item for item in scored if not item.excluded]
    eligible.sort(key=lambda item: -item.score)
    return eligible
