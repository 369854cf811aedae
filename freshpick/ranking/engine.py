from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, TypeVar

from ..clock import Clock
from ..domain import Product
from ..jitter import JitterSource
from ..logging import ServiceLogger
from ..observability import get_tracer
from ..repositories import (
    CatalogProvider,
    OrderHistoryProvider,
    TrendingProvider,
    ViewHistoryProvider,
    ViewRecorder,
)
from .affinity import ORDER_HISTORY_LIMIT, VIEW_HISTORY_LIMIT, build_affinity
from .diversity import DEFAULT_LIMIT, DEFAULT_MAX_PER_CATEGORY, diversify
from .domain import RecommendationQuery, RecommendationResult, RecommendationSource, UserSignals
from .scorer import ProductScorer, rank_eligible, recently_purchased_ids
from .trending import TRENDING_WINDOW_DAYS, compute_trending_scores, rank_by_trending

T = TypeVar("T")

_tracer = get_tracer(__name__)


class RecommendationEngine:
    """Per-request recommendation pipeline.

    Holds collaborators only; every call reads its own signals and works on
    local copies, so concurrent requests share no mutable state.
    """

    def __init__(
        self,
        *,
        catalog: CatalogProvider,
        orders: OrderHistoryProvider,
        views: ViewHistoryProvider,
        trending: TrendingProvider,
        recorder: ViewRecorder,
        clock: Clock,
        jitter: JitterSource,
        recommendation_limit: int = DEFAULT_LIMIT,
        trending_limit: int = 8,
        cold_start_limit: int = 10,
        max_per_category: int = DEFAULT_MAX_PER_CATEGORY,
    ) -> None:
        self._catalog = catalog
        self._orders = orders
        self._views = views
        self._trending = trending
        self._recorder = recorder
        self._clock = clock
        self._scorer = ProductScorer(jitter)
        self._recommendation_limit = recommendation_limit
        self._trending_limit = trending_limit
        self._cold_start_limit = cold_start_limit
        self._max_per_category = max_per_category
        self._log = ServiceLogger("recommendations")

    async def recommend(self, query: RecommendationQuery) -> RecommendationResult:
        now = self._clock.now()
        signals = await self._gather_signals(query.user_id, now)
        if not query.user_id:
            return self._cold_start(signals)
        try:
            with _tracer.start_as_current_span("recommendations.personalize"):
                result = self._personalized(signals, now)
        except Exception:
            self._log.exception("personalized ranking failed, serving trending", user_id=query.user_id)
            return self._cold_start(signals)
        self._log.info(
            "recommendations ready",
            user_id=query.user_id,
            recommended=len(result.recommended),
            trending=len(result.trending),
        )
        return result

    async def track_view(self, user_id: Optional[str], product_id: str) -> None:
        if not user_id:
            return
        try:
            await asyncio.to_thread(self._recorder.record_view, user_id, product_id, self._clock.now())
        except Exception as exc:
            self._log.debug("view tracking failed", user_id=user_id, product_id=product_id, error=repr(exc))

    async def _gather_signals(self, user_id: Optional[str], now: datetime) -> UserSignals:
        since = now - timedelta(days=TRENDING_WINDOW_DAYS)
        catalog, aggregate, orders, views = await asyncio.gather(
            self._read("catalog", [], self._catalog.fetch_in_stock),
            self._read("trending", {}, self._trending.fetch_aggregate, since),
            self._read("orders", [], self._orders.fetch_qualifying, user_id, ORDER_HISTORY_LIMIT)
            if user_id
            else _nothing([]),
            self._read("views", [], self._views.fetch_recent, user_id, VIEW_HISTORY_LIMIT)
            if user_id
            else _nothing([]),
        )
        try:
            return UserSignals(catalog=catalog, aggregate=aggregate, orders=orders, views=views)
        except Exception as exc:
            self._log.warning("malformed signals dropped", user_id=user_id, error=repr(exc))
            return UserSignals()

    async def _read(self, signal: str, default: T, fetch: Callable[..., T], *args: Any) -> T:
        try:
            with _tracer.start_as_current_span(f"recommendations.read.{signal}"):
                value = await asyncio.to_thread(fetch, *args)
        except Exception as exc:
            self._log.warning("signal read failed, continuing without it", signal=signal, error=repr(exc))
            return default
        return value if value is not None else default

    def _cold_start(self, signals: UserSignals) -> RecommendationResult:
        try:
            catalog = _in_stock(signals.catalog)
            scores = compute_trending_scores(signals.aggregate)
            trending = rank_by_trending(catalog, scores)[: self._cold_start_limit]
        except Exception:
            self._log.exception("trending fallback failed")
            trending = []
        return RecommendationResult(recommended=[], trending=trending, source=RecommendationSource.TRENDING_FALLBACK)

    def _personalized(self, signals: UserSignals, now: datetime) -> RecommendationResult:
        catalog = _in_stock(signals.catalog)
        index = {product.id: product for product in catalog}

        trending_scores = compute_trending_scores(signals.aggregate)
        affinity = build_affinity(signals.orders, signals.views, index, now)
        excluded = recently_purchased_ids(signals.orders, now)

        ranked = rank_eligible(self._scorer.score_all(catalog, affinity, trending_scores, excluded, now))
        picked = diversify(ranked, max_per_category=self._max_per_category, limit=self._recommendation_limit)

        eligible = [product for product in catalog if product.id not in excluded]
        return RecommendationResult(
            recommended=[item.product for item in picked],
            trending=rank_by_trending(eligible, trending_scores)[: self._trending_limit],
            source=RecommendationSource.PERSONALIZED,
        )


async def _nothing(value: T) -> T:
    return value


def _in_stock(products: List[Product]) -> List[Product]:
    return [product for product in products if product.in_stock]

