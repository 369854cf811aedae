from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from ..clock import Clock
from ..domain import OrderStatus, Product, SoldLineItem
from ..logging import ServiceLogger
from ..repositories import CatalogProvider, TrendingProvider
from .domain import TrendingItem, TrendingShelf, TrendingShelfSource
from .trending import TRENDING_WINDOW_DAYS, score_shelf_items

EXTENDED_WINDOW_DAYS = 30
MIN_RECENT_LINE_ITEMS = 5
CANDIDATE_HEADROOM = 5


class TrendingShelfService:
    """Cross-user trending shelf with widening fallbacks.

    Delivered sales from the last week are preferred. A thin week widens the
    window to 30 days over every status, and an empty result falls back to the
    newest in-stock products shuffled with a per-day seed so the shelf stays
    stable within a day. Results are cached per ``limit``.
    """

    def __init__(
        self,
        *,
        catalog: CatalogProvider,
        sales: TrendingProvider,
        clock: Clock,
        cache_ttl_seconds: int = 300,
    ) -> None:
        self._catalog = catalog
        self._sales = sales
        self._clock = clock
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._cache: Dict[int, Tuple[datetime, TrendingShelf]] = {}
        self._log = ServiceLogger("trending_shelf")

    def shelf(self, limit: int = 10) -> TrendingShelf:
        now = self._clock.now()
        cached = self._cache.get(limit)
        if cached and now - cached[0] < self._cache_ttl:
            return cached[1]

        shelf = self._build(limit, now)
        self._cache[limit] = (now, shelf)
        self._log.info("trending shelf built", source=shelf.source.value, items=len(shelf.items), limit=limit)
        return shelf

    def invalidate(self) -> None:
        self._cache.clear()

    def _build(self, limit: int, now: datetime) -> TrendingShelf:
        catalog = self._catalog.fetch_in_stock()

        source = TrendingShelfSource.RECENT
        items = self._sales.fetch_line_items(now - timedelta(days=TRENDING_WINDOW_DAYS), [OrderStatus.DELIVERED])
        if len(items) < MIN_RECENT_LINE_ITEMS:
            source = TrendingShelfSource.EXTENDED
            items = self._sales.fetch_line_items(now - timedelta(days=EXTENDED_WINDOW_DAYS), None)

        ranked = self._rank(items, catalog, limit, now)
        if ranked:
            return TrendingShelf(source=source, generated_at=now, items=ranked)
        return TrendingShelf(
            source=TrendingShelfSource.NEWEST,
            generated_at=now,
            items=[TrendingItem(product=product) for product in self._newest(catalog, limit, now)],
        )

    def _rank(
        self,
        items: List[SoldLineItem],
        catalog: List[Product],
        limit: int,
        now: datetime,
    ) -> List[TrendingItem]:
        by_id = {product.id: product for product in catalog}
        ranked: List[TrendingItem] = []
        for product_id, score, order_count in score_shelf_items(items, now)[: limit + CANDIDATE_HEADROOM]:
            product: Optional[Product] = by_id.get(product_id)
            if product is None:
                continue
            ranked.append(TrendingItem(product=product, trend_score=score, order_count=order_count))
            if len(ranked) >= limit:
                break
        return ranked

    def _newest(self, catalog: List[Product], limit: int, now: datetime) -> List[Product]:
        newest = catalog[: limit + CANDIDATE_HEADROOM]
        day_seed = int(now.timestamp() // 86400)
        random.Random(day_seed).shuffle(newest)
        return newest[:limit]
