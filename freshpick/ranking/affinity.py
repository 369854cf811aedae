from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, Mapping

from ..clock import as_utc
from ..domain import OrderEvent, Product, ViewEvent
from .domain import AffinityProfile

ORDER_HISTORY_LIMIT = 30
VIEW_HISTORY_LIMIT = 50

CATEGORY_MAX_SCORE = 35.0
ORDER_WEIGHT = 35.0
ORDER_DECAY_DAYS = 30.0

VIEW_CATEGORY_WEIGHT = 2.0
VIEW_PRODUCT_WEIGHT = 5.0
VIEW_MAX_SCORE = 25.0
VIEW_DECAY_RANKS = 20.0


def build_affinity(
    orders: Iterable[OrderEvent],
    views: Iterable[ViewEvent],
    catalog: Mapping[str, Product],
    now: datetime,
) -> AffinityProfile:
    """Derive per-category preference and per-product view scores.

    ``orders`` and ``views`` are expected newest first. Only qualifying orders
    count. Views are weighted by their recency rank rather than their age, and
    look up their category through ``catalog``; products missing from it (or
    uncategorized) still earn a view score but feed no category.
    """
    category_scores: Dict[str, float] = defaultdict(float)
    view_scores: Dict[str, float] = {}

    qualifying = [order for order in orders if order.qualifies][:ORDER_HISTORY_LIMIT]
    for order in qualifying:
        days_ago = (now - as_utc(order.created_at)).total_seconds() / 86400
        recency = math.exp(-days_ago / ORDER_DECAY_DAYS)
        for item in order.line_items:
            if item.category_id:
                category_scores[item.category_id] += ORDER_WEIGHT * recency

    for rank, view in enumerate(list(views)[:VIEW_HISTORY_LIMIT]):
        recency = math.exp(-rank / VIEW_DECAY_RANKS)
        view_scores[view.product_id] = min(view.view_count * VIEW_PRODUCT_WEIGHT * recency, VIEW_MAX_SCORE)
        product = catalog.get(view.product_id)
        if product and product.category_id:
            category_scores[product.category_id] += view.view_count * VIEW_CATEGORY_WEIGHT * recency

    if category_scores:
        top = max(max(category_scores.values()), 1.0)
        for category_id in category_scores:
            category_scores[category_id] = category_scores[category_id] / top * CATEGORY_MAX_SCORE

    return AffinityProfile(category_scores=dict(category_scores), view_scores=view_scores)
