from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Tuple

from ..clock import as_utc
from ..domain import Product, SoldLineItem

TRENDING_WINDOW_DAYS = 7
TRENDING_MAX_SCORE = 20.0

SHELF_DECAY_DAYS = 7.0
SHELF_ORDER_WEIGHT = 0.7
SHELF_QUANTITY_WEIGHT = 0.3


def compute_trending_scores(aggregate: Mapping[str, int]) -> Dict[str, float]:
    """Scale summed recent quantities so the best seller scores 20.

    The denominator is floored at 1. An empty aggregate yields an empty map.
    """
    if not aggregate:
        return {}
    top = max(max(aggregate.values()), 1)
    return {product_id: (qty / top) * TRENDING_MAX_SCORE for product_id, qty in aggregate.items()}


def rank_by_trending(products: Iterable[Product], scores: Mapping[str, float]) -> List[Product]:
    # sorted() is stable, ties keep their incoming order
    return sorted(products, key=lambda product: -scores.get(product.id, 0.0))


def score_shelf_items(items: Iterable[SoldLineItem], now: datetime) -> List[Tuple[str, float, int]]:
    """Rank products for the trending shelf.

    Each sold line adds ``exp(-days_ago / 7)`` to a decayed order weight; the
    final score blends reach and demand as ``decayed * 0.7 + log1p(qty) * 0.3``.
    Returns ``(product_id, score, order_count)`` sorted by score, best first.
    """
    decayed: Dict[str, float] = defaultdict(float)
    quantities: Dict[str, int] = defaultdict(int)
    counts: Dict[str, int] = defaultdict(int)

    for item in items:
        days_ago = max((now - as_utc(item.created_at)).total_seconds(), 0.0) / 86400
        decayed[item.product_id] += math.exp(-days_ago / SHELF_DECAY_DAYS)
        quantities[item.product_id] += item.quantity
        counts[item.product_id] += 1

    scored = [
        (
            product_id,
            weight * SHELF_ORDER_WEIGHT + math.log1p(quantities[product_id]) * SHELF_QUANTITY_WEIGHT,
            counts[product_id],
        )
        for product_id, weight in decayed.items()
    ]
    scored.sort(key=lambda entry: -entry[1])
    return scored
