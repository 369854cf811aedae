from __future__ import annotations

from typing import Dict, Iterable, List

from .domain import UNCATEGORIZED, ScoredProduct

DEFAULT_MAX_PER_CATEGORY = 4
DEFAULT_LIMIT = 12


def diversify(
    ranked: Iterable[ScoredProduct],
    max_per_category: int = DEFAULT_MAX_PER_CATEGORY,
    limit: int = DEFAULT_LIMIT,
) -> List[ScoredProduct]:
    """Greedy single pass capping how many picks any category contributes.

    A product whose category is already full is dropped for good; nothing is
    re-queued, so a later, lower scored item from a thin category is only
    promoted by the ordinary walk, never to back-fill a skipped slot.
    """
    counts: Dict[str, int] = {}
    selected: List[ScoredProduct] = []
    for item in ranked:
        if len(selected) >= limit:
            break
        category = item.product.category_id or UNCATEGORIZED
        if counts.get(category, 0) + 1 > max_per_category:
            continue
        counts[category] = counts.get(category, 0) + 1
        selected.append(item)
    return selected
