from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from itertools import permutations
from typing import Iterable, List, Optional, Sequence, Set

from ..clock import Clock
from ..domain import OrderEvent, OrderStatus, Product
from ..errors import NotFoundError, ValidationError
from ..logging import ServiceLogger
from ..repositories import CatalogProvider, CoPurchaseRepository, TrendingProvider
from .trending import TRENDING_WINDOW_DAYS

MAX_ORDER_ITEMS_FOR_PAIRS = 20

FBT_PAIR_LOOKUP = 10
FBT_PAIRED_LIMIT = 4
FBT_CATEGORY_FILL = 6
FBT_CATEGORY_BATCH = 4
FBT_MIN_ITEMS = 4
FBT_POPULAR_FILL = 6
FBT_LIMIT = 8

PAB_LIMIT = 8
PAB_CATEGORY_HEADROOM = 4
PAB_MIN_ITEMS = 4


class _Picker:
    """Ordered, de-duplicated selection that never repeats a blocked id."""

    def __init__(self, blocked: Iterable[str], limit: int) -> None:
        self._seen: Set[str] = set(blocked)
        self._limit = limit
        self.items: List[Product] = []

    def __len__(self) -> int:
        return len(self.items)

    def blocked(self, product_id: str) -> bool:
        return product_id in self._seen

    def add(self, products: Iterable[Product], cap: Optional[int] = None) -> None:
        cap = min(cap, self._limit) if cap is not None else self._limit
        for product in products:
            if len(self.items) >= cap:
                return
            if product.id in self._seen:
                continue
            self.items.append(product)
            self._seen.add(product.id)


class RelatedProductsService:
    def __init__(
        self,
        *,
        catalog: CatalogProvider,
        co_purchases: CoPurchaseRepository,
        sales: TrendingProvider,
        clock: Clock,
    ) -> None:
        self._catalog = catalog
        self._co_purchases = co_purchases
        self._sales = sales
        self._clock = clock
        self._log = ServiceLogger("related_products")

    def record_delivered_order(self, order: OrderEvent) -> int:
        """Count directional co-purchase pairs for a delivered order.

        Returns the number of pairs written. Orders that are not delivered,
        have fewer than two lines or more than twenty are ignored, as is an
        order counted before. An order without lines is rejected.
        """
        if not order.line_items:
            raise ValidationError("Order has no line items")
        if order.status != OrderStatus.DELIVERED:
            return 0
        if len(order.line_items) < 2 or len(order.line_items) > MAX_ORDER_ITEMS_FOR_PAIRS:
            return 0
        product_ids = list(dict.fromkeys(item.product_id for item in order.line_items))
        pairs = list(permutations(product_ids, 2))
        if not self._co_purchases.increment(order.order_id, pairs):
            self._log.info("order already counted", order_id=order.order_id)
            return 0
        self._log.debug("co-purchases recorded", order_id=order.order_id, pairs=len(pairs))
        return len(pairs)

    def frequently_bought_together(self, product_id: str) -> List[Product]:
        catalog = self._catalog.fetch_in_stock()
        anchor = self._anchor(product_id)
        picker = _Picker([product_id], FBT_LIMIT)

        paired = self._paired(product_id, FBT_PAIR_LOOKUP, catalog, picker)
        picker.add(paired, cap=FBT_PAIRED_LIMIT)

        if len(picker) < FBT_CATEGORY_FILL and anchor.category_id:
            same_category = [p for p in catalog if p.category_id == anchor.category_id and p.id != product_id]
            picker.add(same_category[:FBT_CATEGORY_BATCH])

        if len(picker) < FBT_MIN_ITEMS:
            needed = FBT_POPULAR_FILL - len(picker)
            picker.add(self._popular(catalog, picker, needed))

        if len(picker) < FBT_MIN_ITEMS:
            picker.add(catalog[:FBT_LIMIT])

        return picker.items

    def people_also_bought(self, product_id: str, exclude_ids: Sequence[str] = ()) -> List[Product]:
        catalog = self._catalog.fetch_in_stock()
        anchor = self._anchor(product_id)
        picker = _Picker([product_id, *exclude_ids], PAB_LIMIT)

        picker.add(self._paired(product_id, PAB_LIMIT + len(exclude_ids), catalog, picker))

        if len(picker) < PAB_LIMIT and anchor.category_id:
            needed = PAB_LIMIT - len(picker)
            same_category = [p for p in catalog if p.category_id == anchor.category_id and p.id != product_id]
            picker.add(same_category[: needed + PAB_CATEGORY_HEADROOM])

        if len(picker) < PAB_MIN_ITEMS:
            picker.add(self._popular(catalog, picker, PAB_LIMIT - len(picker)))

        return picker.items

    def _anchor(self, product_id: str) -> Product:
        product = self._catalog.get(product_id)
        if not product:
            raise NotFoundError()
        return product

    def _paired(self, product_id: str, lookup: int, catalog: List[Product], picker: _Picker) -> List[Product]:
        by_id = {product.id: product for product in catalog}
        try:
            pairs = self._co_purchases.top_pairs(product_id, lookup)
        except Exception as exc:
            self._log.warning("co-purchase lookup failed", product_id=product_id, error=repr(exc))
            return []
        paired: List[Product] = []
        for pair in pairs:
            product = by_id.get(pair.co_product_id)
            if product and not picker.blocked(product.id):
                paired.append(product)
        return paired

    def _popular(self, catalog: List[Product], picker: _Picker, needed: int) -> List[Product]:
        if needed <= 0:
            return []
        since: datetime = self._clock.now() - timedelta(days=TRENDING_WINDOW_DAYS)
        counts: Counter[str] = Counter(
            item.product_id for item in self._sales.fetch_line_items(since) if not picker.blocked(item.product_id)
        )
        by_id = {product.id: product for product in catalog}
        popular: List[Product] = []
        for product_id, _ in sorted(counts.items(), key=lambda it: (-it[1], it[0])):
            product = by_id.get(product_id)
            if product:
                popular.append(product)
            if len(popular) >= needed:
                break
        return popular
