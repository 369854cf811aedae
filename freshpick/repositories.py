from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

from .clock import as_utc
from .domain import (
    QUALIFYING_STATUSES,
    CoPurchasePair,
    OrderEvent,
    OrderStatus,
    Product,
    SoldLineItem,
    ViewEvent,
)


class CatalogProvider(Protocol):
    def fetch_in_stock(self) -> List[Product]: ...

    def get(self, product_id: str) -> Optional[Product]: ...


class OrderHistoryProvider(Protocol):
    def fetch_qualifying(self, user_id: str, limit: int = 30) -> List[OrderEvent]: ...


class ViewHistoryProvider(Protocol):
    def fetch_recent(self, user_id: str, limit: int = 50) -> List[ViewEvent]: ...


class TrendingProvider(Protocol):
    def fetch_aggregate(self, since: datetime) -> Dict[str, int]: ...

    def fetch_line_items(
        self,
        since: datetime,
        statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> List[SoldLineItem]: ...


class ViewRecorder(Protocol):
    def record_view(self, user_id: str, product_id: str, viewed_at: datetime) -> None: ...


class CoPurchaseRepository(Protocol):
    def top_pairs(self, product_id: str, limit: int) -> List[CoPurchasePair]: ...

    def increment(self, order_id: str, pairs: Iterable[Tuple[str, str]]) -> bool: ...


def _newest_first(product: Product) -> Tuple[bool, float]:
    created = product.created_at
    return (created is not None, created.timestamp() if created else 0.0)


class InMemoryCatalogRepository(CatalogProvider):
    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._products: Dict[str, Product] = {product.id: product for product in products}

    def get(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def fetch_in_stock(self) -> List[Product]:
        products = [product for product in self._products.values() if product.in_stock]
        return sorted(products, key=_newest_first, reverse=True)


class InMemoryOrderRepository(OrderHistoryProvider, TrendingProvider):
    def __init__(self, orders: Iterable[OrderEvent] = ()) -> None:
        self._orders: Dict[str, OrderEvent] = {}
        for order in orders:
            self.add(order)

    def add(self, order: OrderEvent) -> OrderEvent:
        self._orders[order.order_id] = order
        return order

    def list_all(self) -> List[OrderEvent]:
        return sorted(self._orders.values(), key=lambda order: order.created_at, reverse=True)

    def fetch_qualifying(self, user_id: str, limit: int = 30) -> List[OrderEvent]:
        orders = [
            order
            for order in self.list_all()
            if order.user_id == user_id and order.status in QUALIFYING_STATUSES
        ]
        return orders[:limit]

    def fetch_aggregate(self, since: datetime) -> Dict[str, int]:
        totals: Dict[str, int] = defaultdict(int)
        for item in self.fetch_line_items(since):
            totals[item.product_id] += item.quantity
        return dict(totals)

    def fetch_line_items(
        self,
        since: datetime,
        statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> List[SoldLineItem]:
        allowed = set(statuses) if statuses is not None else None
        items: List[SoldLineItem] = []
        for order in self.list_all():
            if as_utc(order.created_at) < as_utc(since):
                continue
            if allowed is not None and order.status not in allowed:
                continue
            items.extend(
                SoldLineItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    created_at=order.created_at,
                    status=order.status,
                )
                for line in order.line_items
            )
        return items


class InMemoryViewRepository(ViewHistoryProvider, ViewRecorder):
    def __init__(self, views: Iterable[ViewEvent] = ()) -> None:
        self._lock = threading.Lock()
        self._views: Dict[Tuple[str, str], ViewEvent] = {(view.user_id, view.product_id): view for view in views}

    def fetch_recent(self, user_id: str, limit: int = 50) -> List[ViewEvent]:
        with self._lock:
            views = [view for (owner, _), view in self._views.items() if owner == user_id]
        views.sort(key=lambda view: view.last_viewed_at, reverse=True)
        return views[:limit]

    def record_view(self, user_id: str, product_id: str, viewed_at: datetime) -> None:
        key = (user_id, product_id)
        with self._lock:
            current = self._views.get(key)
            if current:
                self._views[key] = current.model_copy(
                    update={"view_count": current.view_count + 1, "last_viewed_at": viewed_at}
                )
                return
            self._views[key] = ViewEvent(
                user_id=user_id,
                product_id=product_id,
                view_count=1,
                first_viewed_at=viewed_at,
                last_viewed_at=viewed_at,
            )


class InMemoryCoPurchaseRepository(CoPurchaseRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._counted_orders: Set[str] = set()

    def top_pairs(self, product_id: str, limit: int) -> List[CoPurchasePair]:
        with self._lock:
            counts = dict(self._counts.get(product_id, {}))
        ranked = sorted(counts.items(), key=lambda it: (-it[1], it[0]))
        return [
            CoPurchasePair(product_id=product_id, co_product_id=co_product_id, co_purchase_count=count)
            for co_product_id, count in ranked[:limit]
        ]

    def increment(self, order_id: str, pairs: Iterable[Tuple[str, str]]) -> bool:
        """Count ``pairs`` once per order; returns False for an order already counted."""
        with self._lock:
            if order_id in self._counted_orders:
                return False
            self._counted_orders.add(order_id)
            for product_id, co_product_id in pairs:
                bucket = self._counts[product_id]
                bucket[co_product_id] = bucket.get(co_product_id, 0) + 1
        return True
