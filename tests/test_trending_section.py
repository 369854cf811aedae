from datetime import datetime, timedelta, timezone

from freshpick.clock import FixedClock
from freshpick.domain import OrderEvent, OrderLineItem, OrderStatus, Product
from freshpick.ranking.domain import TrendingShelfSource
from freshpick.ranking.trending_section import TrendingShelfService
from freshpick.repositories import InMemoryCatalogRepository, InMemoryOrderRepository

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def catalog():
    products = [
        Product(
            id=f"p{i}",
            name=f"Product {i}",
            price=10.0 + i,
            category_id="pantry",
            stock_quantity=0 if i == 9 else 5,
            created_at=NOW - timedelta(days=i),
        )
        for i in range(20)
    ]
    return InMemoryCatalogRepository(products)


def order(order_id: str, days_ago: float, product_ids, status=OrderStatus.DELIVERED, quantity=1) -> OrderEvent:
    return OrderEvent(
        order_id=order_id,
        user_id="shopper",
        created_at=NOW - timedelta(days=days_ago),
        status=status,
        line_items=[OrderLineItem(product_id=pid, quantity=quantity) for pid in product_ids],
    )


def build_service(orders, clock=None) -> TrendingShelfService:
    return TrendingShelfService(
        catalog=catalog(),
        sales=InMemoryOrderRepository(orders),
        clock=clock or FixedClock(NOW),
    )


class TestTrendingShelf:
    def test_recent_delivered_sales_rank_first(self):
        orders = [
            order("o1", 1, ["p3", "p4"]),
            order("o2", 2, ["p3", "p5"]),
            order("o3", 3, ["p3"]),
            order("o4", 2, ["p6"], status=OrderStatus.CANCELLED, quantity=40),
        ]
        shelf = build_service(orders).shelf(limit=3)

        assert shelf.source == TrendingShelfSource.RECENT
        assert [item.product.id for item in shelf.items][0] == "p3"
        assert shelf.items[0].order_count == 3
        assert "p6" not in [item.product.id for item in shelf.items]
        assert len(shelf.items) == 3

    def test_thin_week_widens_to_thirty_days_of_any_status(self):
        orders = [
            order("o1", 2, ["p2"]),
            order("o2", 20, ["p7", "p8"], status=OrderStatus.CONFIRMED, quantity=3),
            order("o3", 25, ["p7"], status=OrderStatus.CANCELLED),
            order("o4", 45, ["p1"]),
        ]
        shelf = build_service(orders).shelf(limit=10)

        assert shelf.source == TrendingShelfSource.EXTENDED
        ids = [item.product.id for item in shelf.items]
        assert set(ids) == {"p2", "p7", "p8"}
        assert ids[0] == "p2"

    def test_out_of_stock_products_are_skipped(self):
        orders = [order(f"o{i}", 1, ["p9", "p1"]) for i in range(5)]
        shelf = build_service(orders).shelf(limit=5)
        assert [item.product.id for item in shelf.items] == ["p1"]

    def test_no_sales_falls_back_to_newest(self):
        service = build_service([])
        shelf = service.shelf(limit=4)

        assert shelf.source == TrendingShelfSource.NEWEST
        assert len(shelf.items) == 4
        newest = {f"p{i}" for i in range(10) if i != 9}
        assert {item.product.id for item in shelf.items} <= newest
        assert all(item.trend_score == 0.0 for item in shelf.items)

    def test_newest_shuffle_is_stable_within_a_day(self):
        first = build_service([]).shelf(limit=6)
        second = build_service([]).shelf(limit=6)
        assert [i.product.id for i in first.items] == [i.product.id for i in second.items]


class TestTrendingShelfCache:
    def test_shelf_is_cached_per_limit(self):
        clock = FixedClock(NOW)
        sales = InMemoryOrderRepository([order("o1", 1, ["p1"])])
        service = TrendingShelfService(catalog=catalog(), sales=sales, clock=clock)

        first = service.shelf(limit=5)
        sales.add(order("o2", 0, ["p2", "p3"], quantity=9))
        assert service.shelf(limit=5) is first
        assert service.shelf(limit=6) is not first

    def test_cache_expires_after_ttl(self):
        clock = FixedClock(NOW)
        sales = InMemoryOrderRepository([order("o1", 1, ["p1"])])
        service = TrendingShelfService(catalog=catalog(), sales=sales, clock=clock, cache_ttl_seconds=300)

        first = service.shelf(limit=5)
        sales.add(order("o2", 0, ["p2", "p3"], quantity=9))

        clock.advance(timedelta(seconds=299))
        assert service.shelf(limit=5) is first

        clock.advance(timedelta(seconds=2))
        refreshed = service.shelf(limit=5)
        assert refreshed is not first
        assert "p2" in [item.product.id for item in refreshed.items]

    def test_invalidate_drops_cached_shelves(self):
        service = build_service([order("o1", 1, ["p1"])])
        first = service.shelf(limit=5)
        service.invalidate()
        assert service.shelf(limit=5) is not first
