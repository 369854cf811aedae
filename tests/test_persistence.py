import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from freshpick.clock import FixedClock
from freshpick.container import build_container
from freshpick.domain import OrderEvent, OrderLineItem, OrderStatus, Product, ProductVariant
from freshpick.jitter import NoJitter
from freshpick.persistence.db import Database
from freshpick.persistence.repositories import (
    SqlAlchemyCatalogRepository,
    SqlAlchemyCoPurchaseRepository,
    SqlAlchemyOrderRepository,
    SqlAlchemyViewRepository,
)
from freshpick.persistence.seed import seed_catalog_if_empty
from freshpick.ranking.domain import RecommendationQuery, RecommendationSource
from freshpick.settings import DEFAULT_SEED_PATH, Settings

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'freshpick.db'}")
    database.create_tables()
    yield database
    database.dispose()


class MissedFirstLookupViewRepository(SqlAlchemyViewRepository):
    """Misses the row on its first lookup, as when another writer inserts it concurrently."""

    def __init__(self, db):
        super().__init__(db)
        self.lookups = 0

    def _find_view(self, session, user_id, product_id):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return super()._find_view(session, user_id, product_id)


def order(order_id: str, user_id: str, days_ago: float, lines, status=OrderStatus.DELIVERED) -> OrderEvent:
    return OrderEvent(
        order_id=order_id,
        user_id=user_id,
        created_at=NOW - timedelta(days=days_ago),
        status=status,
        line_items=[OrderLineItem(product_id=pid, category_id="dairy", quantity=qty) for pid, qty in lines],
    )


class TestCatalogRepository:
    def test_in_stock_products_newest_first(self, db):
        repo = SqlAlchemyCatalogRepository(db)
        repo.add(Product(id="old", name="Old", price=5.0, stock_quantity=3, created_at=NOW - timedelta(days=30)))
        repo.add(Product(id="new", name="New", price=5.0, stock_quantity=3, created_at=NOW - timedelta(days=1)))
        repo.add(Product(id="gone", name="Gone", price=5.0, stock_quantity=0, created_at=NOW))

        assert [p.id for p in repo.fetch_in_stock()] == ["new", "old"]
        assert repo.count() == 3

    def test_default_variant_round_trips(self, db):
        repo = SqlAlchemyCatalogRepository(db)
        variant = ProductVariant(id="v-1", variant_name="1 L pouch", price=60.0, mrp=64.0, is_default=True)
        repo.add(Product(id="milk", name="Milk", price=62.0, stock_quantity=4, default_variant=variant))

        stored = repo.get("milk")
        assert stored is not None
        assert stored.effective_price == 60.0
        assert stored.effective_mrp == 64.0
        assert repo.get("missing") is None


class TestOrderRepository:
    def test_fetch_qualifying_skips_cancelled_and_limits(self, db):
        repo = SqlAlchemyOrderRepository(db)
        repo.add(order("o1", "u-1", 1, [("milk", 1)]))
        repo.add(order("o2", "u-1", 2, [("curd", 1)], status=OrderStatus.CANCELLED))
        repo.add(order("o3", "u-1", 3, [("butter", 1)], status=OrderStatus.OUT_FOR_DELIVERY))
        repo.add(order("o4", "u-2", 1, [("milk", 1)]))

        orders = repo.fetch_qualifying("u-1")
        assert [o.order_id for o in orders] == ["o1", "o3"]
        assert orders[0].created_at.tzinfo is not None
        assert [o.order_id for o in repo.fetch_qualifying("u-1", limit=1)] == ["o1"]

    def test_aggregate_sums_recent_quantities(self, db):
        repo = SqlAlchemyOrderRepository(db)
        repo.add(order("o1", "u-1", 1, [("milk", 2), ("curd", 1)]))
        repo.add(order("o2", "u-2", 3, [("milk", 3)], status=OrderStatus.PENDING))
        repo.add(order("o3", "u-3", 10, [("milk", 50)]))

        assert repo.fetch_aggregate(NOW - timedelta(days=7)) == {"milk": 5, "curd": 1}

    def test_line_items_filter_by_status(self, db):
        repo = SqlAlchemyOrderRepository(db)
        repo.add(order("o1", "u-1", 1, [("milk", 2)]))
        repo.add(order("o2", "u-2", 2, [("curd", 1)], status=OrderStatus.CONFIRMED))

        since = NOW - timedelta(days=7)
        delivered = repo.fetch_line_items(since, [OrderStatus.DELIVERED])
        assert [(i.product_id, i.status) for i in delivered] == [("milk", OrderStatus.DELIVERED)]
        assert len(repo.fetch_line_items(since)) == 2


class TestViewRepository:
    def test_record_view_upserts(self, db):
        repo = SqlAlchemyViewRepository(db)
        repo.record_view("u-1", "milk", NOW - timedelta(hours=2))
        repo.record_view("u-1", "curd", NOW - timedelta(hours=1))
        repo.record_view("u-1", "milk", NOW)

        views = repo.fetch_recent("u-1")
        assert [(v.product_id, v.view_count) for v in views] == [("milk", 2), ("curd", 1)]
        assert views[0].first_viewed_at == NOW - timedelta(hours=2)
        assert repo.fetch_recent("u-2") == []

    def test_concurrent_first_view_becomes_an_update(self, db):
        repo = MissedFirstLookupViewRepository(db)
        SqlAlchemyViewRepository(db).record_view("u-1", "milk", NOW - timedelta(minutes=5))

        repo.record_view("u-1", "milk", NOW)

        views = repo.fetch_recent("u-1")
        assert [(v.product_id, v.view_count) for v in views] == [("milk", 2)]
        assert views[0].last_viewed_at == NOW


class TestCoPurchaseRepository:
    def test_increment_and_rank(self, db):
        repo = SqlAlchemyCoPurchaseRepository(db)
        assert repo.increment("o1", [("milk", "bread"), ("milk", "curd"), ("bread", "milk")])
        assert repo.increment("o2", [("milk", "curd")])

        top = repo.top_pairs("milk", 5)
        assert [(p.co_product_id, p.co_purchase_count) for p in top] == [("curd", 2), ("bread", 1)]
        assert len(repo.top_pairs("milk", 1)) == 1

    def test_same_order_is_counted_once(self, db):
        repo = SqlAlchemyCoPurchaseRepository(db)
        assert repo.increment("o1", [("milk", "bread"), ("bread", "milk")])
        assert not repo.increment("o1", [("milk", "bread"), ("bread", "milk")])

        assert [p.co_purchase_count for p in repo.top_pairs("milk", 5)] == [1]


class TestSqlContainer:
    def test_seed_runs_once(self, db):
        assert seed_catalog_if_empty(db, str(DEFAULT_SEED_PATH), NOW) is not None
        assert seed_catalog_if_empty(db, str(DEFAULT_SEED_PATH), NOW) is None

    def test_recommendations_from_database(self, tmp_path):
        settings = Settings(database_url=f"sqlite:///{tmp_path / 'app.db'}")
        container = build_container(settings, clock=FixedClock(NOW), jitter=NoJitter())
        try:
            result = asyncio.run(container.recommendation_engine.recommend(RecommendationQuery(user_id="user-demo")))
            related = container.related_products.frequently_bought_together("p-milk-1l")
        finally:
            container.db.dispose()

        ids = [p.id for p in result.recommended]
        assert result.source == RecommendationSource.PERSONALIZED
        assert "p-milk-1l" not in ids
        assert "p-bread-white" not in ids
        assert "p-ghee-500" not in ids
        assert len(ids) <= 12
        assert related
