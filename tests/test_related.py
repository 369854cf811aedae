from datetime import datetime, timedelta, timezone

import pytest

from freshpick.clock import FixedClock
from freshpick.domain import OrderEvent, OrderLineItem, OrderStatus, Product
from freshpick.errors import NotFoundError, ValidationError
from freshpick.ranking.related import RelatedProductsService
from freshpick.repositories import InMemoryCatalogRepository, InMemoryCoPurchaseRepository, InMemoryOrderRepository

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

PRODUCTS = [
    ("milk", "dairy", 10),
    ("curd", "dairy", 10),
    ("butter", "dairy", 10),
    ("paneer", "dairy", 10),
    ("cheese", "dairy", 10),
    ("bread", "bakery", 10),
    ("bun", "bakery", 10),
    ("banana", "produce", 10),
    ("apple", "produce", 10),
    ("ghee", "dairy", 0),
    ("gift-card", None, 10),
]


def catalog() -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository(
        Product(
            id=pid,
            name=pid.title(),
            price=25.0,
            category_id=category,
            stock_quantity=stock,
            created_at=NOW - timedelta(days=index),
        )
        for index, (pid, category, stock) in enumerate(PRODUCTS)
    )


def order(order_id: str, product_ids, status=OrderStatus.DELIVERED, days_ago: float = 1) -> OrderEvent:
    return OrderEvent(
        order_id=order_id,
        user_id="shopper",
        created_at=NOW - timedelta(days=days_ago),
        status=status,
        line_items=[OrderLineItem(product_id=pid) for pid in product_ids],
    )


class BrokenCoPurchases(InMemoryCoPurchaseRepository):
    def top_pairs(self, product_id, limit):
        raise ConnectionError("co-purchase store unavailable")


def build_service(orders=()):
    sales = InMemoryOrderRepository(orders)
    co_purchases = InMemoryCoPurchaseRepository()
    service = RelatedProductsService(
        catalog=catalog(),
        co_purchases=co_purchases,
        sales=sales,
        clock=FixedClock(NOW),
    )
    return service, co_purchases


class TestCoPurchaseRecording:
    def test_delivered_order_records_both_directions(self):
        service, pairs = build_service()
        assert service.record_delivered_order(order("o1", ["milk", "bread", "banana"])) == 6
        assert [p.co_product_id for p in pairs.top_pairs("bread", 10)] == ["banana", "milk"]

    def test_repeated_lines_count_once(self):
        service, pairs = build_service()
        assert service.record_delivered_order(order("o1", ["milk", "milk", "bread"])) == 2
        assert pairs.top_pairs("milk", 10)[0].co_purchase_count == 1

    def test_undelivered_orders_are_ignored(self):
        service, pairs = build_service()
        assert service.record_delivered_order(order("o1", ["milk", "bread"], status=OrderStatus.CONFIRMED)) == 0
        assert pairs.top_pairs("milk", 10) == []

    def test_single_and_oversized_orders_are_ignored(self):
        service, _ = build_service()
        assert service.record_delivered_order(order("o1", ["milk"])) == 0
        assert service.record_delivered_order(order("o2", [f"p{i}" for i in range(21)])) == 0

    def test_order_without_lines_is_rejected(self):
        service, _ = build_service()
        with pytest.raises(ValidationError):
            service.record_delivered_order(order("o1", []))

    def test_same_order_is_counted_once(self):
        service, pairs = build_service()
        delivered = order("o1", ["milk", "bread"])
        assert service.record_delivered_order(delivered) == 2
        assert service.record_delivered_order(delivered) == 0
        assert pairs.top_pairs("milk", 10)[0].co_purchase_count == 1

    def test_counts_accumulate(self):
        service, pairs = build_service()
        service.record_delivered_order(order("o1", ["milk", "bread"]))
        service.record_delivered_order(order("o2", ["milk", "bread"]))
        service.record_delivered_order(order("o3", ["milk", "banana"]))
        top = pairs.top_pairs("milk", 10)
        assert [(p.co_product_id, p.co_purchase_count) for p in top] == [("bread", 2), ("banana", 1)]


class TestFrequentlyBoughtTogether:
    def test_paired_products_lead(self):
        service, _ = build_service()
        service.record_delivered_order(order("o1", ["milk", "bread"]))
        service.record_delivered_order(order("o2", ["milk", "bread", "banana"]))

        items = [p.id for p in service.frequently_bought_together("milk")]
        assert items[:2] == ["bread", "banana"]
        assert "milk" not in items
        assert len(items) == len(set(items))

    def test_fills_from_same_category(self):
        service, _ = build_service()
        items = [p.id for p in service.frequently_bought_together("milk")]
        assert items[:4] == ["curd", "butter", "paneer", "cheese"]

    def test_out_of_stock_partner_is_skipped(self):
        service, _ = build_service()
        service.record_delivered_order(order("o1", ["milk", "ghee"]))
        assert "ghee" not in [p.id for p in service.frequently_bought_together("milk")]

    def test_uncategorized_anchor_falls_back_to_popular(self):
        sales = [order("o1", ["apple", "bun"]), order("o2", ["apple"]), order("o3", ["apple", "bread"])]
        service, _ = build_service(sales)
        items = [p.id for p in service.frequently_bought_together("gift-card")]
        assert items[0] == "apple"
        assert len(items) >= 4
        assert "gift-card" not in items

    def test_unknown_anchor_raises(self):
        service, _ = build_service()
        with pytest.raises(NotFoundError):
            service.frequently_bought_together("does-not-exist")

    def test_failing_co_purchase_lookup_falls_through_to_category(self):
        service = RelatedProductsService(
            catalog=catalog(),
            co_purchases=BrokenCoPurchases(),
            sales=InMemoryOrderRepository(),
            clock=FixedClock(NOW),
        )
        items = [p.id for p in service.frequently_bought_together("milk")]
        assert items[:4] == ["curd", "butter", "paneer", "cheese"]
        assert [p.id for p in service.people_also_bought("curd")][:4] == ["milk", "butter", "paneer", "cheese"]


class TestPeopleAlsoBought:
    def test_excluded_ids_never_return(self):
        service, _ = build_service()
        service.record_delivered_order(order("o1", ["bread", "milk", "banana"]))
        service.record_delivered_order(order("o2", ["bread", "milk"]))

        items = [p.id for p in service.people_also_bought("bread", ["milk"])]
        assert items[0] == "banana"
        assert "milk" not in items
        assert "bread" not in items

    def test_same_category_fills_remaining_slots(self):
        service, _ = build_service()
        items = [p.id for p in service.people_also_bought("curd")]
        assert items[:4] == ["milk", "butter", "paneer", "cheese"]
        assert len(items) <= 8

    def test_unknown_anchor_raises(self):
        service, _ = build_service()
        with pytest.raises(NotFoundError):
            service.people_also_bought("does-not-exist")
