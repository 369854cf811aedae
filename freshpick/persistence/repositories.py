from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..clock import as_utc
from ..domain import (
    QUALIFYING_STATUSES,
    CoPurchasePair,
    OrderEvent,
    OrderLineItem,
    OrderStatus,
    Product,
    ProductVariant,
    SoldLineItem,
    ViewEvent,
)
from .db import Database
from .models import (
    CoPurchaseOrderRecord,
    CoPurchaseRecord,
    OrderItemRecord,
    OrderRecord,
    ProductRecord,
    ProductVariantRecord,
    ProductViewRecord,
)


def to_db_time(value: datetime) -> datetime:
    """Columns hold naive UTC so comparisons behave the same on every backend."""
    return as_utc(value).astimezone(timezone.utc).replace(tzinfo=None)


def product_from_record(record: ProductRecord) -> Product:
    default = next((variant for variant in record.variants if variant.is_default), None)
    return Product(
        id=record.id,
        name=record.name,
        price=record.price,
        mrp=record.mrp,
        category_id=record.category_id,
        stock_quantity=record.stock_quantity,
        created_at=as_utc(record.created_at) if record.created_at else None,
        discount_percent=record.discount_percent,
        image_url=record.image_url,
        unit=record.unit,
        default_variant=(
            ProductVariant(
                id=default.id,
                variant_name=default.variant_name,
                variant_value=default.variant_value,
                variant_unit=default.variant_unit,
                price=default.price,
                mrp=default.mrp,
                is_default=True,
            )
            if default
            else None
        ),
    )


def order_from_record(record: OrderRecord) -> OrderEvent:
    return OrderEvent(
        order_id=record.id,
        user_id=record.user_id,
        created_at=as_utc(record.created_at),
        status=OrderStatus(record.status),
        line_items=[
            OrderLineItem(product_id=item.product_id, category_id=item.category_id, quantity=item.quantity)
            for item in record.items
        ],
    )


def view_from_record(record: ProductViewRecord) -> ViewEvent:
    return ViewEvent(
        user_id=record.user_id,
        product_id=record.product_id,
        view_count=max(record.view_count, 1),
        first_viewed_at=as_utc(record.first_viewed_at),
        last_viewed_at=as_utc(record.last_viewed_at),
    )


class SqlAlchemyCatalogRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def add(self, product: Product) -> Product:
        with self._db.session() as session:
            record = ProductRecord(
                id=product.id,
                name=product.name,
                price=product.price,
                mrp=product.mrp,
                category_id=product.category_id,
                stock_quantity=product.stock_quantity,
                created_at=to_db_time(product.created_at) if product.created_at else None,
                discount_percent=product.discount_percent,
                image_url=product.image_url,
                unit=product.unit,
            )
            if product.default_variant:
                variant = product.default_variant
                record.variants.append(
                    ProductVariantRecord(
                        id=variant.id,
                        variant_name=variant.variant_name,
                        variant_value=variant.variant_value,
                        variant_unit=variant.variant_unit,
                        price=variant.price,
                        mrp=variant.mrp,
                        is_default=True,
                    )
                )
            session.add(record)
        return product

    def get(self, product_id: str) -> Optional[Product]:
        with self._db.session() as session:
            record = session.get(ProductRecord, product_id)
            return product_from_record(record) if record else None

    def fetch_in_stock(self) -> List[Product]:
        with self._db.session() as session:
            stmt = (
                select(ProductRecord)
                .where(ProductRecord.stock_quantity > 0)
                .order_by(ProductRecord.created_at.desc())
            )
            records = session.execute(stmt).scalars().all()
            return [product_from_record(record) for record in records]

    def count(self) -> int:
        with self._db.session() as session:
            return int(session.execute(select(func.count()).select_from(ProductRecord)).scalar_one())


class SqlAlchemyOrderRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def add(self, order: OrderEvent) -> OrderEvent:
        created_at = to_db_time(order.created_at)
        with self._db.session() as session:
            session.add(
                OrderRecord(
                    id=order.order_id,
                    user_id=order.user_id,
                    status=order.status.value,
                    created_at=created_at,
                    items=[
                        OrderItemRecord(
                            product_id=item.product_id,
                            category_id=item.category_id,
                            quantity=item.quantity,
                            created_at=created_at,
                        )
                        for item in order.line_items
                    ],
                )
            )
        return order

    def fetch_qualifying(self, user_id: str, limit: int = 30) -> List[OrderEvent]:
        with self._db.session() as session:
            stmt = (
                select(OrderRecord)
                .where(OrderRecord.user_id == user_id)
                .where(OrderRecord.status.in_([status.value for status in QUALIFYING_STATUSES]))
                .order_by(OrderRecord.created_at.desc())
                .limit(limit)
            )
            records = session.execute(stmt).scalars().all()
            return [order_from_record(record) for record in records]

    def fetch_aggregate(self, since: datetime) -> Dict[str, int]:
        with self._db.session() as session:
            stmt = (
                select(OrderItemRecord.product_id, func.sum(OrderItemRecord.quantity))
                .where(OrderItemRecord.created_at >= to_db_time(since))
                .group_by(OrderItemRecord.product_id)
            )
            return {product_id: int(total or 0) for product_id, total in session.execute(stmt).all()}

    def fetch_line_items(
        self,
        since: datetime,
        statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> List[SoldLineItem]:
        with self._db.session() as session:
            stmt = (
                select(OrderItemRecord, OrderRecord.status)
                .join(OrderRecord, OrderRecord.id == OrderItemRecord.order_id)
                .where(OrderItemRecord.created_at >= to_db_time(since))
                .order_by(OrderItemRecord.created_at.desc())
            )
            if statuses is not None:
                stmt = stmt.where(OrderRecord.status.in_([status.value for status in statuses]))
            return [
                SoldLineItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    created_at=as_utc(item.created_at),
                    status=OrderStatus(status),
                )
                for item, status in session.execute(stmt).all()
            ]


class SqlAlchemyViewRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def add(self, view: ViewEvent) -> ViewEvent:
        with self._db.session() as session:
            session.add(
                ProductViewRecord(
                    user_id=view.user_id,
                    product_id=view.product_id,
                    view_count=view.view_count,
                    first_viewed_at=to_db_time(view.first_viewed_at or view.last_viewed_at),
                    last_viewed_at=to_db_time(view.last_viewed_at),
                )
            )
        return view

    def fetch_recent(self, user_id: str, limit: int = 50) -> List[ViewEvent]:
        with self._db.session() as session:
            stmt = (
                select(ProductViewRecord)
                .where(ProductViewRecord.user_id == user_id)
                .order_by(ProductViewRecord.last_viewed_at.desc())
                .limit(limit)
            )
            return [view_from_record(record) for record in session.execute(stmt).scalars().all()]

    def record_view(self, user_id: str, product_id: str, viewed_at: datetime) -> None:
        stamp = to_db_time(viewed_at)
        try:
            self._upsert_view(user_id, product_id, stamp)
        except IntegrityError:
            # a concurrent first view inserted the row; it now updates
            self._upsert_view(user_id, product_id, stamp)

    def _find_view(self, session: Session, user_id: str, product_id: str) -> Optional[ProductViewRecord]:
        stmt = select(ProductViewRecord).where(
            ProductViewRecord.user_id == user_id,
            ProductViewRecord.product_id == product_id,
        )
        return session.execute(stmt).scalars().first()

    def _upsert_view(self, user_id: str, product_id: str, stamp: datetime) -> None:
        with self._db.session() as session:
            record = self._find_view(session, user_id, product_id)
            if record:
                record.view_count = (record.view_count or 1) + 1
                record.last_viewed_at = stamp
                return
            session.add(
                ProductViewRecord(
                    user_id=user_id,
                    product_id=product_id,
                    view_count=1,
                    first_viewed_at=stamp,
                    last_viewed_at=stamp,
                )
            )


class SqlAlchemyCoPurchaseRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def top_pairs(self, product_id: str, limit: int) -> List[CoPurchasePair]:
        with self._db.session() as session:
            stmt = (
                select(CoPurchaseRecord)
                .where(CoPurchaseRecord.product_id == product_id)
                .order_by(CoPurchaseRecord.co_purchase_count.desc(), CoPurchaseRecord.co_product_id.asc())
                .limit(limit)
            )
            return [
                CoPurchasePair(
                    product_id=record.product_id,
                    co_product_id=record.co_product_id,
                    co_purchase_count=record.co_purchase_count,
                )
                for record in session.execute(stmt).scalars().all()
            ]

    def increment(self, order_id: str, pairs: Iterable[Tuple[str, str]]) -> bool:
        """Count ``pairs`` once per order; returns False for an order already counted."""
        with self._db.session() as session:
            if session.get(CoPurchaseOrderRecord, order_id):
                return False
            session.add(CoPurchaseOrderRecord(order_id=order_id, counted_at=to_db_time(datetime.now(timezone.utc))))
            try:
                session.flush()
            except IntegrityError:
                # counted concurrently by another writer
                session.rollback()
                return False
            for product_id, co_product_id in pairs:
                record = session.get(CoPurchaseRecord, (product_id, co_product_id))
                if not record:
                    session.add(CoPurchaseRecord(product_id=product_id, co_product_id=co_product_id, co_purchase_count=1))
                    session.flush()
                    continue
                record.co_purchase_count += 1
        return True
