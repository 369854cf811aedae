from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .domain import OrderEvent, OrderLineItem, OrderStatus, Product, ProductVariant, ViewEvent


class SeedProduct(BaseModel):
    id: str
    name: str
    price: float
    mrp: Optional[float] = None
    category_id: Optional[str] = None
    stock_quantity: int = 0
    age_days: float = 30
    discount_percent: Optional[float] = None
    unit: Optional[str] = None
    default_variant: Optional[ProductVariant] = None

    def to_product(self, now: datetime) -> Product:
        data = self.model_dump(exclude={"age_days"})
        return Product(**data, created_at=now - timedelta(days=self.age_days))


class SeedLine(BaseModel):
    product_id: str
    quantity: int = 1


class SeedOrder(BaseModel):
    order_id: str
    user_id: str
    age_days: float
    status: OrderStatus
    items: List[SeedLine]

    def to_event(self, now: datetime, catalog: Dict[str, Product]) -> OrderEvent:
        lines = [
            OrderLineItem(
                product_id=line.product_id,
                category_id=catalog[line.product_id].category_id if line.product_id in catalog else None,
                quantity=line.quantity,
            )
            for line in self.items
        ]
        return OrderEvent(
            order_id=self.order_id,
            user_id=self.user_id,
            created_at=now - timedelta(days=self.age_days),
            status=self.status,
            line_items=lines,
        )


class SeedView(BaseModel):
    user_id: str
    product_id: str
    view_count: int = 1
    age_hours: float = 1

    def to_event(self, now: datetime) -> ViewEvent:
        viewed_at = now - timedelta(hours=self.age_hours)
        return ViewEvent(
            user_id=self.user_id,
            product_id=self.product_id,
            view_count=self.view_count,
            first_viewed_at=viewed_at,
            last_viewed_at=viewed_at,
        )


class CatalogSeed(BaseModel):
    products: List[SeedProduct] = Field(default_factory=list)
    orders: List[SeedOrder] = Field(default_factory=list)
    views: List[SeedView] = Field(default_factory=list)


class SeedData(BaseModel):
    products: List[Product]
    orders: List[OrderEvent]
    views: List[ViewEvent]


def load_catalog_seed(path: str, now: datetime) -> SeedData:
    """Load the demo seed, anchoring its relative ages at ``now``."""
    seed_path = Path(path)
    if not path or not seed_path.exists():
        return SeedData(products=[], orders=[], views=[])
    seed = CatalogSeed(**json.loads(seed_path.read_text(encoding="utf-8")))
    products = [item.to_product(now) for item in seed.products]
    catalog = {product.id: product for product in products}
    return SeedData(
        products=products,
        orders=[order.to_event(now, catalog) for order in seed.orders],
        views=[view.to_event(now) for view in seed.views],
    )
