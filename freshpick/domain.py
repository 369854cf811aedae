from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, Field, conint


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# Statuses that count as purchase history for affinity and exclusion.
QUALIFYING_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CONFIRMED}
)


class ProductVariant(BaseModel):
    id: str
    variant_name: str
    variant_value: float = 1
    variant_unit: Optional[str] = None
    price: float
    mrp: Optional[float] = None
    is_default: bool = False


class Product(BaseModel):
    id: str
    name: str
    price: float
    mrp: Optional[float] = None
    category_id: Optional[str] = None
    stock_quantity: int = 0
    created_at: Optional[datetime] = None
    discount_percent: Optional[float] = None
    image_url: Optional[str] = None
    unit: Optional[str] = None
    default_variant: Optional[ProductVariant] = None

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity > 0

    @property
    def effective_price(self) -> float:
        if self.default_variant:
            return self.default_variant.price
        return self.price

    @property
    def effective_mrp(self) -> Optional[float]:
        if self.default_variant and self.default_variant.mrp is not None:
            return self.default_variant.mrp
        return self.mrp


class ViewEvent(BaseModel):
    user_id: str
    product_id: str
    view_count: conint(ge=1) = 1
    last_viewed_at: datetime
    first_viewed_at: Optional[datetime] = None


class OrderLineItem(BaseModel):
    product_id: str
    category_id: Optional[str] = None
    quantity: conint(gt=0) = 1


class OrderEvent(BaseModel):
    order_id: str
    user_id: str
    created_at: datetime
    status: OrderStatus
    line_items: List[OrderLineItem] = Field(default_factory=list)

    @property
    def qualifies(self) -> bool:
        return self.status in QUALIFYING_STATUSES


class SoldLineItem(BaseModel):
    product_id: str
    quantity: int
    created_at: datetime
    status: OrderStatus


class CoPurchasePair(BaseModel):
    product_id: str
    co_product_id: str
    co_purchase_count: int = 1


class HealthStatus(BaseModel):
    status: str
    time: datetime
