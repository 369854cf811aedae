from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from ..domain import Product
from ..ranking.domain import RecommendationResult, TrendingShelf


class ProductView(BaseModel):
    id: str
    name: str
    price: float
    mrp: Optional[float] = None
    category_id: Optional[str] = None
    unit: Optional[str] = None
    image_url: Optional[str] = None
    discount_percent: Optional[float] = None
    variant_name: Optional[str] = None


class RecommendationsView(BaseModel):
    source: str
    recommended: List[ProductView]
    trending: List[ProductView]


class TrendingItemView(BaseModel):
    product: ProductView
    trend_score: float
    order_count: int


class TrendingShelfView(BaseModel):
    source: str
    generated_at: str
    items: List[TrendingItemView]


class RelatedProductsView(BaseModel):
    product_id: str
    items: List[ProductView]


class ViewAccepted(BaseModel):
    product_id: str
    accepted: bool = True


class CoPurchaseReceipt(BaseModel):
    order_id: str
    pairs_recorded: int


def build_product_view(product: Product) -> ProductView:
    variant = product.default_variant
    return ProductView(
        id=product.id,
        name=product.name,
        price=product.effective_price,
        mrp=product.effective_mrp,
        category_id=product.category_id,
        unit=product.unit,
        image_url=product.image_url,
        discount_percent=product.discount_percent,
        variant_name=variant.variant_name if variant else None,
    )


def build_recommendations_view(result: RecommendationResult) -> RecommendationsView:
    return RecommendationsView(
        source=result.source.value,
        recommended=[build_product_view(product) for product in result.recommended],
        trending=[build_product_view(product) for product in result.trending],
    )


def build_trending_shelf_view(shelf: TrendingShelf) -> TrendingShelfView:
    return TrendingShelfView(
        source=shelf.source.value,
        generated_at=shelf.generated_at.isoformat(),
        items=[
            TrendingItemView(
                product=build_product_view(item.product),
                trend_score=round(item.trend_score, 4),
                order_count=item.order_count,
            )
            for item in shelf.items
        ],
    )


def build_related_view(product_id: str, products: List[Product]) -> RelatedProductsView:
    return RelatedProductsView(product_id=product_id, items=[build_product_view(product) for product in products])
