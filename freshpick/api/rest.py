from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query

from ..container import Container
from ..deps import (
    get_container,
    get_recommendation_engine,
    get_related_products,
    get_settings,
    get_trending_shelf,
    get_user_id,
)
from ..domain import HealthStatus, OrderEvent
from ..errors import UnauthorizedError
from ..ranking.domain import RecommendationQuery
from ..ranking.engine import RecommendationEngine
from ..ranking.related import RelatedProductsService
from ..ranking.trending_section import TrendingShelfService
from ..settings import Settings
from .views import (
    CoPurchaseReceipt,
    RecommendationsView,
    RelatedProductsView,
    TrendingShelfView,
    ViewAccepted,
    build_recommendations_view,
    build_related_view,
    build_trending_shelf_view,
)

router = APIRouter()


def partner_auth(
    x_api_key: str = Header("", alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> str:
    if x_api_key != settings.partner_api_key:
        raise HTTPException(status_code=401, detail="Invalid partner API key")
    return x_api_key


@router.get("/health", response_model=HealthStatus)
async def health(container: Container = Depends(get_container)):
    return HealthStatus(status="ok", time=container.clock.now())


@router.get("/recommendations", response_model=RecommendationsView)
async def recommendations(
    user_id: Optional[str] = Depends(get_user_id),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
):
    result = await engine.recommend(RecommendationQuery(user_id=user_id))
    return build_recommendations_view(result)


@router.post("/products/{product_id}/views", response_model=ViewAccepted, status_code=202)
async def track_product_view(
    product_id: str,
    background_tasks: BackgroundTasks,
    user_id: Optional[str] = Depends(get_user_id),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
):
    if not user_id:
        raise UnauthorizedError()
    background_tasks.add_task(engine.track_view, user_id, product_id)
    return ViewAccepted(product_id=product_id)


@router.get("/trending", response_model=TrendingShelfView)
async def trending(
    limit: int = Query(10, ge=1, le=50),
    service: TrendingShelfService = Depends(get_trending_shelf),
):
    return build_trending_shelf_view(service.shelf(limit))


@router.get("/products/{product_id}/frequently-bought-together", response_model=RelatedProductsView)
async def frequently_bought_together(
    product_id: str,
    service: RelatedProductsService = Depends(get_related_products),
):
    return build_related_view(product_id, service.frequently_bought_together(product_id))


@router.get("/products/{product_id}/people-also-bought", response_model=RelatedProductsView)
async def people_also_bought(
    product_id: str,
    exclude: List[str] = Query([]),
    service: RelatedProductsService = Depends(get_related_products),
):
    return build_related_view(product_id, service.people_also_bought(product_id, exclude))


@router.post("/co-purchases", response_model=CoPurchaseReceipt)
async def record_co_purchases(
    payload: OrderEvent,
    _: str = Depends(partner_auth),
    service: RelatedProductsService = Depends(get_related_products),
):
    pairs = service.record_delivered_order(payload)
    return CoPurchaseReceipt(order_id=payload.order_id, pairs_recorded=pairs)
