from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from .container import Container
from .ranking.engine import RecommendationEngine
from .ranking.related import RelatedProductsService
from .ranking.trending_section import TrendingShelfService
from .settings import Settings


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_settings(container: Container = Depends(get_container)):
    return container.settings


def get_recommendation_engine(container: Container = Depends(get_container)) -> RecommendationEngine:
    return container.recommendation_engine


def get_trending_shelf(container: Container = Depends(get_container)) -> TrendingShelfService:
    return container.trending_shelf


def get_related_products(container: Container = Depends(get_container)) -> RelatedProductsService:
    return container.related_products


def resolve_user_id(request: Request, settings: Settings) -> Optional[str]:
    """Signed-in user forwarded by the auth gateway, if any."""
    user_id = request.headers.get(settings.user_id_header, "").strip()
    return user_id or None


def get_user_id(request: Request, container: Container = Depends(get_container)) -> Optional[str]:
    return resolve_user_id(request, container.settings)
