from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .clock import Clock, SystemClock
from .domain import OrderEvent
from .jitter import JitterSource, UniformJitter
from .persistence.db import Database
from .persistence.repositories import (
    SqlAlchemyCatalogRepository,
    SqlAlchemyCoPurchaseRepository,
    SqlAlchemyOrderRepository,
    SqlAlchemyViewRepository,
)
from .persistence.seed import seed_catalog_if_empty
from .ranking.engine import RecommendationEngine
from .ranking.related import RelatedProductsService
from .ranking.trending_section import TrendingShelfService
from .repositories import (
    CatalogProvider,
    CoPurchaseRepository,
    InMemoryCatalogRepository,
    InMemoryCoPurchaseRepository,
    InMemoryOrderRepository,
    InMemoryViewRepository,
    OrderHistoryProvider,
    TrendingProvider,
    ViewHistoryProvider,
    ViewRecorder,
)
from .seed import load_catalog_seed
from .settings import Settings


@dataclass
class Container:
    settings: Settings
    recommendation_engine: RecommendationEngine
    trending_shelf: TrendingShelfService
    related_products: RelatedProductsService
    clock: Clock
    db: Optional[Database] = None


def build_container(
    settings: Settings,
    clock: Optional[Clock] = None,
    jitter: Optional[JitterSource] = None,
) -> Container:
    clock = clock or SystemClock()
    jitter = jitter or UniformJitter(max_value=settings.jitter_max, seed=settings.jitter_seed)
    now = clock.now()

    db: Optional[Database] = None
    seeded_orders: Iterable[OrderEvent] = ()
    catalog: CatalogProvider
    orders: OrderHistoryProvider
    sales: TrendingProvider
    views: ViewHistoryProvider
    recorder: ViewRecorder
    co_purchases: CoPurchaseRepository

    if settings.database_url:
        db = Database(settings.database_url, echo=settings.db_echo)
        db.create_tables()
        seed = seed_catalog_if_empty(db, settings.catalog_seed_path, now)
        if seed:
            seeded_orders = seed.orders
        catalog = SqlAlchemyCatalogRepository(db)
        orders = sales = SqlAlchemyOrderRepository(db)
        views = recorder = SqlAlchemyViewRepository(db)
        co_purchases = SqlAlchemyCoPurchaseRepository(db)
    else:
        seed = load_catalog_seed(settings.catalog_seed_path, now)
        seeded_orders = seed.orders
        catalog = InMemoryCatalogRepository(seed.products)
        orders = sales = InMemoryOrderRepository(seed.orders)
        views = recorder = InMemoryViewRepository(seed.views)
        co_purchases = InMemoryCoPurchaseRepository()

    engine = RecommendationEngine(
        catalog=catalog,
        orders=orders,
        views=views,
        trending=sales,
        recorder=recorder,
        clock=clock,
        jitter=jitter,
        recommendation_limit=settings.recommendation_limit,
        trending_limit=settings.trending_limit,
        cold_start_limit=settings.cold_start_limit,
        max_per_category=settings.max_per_category,
    )
    trending_shelf = TrendingShelfService(
        catalog=catalog,
        sales=sales,
        clock=clock,
        cache_ttl_seconds=settings.trending_cache_ttl_seconds,
    )
    related_products = RelatedProductsService(
        catalog=catalog,
        co_purchases=co_purchases,
        sales=sales,
        clock=clock,
    )
    for order in seeded_orders:
        related_products.record_delivered_order(order)

    return Container(
        settings=settings,
        recommendation_engine=engine,
        trending_shelf=trending_shelf,
        related_products=related_products,
        clock=clock,
        db=db,
    )
