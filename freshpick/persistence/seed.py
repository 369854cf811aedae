from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..seed import SeedData, load_catalog_seed
from .db import Database
from .repositories import SqlAlchemyCatalogRepository, SqlAlchemyOrderRepository, SqlAlchemyViewRepository


def seed_catalog_if_empty(db: Database, seed_path: str, now: datetime) -> Optional[SeedData]:
    """Insert the demo seed into an empty database; returns what was written."""
    catalog = SqlAlchemyCatalogRepository(db)
    if catalog.count():
        return None

    seed = load_catalog_seed(seed_path, now)
    if not seed.products:
        return None

    orders = SqlAlchemyOrderRepository(db)
    views = SqlAlchemyViewRepository(db)
    for product in seed.products:
        catalog.add(product)
    for order in seed.orders:
        orders.add(order)
    for view in seed.views:
        views.add(view)
    return seed
