from __future__ import annotations

from typing import Optional
from uuid import uuid4

import strawberry
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from .api.rest import router as rest_router
from .api.views import ProductView, build_product_view
from .container import Container, build_container
from .deps import resolve_user_id
from .errors import NotFoundError, UnauthorizedError, ValidationError
from .logging import ServiceLogger, setup_logging
from .middleware.rate_limit import configure_rate_limiting
from .observability import configure_observability
from .ranking.domain import RecommendationQuery
from .settings import Settings, load_settings


@strawberry.type
class GraphQLProduct:
    id: str
    name: str
    price: float
    mrp: Optional[float]
    category_id: Optional[str]
    unit: Optional[str]


@strawberry.type
class GraphQLRecommendations:
    source: str
    recommended: list[GraphQLProduct]
    trending: list[GraphQLProduct]


@strawberry.type
class GraphQLTrendingItem:
    product: GraphQLProduct
    trend_score: float
    order_count: int


@strawberry.type
class GraphQLTrendingShelf:
    source: str
    generated_at: str
    items: list[GraphQLTrendingItem]


def to_graphql_product(view: ProductView) -> GraphQLProduct:
    return GraphQLProduct(
        id=view.id,
        name=view.name,
        price=view.price,
        mrp=view.mrp,
        category_id=view.category_id,
        unit=view.unit,
    )


def graphql_schema() -> strawberry.Schema:
    @strawberry.type
    class Query:
        @strawberry.field
        async def recommendations(self, info: Info) -> GraphQLRecommendations:
            container: Container = info.context["container"]
            query = RecommendationQuery(user_id=info.context["user_id"])
            result = await container.recommendation_engine.recommend(query)
            return GraphQLRecommendations(
                source=result.source.value,
                recommended=[to_graphql_product(build_product_view(p)) for p in result.recommended],
                trending=[to_graphql_product(build_product_view(p)) for p in result.trending],
            )

        @strawberry.field
        def trending(self, info: Info, limit: int = 10) -> GraphQLTrendingShelf:
            container: Container = info.context["container"]
            shelf = container.trending_shelf.shelf(max(1, min(limit, 50)))
            return GraphQLTrendingShelf(
                source=shelf.source.value,
                generated_at=shelf.generated_at.isoformat(),
                items=[
                    GraphQLTrendingItem(
                        product=to_graphql_product(build_product_view(item.product)),
                        trend_score=item.trend_score,
                        order_count=item.order_count,
                    )
                    for item in shelf.items
                ],
            )

    return strawberry.Schema(query=Query)


def create_app(settings: Settings, container: Optional[Container] = None) -> FastAPI:
    setup_logging(settings.log_level)
    log = ServiceLogger("app")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        description="Personalized product recommendations, trending shelves and related products.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    configure_rate_limiting(app, settings)

    container = container or build_container(settings)
    app.state.container = container

    configure_observability(app, settings, engine=container.db.engine if container.db else None)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if container.db:
            container.db.dispose()

    @app.exception_handler(NotFoundError)
    async def handle_not_found(_, __):
        return JSONResponse(status_code=404, content={"detail": "Not found"})

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(_, __):
        return JSONResponse(status_code=401, content={"detail": "Unauthorized"})

    @app.exception_handler(ValidationError)
    async def handle_validation(_, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": exc.detail})

    async def graphql_context(request: Request):
        container: Container = request.app.state.container
        return {"container": container, "user_id": resolve_user_id(request, container.settings)}

    app.include_router(GraphQLRouter(graphql_schema(), context_getter=graphql_context), prefix="/graphql")

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(settings.request_id_header, "") or uuid4().hex
        response = await call_next(request)
        response.headers[settings.request_id_header] = request_id
        return response

    app.include_router(rest_router)
    app.include_router(rest_router, prefix="/v1")

    log.info("app ready", backend="sql" if container.db else "memory")
    return app


app = create_app(load_settings())
