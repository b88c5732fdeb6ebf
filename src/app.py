"""Storefront FastAPI application.

Carts, orders, products and stock levels served over HTTP. Endpoints are plain
functions run in FastAPI's thread pool; concurrent requests meet in the store,
where stock and cart writes are guarded by watched transactions.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from catalogue.api import product_router
from inventory.api import inventory_router
from ordering.api.routes import cart_router, order_router
from ordering.domain import Storefront, build_storefront
from shared.config import Settings
from shared.logging import bind_request_context, clear_request_context, configure_logging
from shared.web import install_error_handlers

logger = structlog.get_logger(__name__)


def create_app(storefront: Storefront | None = None) -> FastAPI:
    """Build the application. Tests pass a storefront wired to a fake store."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if storefront is None:
            settings = Settings.from_env()
            configure_logging(settings)
            app.state.storefront = build_storefront(settings)
            logger.info("storefront_started", environment=settings.environment)
        yield
        app.state.storefront.client.close()

    app = FastAPI(
        title="Storefront API",
        description="Shopping carts, stock and orders",
        lifespan=lifespan,
    )
    if storefront is not None:
        app.state.storefront = storefront

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Tag every event logged while serving a request with its id and caller."""
        clear_request_context()
        request_id = request.headers.get("x-request-id") or uuid4().hex
        bind_request_context(
            request_id=request_id,
            user_id=request.headers.get("x-user-id"),
            session_id=request.headers.get("x-session-id"),
        )
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(product_router)
    app.include_router(inventory_router)

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------
    @app.get("/health")
    def health():
        store = app.state.storefront
        try:
            reachable = bool(store.client.ping())
        except RedisError:
            logger.exception("store_unreachable")
            reachable = False
        return JSONResponse(
            status_code=200 if reachable else 503,
            content={
                "status": "ok" if reachable else "degraded",
                "environment": store.settings.environment,
                "store": "ok" if reachable else "unreachable",
            },
        )

    return app


app = create_app()
