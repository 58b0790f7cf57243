"""Main application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker
import redis
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor

from config import (
    API_VERSION,
    OTEL_ENABLED,
    PROFILING_ENABLED,
    RATE_LIMIT_PER_MINUTE_IP,
    RATE_LIMIT_PER_MINUTE_USER,
    REDIS_URL,
    SEED_PRODUCTS,
)
from cache import CacheService
from database import create_db_engine, create_session_factory, init_db
from monitoring import init_metrics, init_profiling, init_tracing
from logging_config import setup_logging
from routers import admin, cart, orders, products, wallets
from redis_rate_limiter import RedisRateLimiter
from services.cart_service import CartService
from services.ledger_service import LedgerService
from services.order_service import OrderService
from services.product_service import ProductService
from services.user_wallet_service import UserWalletService

setup_logging()
logger = logging.getLogger(__name__)


def create_app(
    session_factory: Optional[sessionmaker] = None,
    redis_client: Optional[redis.Redis] = None,
    observability: bool = OTEL_ENABLED
) -> FastAPI:
    """
    Build the application.

    Args:
        session_factory: Use this session factory instead of creating an
            engine from DATABASE_URL (the caller owns its schema)
        redis_client: Redis client for the cache and rate limiter
        observability: Install tracing/metrics providers and instrument libraries

    Returns:
        FastAPI application
    """
    if redis_client is None:
        redis_client = redis.from_url(REDIS_URL, decode_responses=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        logger.info("Starting application...")

        tracer_provider = meter_provider = None
        if observability:
            tracer_provider = init_tracing()
            meter_provider = init_metrics()
            RedisInstrumentor().instrument()
        if PROFILING_ENABLED:
            init_profiling()

        engine = None
        factory = session_factory
        if factory is None:
            engine = create_db_engine()
            if observability:
                SQLAlchemyInstrumentor().instrument(engine=engine)
            init_db(engine, seed=SEED_PRODUCTS)
            factory = create_session_factory(engine)

        ledger = LedgerService(factory)
        app.state.redis_client = redis_client
        app.state.cache = CacheService(redis_client)
        app.state.ledger_service = ledger
        app.state.user_wallet_service = UserWalletService(ledger)
        app.state.product_service = ProductService(factory)
        app.state.cart_service = CartService(factory)
        app.state.order_service = OrderService(factory, ledger)

        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application...")
        if engine is not None:
            engine.dispose()
        if tracer_provider is not None:
            tracer_provider.shutdown()
        if meter_provider is not None:
            meter_provider.shutdown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Shop Service",
        version=API_VERSION,
        lifespan=lifespan
    )

    # Redis-backed sliding-window rate limiting per IP, user and route
    app.add_middleware(
        RedisRateLimiter,
        redis_client=redis_client,
        requests_per_minute_ip=RATE_LIMIT_PER_MINUTE_IP,
        requests_per_minute_user=RATE_LIMIT_PER_MINUTE_USER
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if observability:
        FastAPIInstrumentor.instrument_app(app)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(products.router)
    app.include_router(cart.router)
    app.include_router(wallets.router)
    app.include_router(orders.router)
    app.include_router(admin.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
