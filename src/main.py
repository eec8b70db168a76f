"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.routes import admin_discounts, admin_orders, discounts, health, orders
from src.core.background import get_background_runner, shutdown_background_runner
from src.core.carrier import shutdown_carrier_client
from src.core.config import get_settings
from src.core.rate_limiter import init_rate_limiter, shutdown_rate_limiter
from src.core.whatsapp import shutdown_whatsapp_client
from src.services.discount_service import DiscountService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def discount_expiry_loop(interval_seconds: int) -> None:
    """Deactivate expired discounts every interval until cancelled."""
    while True:
        try:
            expired = await DiscountService().expire_discounts()
            if expired:
                logger.info("Discount expiry: deactivated %d discounts", expired)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Discount expiry run failed: %s", e, exc_info=True)
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    # Startup
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    # Initialize rate limiter with cleanup task
    await init_rate_limiter()
    logger.info("Rate limiter initialized")

    get_background_runner()
    logger.info("Background task runner initialized")

    expiry_task: asyncio.Task | None = None
    if settings.discount_expiry_interval_seconds > 0:
        expiry_task = asyncio.create_task(discount_expiry_loop(settings.discount_expiry_interval_seconds))
        logger.info("Discount expiry loop started (every %ds)", settings.discount_expiry_interval_seconds)

    yield
    # Shutdown
    if expiry_task is not None:
        expiry_task.cancel()
        try:
            await expiry_task
        except asyncio.CancelledError:
            pass
        logger.info("Discount expiry loop stopped")

    # Let in-flight notifications and estimates finish before closing clients
    await shutdown_background_runner()
    logger.info("Background task runner drained")
    await shutdown_carrier_client()
    await shutdown_whatsapp_client()
    await shutdown_rate_limiter()
    logger.info("Rate limiter shutdown")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Tea Storefront API",
        description="Order, discount and shipping backend for the tea storefront",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handler middleware (outermost - catches all errors)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Mount health routes at root level (no prefix)
    app.include_router(health.router)

    # Create API v1 router for versioned endpoints
    api_v1_router = APIRouter(prefix="/api/v1")

    # Customer routes
    api_v1_router.include_router(orders.router)
    api_v1_router.include_router(orders.shipping_router)
    api_v1_router.include_router(discounts.router)

    # Admin routes
    api_v1_router.include_router(admin_orders.router)
    api_v1_router.include_router(admin_discounts.router)

    app.include_router(api_v1_router)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
