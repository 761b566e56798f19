"""
FastAPI Production Application

Main entry point for the Sales Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import make_asgi_app
import structlog

from src.config import get_settings
from src.config.logging import configure_logging
from src.database.connection import init_database, close_database
from src.ingestion import start_ingestion_service, stop_ingestion_service
from src.serving.cache import init_redis, close_redis, invalidate_revenue_cache
from src.serving.api.middleware import RequestLoggingMiddleware
from src.serving.api.routes import health_router, refresh_router, revenue_router

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting Sales Analytics API", environment=settings.app_env)

    await init_database()

    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis init failed, reports will not be cached", error=str(e))

    await start_ingestion_service(after_load=invalidate_revenue_cache)

    yield

    logger.info("Shutting down...")
    await stop_ingestion_service()
    await close_redis()
    await close_database()


# Create FastAPI application
app = FastAPI(
    title="Sales Analytics API",
    description="CSV sales ingestion and revenue reporting",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Compression
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(RequestLoggingMiddleware)

# API routes
app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(refresh_router, prefix="/api/v1/refresh", tags=["Refresh"])
app.include_router(revenue_router, prefix="/api/v1/revenue", tags=["Revenue"])

# Prometheus scrape endpoint
app.mount("/metrics", make_asgi_app())


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
