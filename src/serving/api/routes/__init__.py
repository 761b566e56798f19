"""
API Routes Module
"""
from .health import router as health_router
from .refresh import router as refresh_router
from .revenue import router as revenue_router

__all__ = [
    "health_router",
    "refresh_router",
    "revenue_router",
]
