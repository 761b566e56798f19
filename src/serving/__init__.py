"""
Serving Module
"""
from .cache import close_redis, get_redis, init_redis, invalidate_revenue_cache, revenue_cache

__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "invalidate_revenue_cache",
    "revenue_cache",
]
