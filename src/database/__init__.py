"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_session_factory
from .models import Base, Category, Customer, Order, OrderItem, Product, RunLog, RunStatus

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_session_factory",
    "Base",
    "Category",
    "Customer",
    "Order",
    "OrderItem",
    "Product",
    "RunLog",
    "RunStatus",
]
