"""
Sales Analytics Service
Configuration Module
"""
from .settings import IngestionSettings, Settings, get_settings

__all__ = ["IngestionSettings", "Settings", "get_settings"]
