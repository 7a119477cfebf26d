"""
Dashboard data cache with TTL, request coalescing, and stale-on-error fallback.
"""
from .core import CacheEntry, CacheStatus, DataCategory
from .categories import (
    CATEGORY_ACTIONS,
    extract_category_data,
    get_action_for_category,
)
from .coalescer import RequestCoalescer
from .manager import CacheManager

__all__ = [
    # Core types
    "CacheEntry",
    "CacheStatus",
    "DataCategory",
    # Categories
    "CATEGORY_ACTIONS",
    "extract_category_data",
    "get_action_for_category",
    # Coalescing
    "RequestCoalescer",
    # Manager
    "CacheManager",
]
