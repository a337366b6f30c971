# site_core/cache/__init__.py
"""
In-memory query cache for list-backed views and weather readings.
"""
from .query_cache import QueryCache, QueryEntry, QueryKey

__all__ = [
    "QueryCache",
    "QueryEntry",
    "QueryKey",
]
