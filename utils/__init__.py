"""Utilities and helper functions.

Consolidated utilities:
- ttl_cache: Bounded in-memory cache with per-entry expiry
- http: Plain HTTP page fetching off the event loop
- title_utils: Title slugs and candidate ranking helpers
- logging: loguru configuration
- exceptions: Exception hierarchy
"""

from utils import exceptions, http, title_utils, ttl_cache
from utils.ttl_cache import TTLCache

__all__ = [
    "exceptions",
    "http",
    "title_utils",
    "ttl_cache",
    "TTLCache",
]
