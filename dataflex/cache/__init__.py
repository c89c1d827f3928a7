from .request_cache import CacheEntry, RequestCache
from .ttl_config import TTL, DEFAULT_TTL

__all__ = ["CacheEntry", "RequestCache", "TTL", "DEFAULT_TTL"]
