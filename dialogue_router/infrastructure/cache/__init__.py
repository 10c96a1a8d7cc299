from .response_cache import CachePolicy, ResponseCache, normalize_key, should_cache

__all__ = ["CachePolicy", "ResponseCache", "normalize_key", "should_cache"]
