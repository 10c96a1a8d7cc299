"""
Response Cache - LRU кэш ответов с TTL.

Ключи нормализуются (регистр, пунктуация, пробелы) перед чтением и записью.
Просроченная запись на чтении считается промахом и удаляется.
"""

import logging
import re
import time
from collections import OrderedDict
from typing import Any, Callable, Optional

from pydantic import BaseModel

logger = logging.getLogger("dialogue-router.infrastructure.response_cache")

STATIC_TTL_SECONDS = 60 * 60
DYNAMIC_TTL_SECONDS = 5 * 60
DEFAULT_TTL_SECONDS = 15 * 60

# Политика кэширования по интентам
NEVER_CACHE_INTENTS = frozenset({"payment", "complaint", "emergency", "cancellation"})
STATIC_INTENTS = frozenset({"pricing_inquiry", "delivery", "document_submit"})
DYNAMIC_INTENTS = frozenset({"booking_inquiry", "general"})

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class CachePolicy(BaseModel):
    cache: bool
    ttl: Optional[float] = None


class CacheEntry:
    __slots__ = ("key", "value", "created_at", "expires_at")

    def __init__(self, key: str, value: Any, created_at: float, expires_at: float):
        self.key = key
        self.value = value
        self.created_at = created_at
        self.expires_at = expires_at


def normalize_key(key: Optional[str]) -> str:
    """Нижний регистр, без пунктуации, схлопнутые пробелы."""
    if not key:
        return ""
    normalized = _PUNCTUATION.sub("", key.casefold())
    return _WHITESPACE.sub(" ", normalized).strip()


def should_cache(intent: Optional[str]) -> CachePolicy:
    """
    Решение о кэшировании по интенту.

    - чувствительные/волатильные интенты не кэшируются
    - статические справочные -> 1 час
    - разговорные/динамические -> 5 минут
    - всё остальное -> 15 минут
    """
    if intent in NEVER_CACHE_INTENTS:
        return CachePolicy(cache=False)
    if intent in STATIC_INTENTS:
        return CachePolicy(cache=True, ttl=STATIC_TTL_SECONDS)
    if intent in DYNAMIC_INTENTS:
        return CachePolicy(cache=True, ttl=DYNAMIC_TTL_SECONDS)
    return CachePolicy(cache=True, ttl=DEFAULT_TTL_SECONDS)


class ResponseCache:
    """
    Ограниченный по размеру LRU кэш с TTL.

    Атрибуты:
        max_size: Максимальное количество записей
        stats: Счётчики hits/misses/sets/evictions

    Пример:
        >>> cache = ResponseCache(max_size=2)
        >>> cache.set("Hello!", {"content": "Hi"}, ttl=60)
        >>> cache.get("hello")
        {'content': 'Hi'}
    """

    def __init__(self, max_size: int = 200, clock: Callable[[], float] = time.monotonic):
        self.max_size = max(1, max_size)
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}

    def get(self, key: str) -> Optional[Any]:
        normalized = normalize_key(key)
        entry = self._entries.get(normalized)

        if entry is None:
            self.stats["misses"] += 1
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[normalized]
            self.stats["misses"] += 1
            logger.debug(f"Cache entry expired: {normalized!r}")
            return None

        # Most recently used в конец
        self._entries.move_to_end(normalized)
        self.stats["hits"] += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        normalized = normalize_key(key)

        if normalized not in self._entries and len(self._entries) >= self.max_size:
            oldest, _ = self._entries.popitem(last=False)
            self.stats["evictions"] += 1
            logger.debug(f"Cache evicted LRU entry: {oldest!r}")

        now = self._clock()
        self._entries[normalized] = CacheEntry(normalized, value, now, now + ttl)
        self._entries.move_to_end(normalized)
        self.stats["sets"] += 1

    def should_cache(self, intent: Optional[str]) -> CachePolicy:
        return should_cache(intent)

    def invalidate(self, pattern: str) -> int:
        """Удалить записи, чьи нормализованные ключи совпадают с regex (без учёта регистра)."""
        regex = re.compile(pattern, re.IGNORECASE)
        doomed = [key for key in self._entries if regex.search(key)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.info(f"Invalidated {len(doomed)} cache entries matching {pattern!r}")
        return len(doomed)

    def clear(self) -> int:
        size = len(self._entries)
        self._entries.clear()
        return size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return normalize_key(key) in self._entries

    def get_stats(self) -> dict:
        lookups = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / lookups * 100) if lookups else 0.0
        return {
            **self.stats,
            "size": len(self._entries),
            "max_size": self.max_size,
            "hit_rate": f"{hit_rate:.1f}%",
        }
