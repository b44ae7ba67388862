"""Short-lived cache for fetched rate quotes.

Two backends share one interface: :class:`InMemoryRateCache` (default,
process-local) and :class:`RedisRateCache` (when ``REDIS_URL`` is set).
Entries older than the TTL are misses.
"""

import hashlib
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from ratecompare.config import settings
from ratecompare.core.models import Channel, PartyComposition, RateQuote

logger = structlog.get_logger(__name__)

KEY_PREFIX = "rates"


@dataclass
class CachedRates:
    """One cached comparison: the quotes and the channels that failed."""

    quotes: List[RateQuote]
    failures: Dict[str, str] = field(default_factory=dict)


class RateCache(ABC):
    """Interface shared by the cache backends."""

    def __init__(self, ttl: int):
        self.ttl = ttl

    @abstractmethod
    async def get_entry(self, key: str) -> Optional[CachedRates]:
        """Return the cached entry, or None on a miss."""

    @abstractmethod
    async def set(
        self,
        key: str,
        quotes: List[RateQuote],
        failures: Optional[Dict[str, str]] = None,
    ) -> None:
        """Store quotes and per-channel failures under ``key``, replacing any entry."""

    async def get(self, key: str) -> Optional[List[RateQuote]]:
        """Return cached quotes, or None on a miss."""
        entry = await self.get_entry(key)
        return entry.quotes if entry is not None else None

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def clear(self) -> int:
        ...

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class InMemoryRateCache(RateCache):
    """Process-local cache with lazy eviction on read."""

    def __init__(self, ttl: int = 900, clock: Callable[[], float] = time.monotonic):
        super().__init__(ttl)
        self._clock = clock
        self._entries: Dict[str, Tuple[CachedRates, float]] = {}

    async def get_entry(self, key: str) -> Optional[CachedRates]:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("cache_miss", key=key)
            return None

        cached, inserted_at = entry
        if self._clock() - inserted_at >= self.ttl:
            del self._entries[key]
            logger.debug("cache_expired", key=key)
            return None

        logger.debug("cache_hit", key=key)
        return CachedRates(list(cached.quotes), dict(cached.failures))

    async def set(
        self,
        key: str,
        quotes: List[RateQuote],
        failures: Optional[Dict[str, str]] = None,
    ) -> None:
        self._entries[key] = (CachedRates(list(quotes), dict(failures or {})), self._clock())
        logger.debug("cache_set", key=key, ttl=self.ttl, quotes=len(quotes))

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)


class RedisRateCache(RateCache):
    """Redis-backed cache storing JSON quote snapshots with ``ex=ttl``.

    Redis errors are logged and treated as misses (or skipped writes), so a
    Redis outage degrades to fetching every time instead of failing.
    """

    def __init__(self, redis_url: str, ttl: int = 900, redis: Optional[Redis] = None):
        super().__init__(ttl)
        self.redis_url = redis_url
        self._redis = redis
        self.logger = logger.bind(service="redis_rate_cache")

    async def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            self.logger.info("redis_connection_created", url=self.redis_url)
        return self._redis

    async def get_entry(self, key: str) -> Optional[CachedRates]:
        try:
            redis = await self._get_redis()
            value = await redis.get(key)
        except RedisError as e:
            self.logger.error("cache_get_failed", key=key, error=str(e))
            return None

        if not value:
            self.logger.debug("cache_miss", key=key)
            return None

        try:
            data = json.loads(value)
            entry = CachedRates(
                quotes=[RateQuote.from_dict(item) for item in data["quotes"]],
                failures={str(k): str(v) for k, v in data.get("failures", {}).items()},
            )
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as e:
            # ArithmeticError covers decimal.InvalidOperation from bad amounts.
            self.logger.warning("cache_entry_corrupt", key=key, error=str(e))
            await self.delete(key)
            return None

        self.logger.debug("cache_hit", key=key)
        return entry

    async def set(
        self,
        key: str,
        quotes: List[RateQuote],
        failures: Optional[Dict[str, str]] = None,
    ) -> None:
        payload = json.dumps(
            {"quotes": [q.to_dict() for q in quotes], "failures": dict(failures or {})}
        )
        try:
            redis = await self._get_redis()
            await redis.set(key, payload, ex=self.ttl)
        except RedisError as e:
            self.logger.error("cache_set_failed", key=key, error=str(e))
            return
        self.logger.debug("cache_set", key=key, ttl=self.ttl, value_length=len(payload))

    async def delete(self, key: str) -> bool:
        try:
            redis = await self._get_redis()
            return bool(await redis.delete(key))
        except RedisError as e:
            self.logger.error("cache_delete_failed", key=key, error=str(e))
            return False

    async def clear(self) -> int:
        """Delete every rate entry (keys under the ``rates:`` prefix)."""
        try:
            redis = await self._get_redis()
            keys = [key async for key in redis.scan_iter(match=f"{KEY_PREFIX}:*", count=100)]
            deleted = await redis.delete(*keys) if keys else 0
        except RedisError as e:
            self.logger.error("cache_clear_failed", error=str(e))
            return 0
        self.logger.info("cache_cleared", keys_deleted=deleted)
        return deleted

    async def health_check(self) -> bool:
        try:
            redis = await self._get_redis()
            await redis.ping()
            return True
        except RedisError as e:
            self.logger.error("redis_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("redis_connection_closed")


def cache_key_for_rates(
    property_id: str,
    channels: Iterable[Union[Channel, str]],
    check_in: date,
    check_out: date,
    party: Optional[PartyComposition] = None,
) -> str:
    """Generate the cache key for one comparison request.

    Channel order does not matter. The default party (two adults) adds
    nothing to the key; any other party composition does.
    """
    names = sorted({c.value if isinstance(c, Channel) else str(c).lower() for c in channels})
    parts = [property_id, ",".join(names), check_in.isoformat(), check_out.isoformat()]
    if party is not None and party != PartyComposition():
        parts.append(f"a{party.adults}c{party.children}i{party.infants}p{party.pets}")
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:32]
    return f"{KEY_PREFIX}:{digest}"


_cache_instance: Optional[RateCache] = None


def get_rate_cache() -> RateCache:
    """Get or create the global rate cache for the configured backend."""
    global _cache_instance

    if _cache_instance is None:
        if settings.REDIS_URL:
            _cache_instance = RedisRateCache(settings.REDIS_URL, ttl=settings.CACHE_TTL_SECONDS)
        else:
            _cache_instance = InMemoryRateCache(ttl=settings.CACHE_TTL_SECONDS)
        logger.info(
            "rate_cache_initialized",
            backend=type(_cache_instance).__name__,
            ttl=settings.CACHE_TTL_SECONDS,
        )

    return _cache_instance
