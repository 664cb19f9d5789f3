"""
Company-scoped Cache for Pincode and Rate Card Lookups.

IMPORTANT: All cache keys MUST include company_id. Rate cards and the
pincode master are both configured per company, so a key without the
company would leak one merchant's pricing into another's quotes.

Supports:
1. Redis (preferred for production)
2. In-memory backend (for development/testing)

Cached documents are stored under a generation number. Invalidation
bumps the generation before evicting, so a read-through fill that
started before the invalidation lands under a key nobody reads again.

Usage:
    cache = PricingCacheService(InMemoryCache())

    generation = await cache.get_pincode_generation()
    await cache.set_pincode(company_id, "110001", info.model_dump(mode="json"), generation)
    data = await cache.get_pincode(company_id, "110001", generation)

    # Editor writes evict before returning
    await cache.invalidate_rate_cards(company_id)
"""
import json
from typing import Any, Optional, Dict, Tuple
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

from rate_engine.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Scope of entries that belong to no single company (shared pincode catalogue)
SHARED_SCOPE = "_shared"


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (seconds)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        pass

    @abstractmethod
    async def clear_pattern(self, pattern: str) -> int:
        """Clear all keys matching pattern."""
        pass

    @abstractmethod
    async def incr(self, key: str, ttl: int = 3600) -> Optional[int]:
        """Atomically increment an integer counter; None on failure."""
        pass


class InMemoryCache(CacheBackend):
    """
    In-memory cache for development and tests.

    Not shared across processes; every worker keeps its own copy.
    """

    def __init__(self):
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > datetime.now(timezone.utc):
                    return value
                else:
                    del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = (value, expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern (simple prefix match)."""
        async with self._lock:
            prefix = pattern.rstrip('*')
            keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    async def incr(self, key: str, ttl: int = 3600) -> Optional[int]:
        async with self._lock:
            now = datetime.now(timezone.utc)
            current = 0
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > now:
                    current = int(value)
            current += 1
            self._cache[key] = (current, now + timedelta(seconds=ttl))
            return current


class RedisCache(CacheBackend):
    """
    Redis cache backend for production.

    Reads degrade to a miss on connection errors. Writes and deletes
    report failure through their return value so invalidation can be
    checked by the caller.
    """

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client = None

    async def _get_client(self):
        if self._client is None:
            import redis.asyncio as redis
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._get_client()
            value = await client.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        try:
            client = await self._get_client()
            await client.set(key, json.dumps(value), ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            client = await self._get_client()
            await client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def clear_pattern(self, pattern: str) -> int:
        try:
            client = await self._get_client()
            cursor = 0
            deleted = 0
            while True:
                cursor, keys = await client.scan(cursor, match=pattern, count=100)
                if keys:
                    await client.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            return deleted
        except Exception as e:
            logger.warning(f"Redis clear_pattern failed for {pattern}: {e}")
            return -1

    async def incr(self, key: str, ttl: int = 3600) -> Optional[int]:
        try:
            client = await self._get_client()
            async with client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, ttl)
                value, _ = await pipe.execute()
            return int(value)
        except Exception as e:
            logger.warning(f"Redis incr failed for {key}: {e}")
            return None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class PricingCacheService:
    """
    Read-through cache in front of the pincode master and the rate card store.

    Cache keys follow the format:

        {namespace}:{company_id}:{resource_type}:{identifier}:{generation}

    Examples:
        rates:acme:pincode:110001:0
        rates:acme:rate_cards:active:3
        rates:acme:generation:rate_cards
        rates:_shared:generation:pincodes

    Reads and writes that take longer than CACHE_FETCH_TIMEOUT_SECONDS
    are abandoned; a slow read is treated as a miss so the caller falls
    through to the database.
    """

    def __init__(
        self,
        backend: CacheBackend,
        namespace: Optional[str] = None,
        config: Optional[Settings] = None,
    ):
        self._config = config or default_settings
        self._backend = backend
        self._namespace = namespace or self._config.CACHE_NAMESPACE
        self._timeout = self._config.CACHE_FETCH_TIMEOUT_SECONDS

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def _make_key(self, company_id: str, key: str) -> str:
        """Create namespaced, company-isolated cache key."""
        if not company_id:
            logger.warning(f"Cache key created without company_id: {key}")
        return f"{self._namespace}:{company_id}:{key}"

    async def _fetch(self, full_key: str) -> Tuple[bool, Optional[Any]]:
        """(answered, value); answered is False when the backend timed out."""
        try:
            value = await asyncio.wait_for(self._backend.get(full_key), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Cache read timed out after {self._timeout}s: {full_key}")
            return False, None
        if value is None:
            logger.debug(f"Cache miss: {full_key}")
        else:
            logger.debug(f"Cache hit: {full_key}")
        return True, value

    async def get(self, company_id: str, key: str) -> Optional[Any]:
        _, value = await self._fetch(self._make_key(company_id, key))
        return value

    async def set(self, company_id: str, key: str, value: Any, ttl: int = 3600) -> bool:
        full_key = self._make_key(company_id, key)
        try:
            return await asyncio.wait_for(
                self._backend.set(full_key, value, ttl), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Cache write timed out after {self._timeout}s: {full_key}")
            return False

    async def invalidate(self, company_id: str, key: str) -> bool:
        return await self._backend.delete(self._make_key(company_id, key))

    async def clear_pattern(self, company_id: str, pattern: str) -> int:
        return await self._backend.clear_pattern(self._make_key(company_id, pattern))

    # ==================== Generations ====================

    async def _get_generation(self, company_id: str, key: str) -> Optional[int]:
        """Current generation, 0 if never bumped, None if the backend did not answer."""
        answered, value = await self._fetch(self._make_key(company_id, key))
        if not answered:
            return None
        return int(value or 0)

    async def _bump_generation(self, company_id: str, key: str) -> bool:
        value = await self._backend.incr(
            self._make_key(company_id, key), self._config.CACHE_GENERATION_TTL
        )
        return value is not None

    # ==================== Pincode Cache ====================

    # Lives in the shared scope: a shared catalogue edit affects every company
    _PINCODE_GENERATION_KEY = "generation:pincodes"

    async def get_pincode_generation(self) -> Optional[int]:
        return await self._get_generation(SHARED_SCOPE, self._PINCODE_GENERATION_KEY)

    def _pincode_key(self, pincode: str, generation: int) -> str:
        return f"pincode:{pincode}:{generation}"

    async def get_pincode(
        self,
        company_id: str,
        pincode: str,
        generation: int = 0
    ) -> Optional[dict]:
        return await self.get(company_id, self._pincode_key(pincode, generation))

    async def set_pincode(
        self,
        company_id: str,
        pincode: str,
        data: dict,
        generation: int = 0,
        ttl: Optional[int] = None
    ) -> bool:
        ttl = ttl or self._config.ZONE_CACHE_TTL
        return await self.set(company_id, self._pincode_key(pincode, generation), data, ttl)

    async def invalidate_pincodes(self, company_id: str, pincode: Optional[str] = None) -> int:
        """
        Evict a company's cached lookups after a write to its own rows.

        Pass no pincode when a range row changed.
        """
        if pincode:
            return await self.clear_pattern(company_id, f"pincode:{pincode}:*")
        return await self.clear_pattern(company_id, "pincode:*")

    async def invalidate_shared_pincodes(self) -> bool:
        """
        Retire every company's cached lookups after a shared catalogue write.

        Entries are not deleted; they stop being read and expire with
        ZONE_CACHE_TTL. Returns False if the generation could not be bumped.
        """
        return await self._bump_generation(SHARED_SCOPE, self._PINCODE_GENERATION_KEY)

    # ==================== Rate Card Cache ====================

    # Must not start with "rate_card" or eviction would reset it
    _RATE_CARD_GENERATION_KEY = "generation:rate_cards"

    async def get_rate_card_generation(self, company_id: str) -> Optional[int]:
        return await self._get_generation(company_id, self._RATE_CARD_GENERATION_KEY)

    def _active_rate_cards_key(self, generation: int) -> str:
        return f"rate_cards:active:{generation}"

    async def get_rate_cards(self, company_id: str, generation: int = 0) -> Optional[list]:
        """Candidate (ACTIVE, not deleted) rate cards of a company."""
        return await self.get(company_id, self._active_rate_cards_key(generation))

    async def set_rate_cards(
        self,
        company_id: str,
        data: list,
        generation: int = 0,
        ttl: Optional[int] = None
    ) -> bool:
        ttl = ttl or self._config.RATE_CARD_CACHE_TTL
        return await self.set(company_id, self._active_rate_cards_key(generation), data, ttl)

    def _rate_card_key(self, rate_card_id: str, generation: int) -> str:
        return f"rate_card:{rate_card_id}:{generation}"

    async def get_rate_card(
        self,
        company_id: str,
        rate_card_id: str,
        generation: int = 0
    ) -> Optional[dict]:
        return await self.get(company_id, self._rate_card_key(rate_card_id, generation))

    async def set_rate_card(
        self,
        company_id: str,
        rate_card_id: str,
        data: dict,
        generation: int = 0,
        ttl: Optional[int] = None
    ) -> bool:
        ttl = ttl or self._config.RATE_CARD_CACHE_TTL
        return await self.set(
            company_id, self._rate_card_key(rate_card_id, generation), data, ttl
        )

    async def invalidate_rate_cards(self, company_id: str) -> bool:
        """
        Retire and evict every rate card key of a company.

        Returns False if the backend could not complete the eviction.
        """
        if not await self._bump_generation(company_id, self._RATE_CARD_GENERATION_KEY):
            return False
        # "rate_card*" covers both the candidate list and single documents
        cleared = await self.clear_pattern(company_id, "rate_card*")
        return cleared >= 0


def build_cache(config: Optional[Settings] = None) -> PricingCacheService:
    """Build a cache service with the backend selected by configuration."""
    config = config or default_settings
    if config.REDIS_URL and config.CACHE_ENABLED:
        backend = RedisCache(config.REDIS_URL)
        logger.info("Cache initialized with Redis backend")
    else:
        backend = InMemoryCache()
        logger.info("Cache initialized with in-memory backend")
    return PricingCacheService(backend, config=config)
