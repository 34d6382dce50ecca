"""
Provider Client Base

Shared HTTP session handling, response caching with TTL and status
counters for the external geo providers.
"""

import aiohttp
import asyncio
import time
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..errors import GeoLookupFailed


class APIStatus(BaseModel):
    """Status of an external provider connection"""
    provider: str
    is_configured: bool = False
    last_request_time: Optional[float] = None
    last_success_time: Optional[float] = None
    request_count: int = 0
    error_count: int = 0
    cache_hit_count: int = 0
    cache_miss_count: int = 0
    avg_response_time: float = 0.0
    last_error: Optional[str] = None


class CacheEntry(BaseModel):
    """Cache entry for provider responses"""
    data: Any
    expires_at: float
    cached_at: float = Field(default_factory=time.time)


class ProviderClient:
    """
    Base for aiohttp provider clients

    Subclasses call `_get_json()` and raise GeoLookupFailed on any
    provider-level error; callers decide how to degrade.
    """

    provider_name = "provider"
    log_tag = "[PROVIDER]"

    def __init__(self, timeout: float = 10, cache_ttl: int = 60, headers: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.headers = headers or {}

        # Response cache
        self._cache: Dict[str, CacheEntry] = {}

        # Session for HTTP requests
        self._session: Optional[aiohttp.ClientSession] = None

        # Status tracking
        self._status = APIStatus(provider=self.provider_name, is_configured=self.is_configured)

        # Request timing
        self._response_times: List[float] = []
        self._max_response_times = 100  # Keep last 100 for averaging

    @property
    def is_configured(self) -> bool:
        return True

    @property
    def status(self) -> APIStatus:
        """Get current provider status"""
        if self._response_times:
            self._status.avg_response_time = sum(self._response_times) / len(self._response_times)
        self._status.is_configured = self.is_configured
        return self._status

    async def initialize(self):
        """Initialize the HTTP session"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout, connect=5)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=self.headers)

    async def close(self):
        """Close the HTTP session"""
        if self._session and not self._session.closed:
            await self._session.close()

    def _get_cached(self, cache_key: str) -> Optional[Any]:
        """Get cached response if valid"""
        entry = self._cache.get(cache_key)
        if entry is not None:
            if time.time() < entry.expires_at:
                self._status.cache_hit_count += 1
                return entry.data
            del self._cache[cache_key]

        self._status.cache_miss_count += 1
        return None

    def _set_cache(self, cache_key: str, data: Any):
        self._cache[cache_key] = CacheEntry(data=data, expires_at=time.time() + self.cache_ttl)

    def clear_cache(self):
        """Clear all cached responses"""
        self._cache.clear()

    def _fail(self, message: str) -> GeoLookupFailed:
        print(f"{self.log_tag} {message}")
        self._status.error_count += 1
        self._status.last_error = message
        return GeoLookupFailed(message, details={'provider': self.provider_name})

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        """
        GET a JSON document

        Raises:
            GeoLookupFailed: HTTP error, unparseable body, timeout or network failure
        """
        await self.initialize()

        start_time = time.time()
        self._status.request_count += 1
        self._status.last_request_time = start_time

        try:
            async with self._session.get(url, params=params) as response:
                self._response_times.append((time.time() - start_time) * 1000)
                if len(self._response_times) > self._max_response_times:
                    self._response_times.pop(0)

                if response.status == 200:
                    try:
                        return await response.json(content_type=None)
                    except ValueError:
                        raise self._fail("Invalid JSON response")
                if response.status in (401, 403):
                    raise self._fail("API key invalid or not authorized")
                if response.status == 429:
                    raise self._fail("Rate limit exceeded")
                raise self._fail(f"API error {response.status}")

        except asyncio.TimeoutError:
            raise self._fail("Request timeout")
        except aiohttp.ClientError as e:
            raise self._fail(f"Network error: {e}")

    def _mark_success(self):
        self._status.last_success_time = time.time()

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        hits = self._status.cache_hit_count
        misses = self._status.cache_miss_count
        total = hits + misses

        return {
            "entries": len(self._cache),
            "hits": hits,
            "misses": misses,
            "hit_rate": (hits / total * 100) if total > 0 else 0,
            "ttl_seconds": self.cache_ttl
        }
