"""
Time-bounded cache for values fetched from slow remote endpoints.

Used for the discovery action list and the proof key pair. A single refresh
is ever in flight per cache: readers that find a fresh value return it,
readers that find a stale value get the stale value while one background
refresh runs, and only a cold cache makes readers wait (all of them on the
same fetch).
"""

import asyncio
import time
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from common.constants import CACHE_FAILURE_BACKOFF_SECONDS
from common.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TtlCache(Generic[T]):
    """
    Single-value TTL cache with single-flight refresh.

    Args:
        name: Label used in log messages
        loader: Coroutine function producing a fresh value
        ttl_seconds: How long a loaded value stays fresh
        clock: Monotonic time source in seconds (injectable for tests)
        failure_backoff_seconds: How long a stale value keeps being served
            after a failed refresh before the next attempt
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[T]],
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        failure_backoff_seconds: float = CACHE_FAILURE_BACKOFF_SECONDS,
    ):
        self.name = name
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._failure_backoff = failure_backoff_seconds

        self._value: Optional[T] = None
        self._has_value = False
        self._expires_at = 0.0
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def has_value(self) -> bool:
        return self._has_value

    def is_fresh(self) -> bool:
        return self._has_value and self._clock() < self._expires_at

    async def get(self) -> T:
        """
        Return the cached value, loading or refreshing it as needed.

        Raises:
            Whatever the loader raises, but only when no value was ever loaded
        """
        if self.is_fresh():
            return self._value

        if self._has_value:
            self._ensure_refresh()
            return self._value

        return await asyncio.shield(self._ensure_refresh())

    async def wait_for_refresh(self) -> None:
        """Wait for an in-flight refresh, if any, to settle."""
        task = self._refresh_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def invalidate(self) -> None:
        """Mark the current value stale so the next read triggers a refresh."""
        self._expires_at = 0.0

    def _ensure_refresh(self) -> asyncio.Task:
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh())
        return self._refresh_task

    async def _refresh(self) -> T:
        try:
            value = await self._loader()
        except Exception as e:
            if not self._has_value:
                logger.error(f"Cache '{self.name}' load failed with no fallback: {e}")
                raise
            self._expires_at = self._clock() + self._failure_backoff
            logger.warning(
                f"Cache '{self.name}' refresh failed, serving stale value "
                f"for another {self._failure_backoff}s: {e}"
            )
            return self._value

        self._value = value
        self._has_value = True
        self._expires_at = self._clock() + self._ttl
        logger.info(f"Cache '{self.name}' refreshed (ttl={self._ttl}s)")
        return value
