"""Placeholder value cache.

Memoizes callback results for placeholders registered with a nonzero
cache duration. Entries are keyed by (namespace, token, context identity,
param), bounded by an LRU capacity, and dropped lazily once expired.

Concurrent misses on one key are collapsed: synchronous callers queue on a
per-key lock, async callers await one shared task. A synchronous and an
asynchronous caller racing on the same key may both compute the value;
the later result simply overwrites the earlier one.
"""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from placeholder_api.dispatch import CallbackDispatcher
from placeholder_api.types import (
    SERVER_IDENTITY,
    CacheKeyStrategy,
    ContextKind,
    PlaceholderContext,
    PlaceholderDefinition,
)

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, str, str]  # namespace, token, identity, param


@dataclass
class CacheEntry:
    value: str
    computed_at: float


@dataclass
class _KeyLock:
    lock: threading.Lock
    users: int = 0


def make_cache_key(
    definition: PlaceholderDefinition, context: PlaceholderContext, param: str
) -> CacheKey:
    """Build the cache key for one resolution.

    Server placeholders and SHARED definitions keep one entry per
    token+param; other context-bound placeholders keep one per context.
    """
    if (
        definition.context_kind is ContextKind.SERVER
        or definition.cache_key_strategy is CacheKeyStrategy.SHARED
    ):
        identity = SERVER_IDENTITY
    else:
        identity = context.identity
    return (definition.namespace, definition.token, identity, param)


class PlaceholderCache:
    """TTL + LRU cache in front of the callback dispatcher.

    Args:
        dispatcher: Dispatcher used on a miss
        capacity: Maximum number of stored entries
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        dispatcher: CallbackDispatcher,
        capacity: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._dispatcher = dispatcher
        self._capacity = max(1, capacity)
        self._clock = clock
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._key_locks: dict[CacheKey, _KeyLock] = {}
        self._pending: dict[CacheKey, asyncio.Task] = {}

    # =========================================================================
    # Storage
    # =========================================================================

    def _get(self, key: CacheKey, duration: int) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.computed_at >= duration:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def _put(self, key: CacheKey, value: str) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("[CACHE] Evicted %s", evicted)

    def _acquire_key_lock(self, key: CacheKey) -> _KeyLock:
        with self._lock:
            key_lock = self._key_locks.get(key)
            if key_lock is None:
                key_lock = self._key_locks[key] = _KeyLock(threading.Lock())
            key_lock.users += 1
        return key_lock

    def _release_key_lock(self, key: CacheKey, key_lock: _KeyLock) -> None:
        with self._lock:
            key_lock.users -= 1
            if key_lock.users == 0:
                self._key_locks.pop(key, None)

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve(
        self,
        definition: PlaceholderDefinition,
        context: PlaceholderContext,
        param: str,
        marker_text: str,
    ) -> str:
        """Get a placeholder value, invoking the callback on miss or expiry."""
        if not definition.is_cacheable:
            return self._dispatcher.invoke(definition, param, context, marker_text).value

        key = make_cache_key(definition, context, param)
        duration = definition.cache_duration_seconds

        cached = self._get(key, duration)
        if cached is not None:
            logger.debug("[CACHE] Hit: %s", marker_text)
            return cached

        key_lock = self._acquire_key_lock(key)
        try:
            with key_lock.lock:
                # Another thread may have filled the entry while we waited
                cached = self._get(key, duration)
                if cached is not None:
                    return cached
                result = self._dispatcher.invoke(definition, param, context, marker_text)
                if result.ok:
                    self._put(key, result.value)
                return result.value
        finally:
            self._release_key_lock(key, key_lock)

    async def aresolve(
        self,
        definition: PlaceholderDefinition,
        context: PlaceholderContext,
        param: str,
        marker_text: str,
    ) -> str:
        """Async counterpart of resolve()."""
        if not definition.is_cacheable:
            result = await self._dispatcher.ainvoke(definition, param, context, marker_text)
            return result.value

        key = make_cache_key(definition, context, param)
        cached = self._get(key, definition.cache_duration_seconds)
        if cached is not None:
            logger.debug("[CACHE] Hit: %s", marker_text)
            return cached

        loop = asyncio.get_running_loop()
        task = self._pending.get(key)
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(self._fill(key, definition, context, param, marker_text))
            self._pending[key] = task
        return await asyncio.shield(task)

    async def _fill(
        self,
        key: CacheKey,
        definition: PlaceholderDefinition,
        context: PlaceholderContext,
        param: str,
        marker_text: str,
    ) -> str:
        try:
            result = await self._dispatcher.ainvoke(definition, param, context, marker_text)
            if result.ok:
                self._put(key, result.value)
            return result.value
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self, definition: PlaceholderDefinition) -> int:
        """Drop every entry of one placeholder. Returns the count."""
        return self._invalidate_where(
            lambda k: k[0] == definition.namespace and k[1] == definition.token
        )

    def invalidate_namespace(self, namespace: str) -> int:
        """Drop every entry of a placeholder namespace. Returns the count."""
        return self._invalidate_where(lambda k: k[0] == namespace)

    def _invalidate_where(self, predicate) -> int:
        with self._lock:
            keys = [k for k in self._entries if predicate(k)]
            for k in keys:
                del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity
