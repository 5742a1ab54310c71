from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]
Fetcher = Callable[[], Awaitable[Any]]
Subscriber = Callable[[QueryKey, Any], Awaitable[None] | None]
ErrorHandler = Callable[[QueryKey, Exception], None]


@dataclass(slots=True)
class CacheEntry:
    fetcher: Fetcher
    data: Any = None
    fetched_at: float | None = None
    generation: int = 0
    subscribers: list[Subscriber] = field(default_factory=list)


class QueryCache:
    """Tuple-keyed query cache with prefix invalidation.

    Entries go stale ``stale_time_seconds`` after their last fetch (0 means
    every read refetches). Concurrent reads of one key share a single
    in-flight fetch. Invalidating a prefix marks matching entries stale and
    refetches the ones that have subscribers, handing them the fresh data.
    A fetch already in flight when its key is invalidated is superseded: its
    result is never stored or handed to subscribers. Failed background
    refetches go to ``on_error``.
    """

    def __init__(
        self,
        *,
        stale_time_seconds: float = 0.0,
        refetch_on_window_focus: bool = True,
        clock: Callable[[], float] = time.monotonic,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self.stale_time_seconds = stale_time_seconds
        self.refetch_on_window_focus = refetch_on_window_focus
        self.on_error = on_error
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._in_flight: dict[QueryKey, asyncio.Task[Any]] = {}

    async def fetch(self, key: QueryKey, fetcher: Fetcher) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(fetcher=fetcher)
            self._entries[key] = entry
        else:
            entry.fetcher = fetcher

        if not self.is_stale(key):
            return entry.data
        return await self._run(key)

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.fetched_at is None:
            return True
        return self._clock() - entry.fetched_at >= self.stale_time_seconds

    def subscribe(self, key: QueryKey, fetcher: Fetcher, callback: Subscriber) -> Callable[[], None]:
        entry = self._entries.setdefault(key, CacheEntry(fetcher=fetcher))
        entry.subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in entry.subscribers:
                entry.subscribers.remove(callback)

        return unsubscribe

    async def invalidate(self, prefix: QueryKey) -> list[QueryKey]:
        matched = [key for key in self._entries if key[: len(prefix)] == prefix]
        for key in matched:
            entry = self._entries[key]
            entry.fetched_at = None
            entry.generation += 1
            self._in_flight.pop(key, None)
        refetched = [key for key in matched if self._entries[key].subscribers]
        logger.debug("query cache invalidated prefix=%s matched=%s refetch=%s", prefix, len(matched), len(refetched))
        for key in refetched:
            await self._refetch_and_notify(key)
        return refetched

    async def on_window_focus(self) -> list[QueryKey]:
        if not self.refetch_on_window_focus:
            return []
        stale = [key for key, entry in self._entries.items() if entry.subscribers and self.is_stale(key)]
        for key in stale:
            await self._refetch_and_notify(key)
        return stale

    def clear(self) -> None:
        self._entries.clear()
        self._in_flight.clear()

    async def _refetch_and_notify(self, key: QueryKey) -> None:
        try:
            data = await self._run(key)
        except Exception as exc:
            logger.warning("query refetch failed key=%s error=%s", key, exc)
            if self.on_error is not None:
                self.on_error(key, exc)
            return
        entry = self._entries.get(key)
        if entry is None:
            return
        for callback in list(entry.subscribers):
            result = callback(key, data)
            if inspect.isawaitable(result):
                await result

    async def _run(self, key: QueryKey) -> Any:
        while True:
            entry = self._entries[key]
            generation = entry.generation
            task = self._in_flight.get(key)
            if task is None:
                task = asyncio.ensure_future(entry.fetcher())
                self._in_flight[key] = task
                task.add_done_callback(lambda done: self._forget(key, done))
            data = await asyncio.shield(task)
            if self._entries.get(key) is not entry:
                return data
            if entry.generation == generation:
                entry.data = data
                entry.fetched_at = self._clock()
                return data
            # Invalidated while this fetch was running; its data predates the mutation.
            logger.debug("query fetch superseded key=%s", key)
            if not self.is_stale(key):
                return entry.data

    def _forget(self, key: QueryKey, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
