import asyncio
from dataclasses import dataclass
from itertools import count
from typing import Mapping

from maestro_portal.orchestrator.cache import ResourceCache, Subscription
from maestro_portal.orchestrator.contracts import CacheEntry
from maestro_portal.orchestrator.resources import ResourceKey, ResourceKind, fetcher_for


@dataclass(frozen=True)
class PollHandle:
    key: ResourceKey
    id: int


class PollScheduler:
    """One repeating poll timer per subscribed resource key.

    Ticks only ask the cache to make the key fresh; the cache decides whether
    a fetch actually starts, so a tick during a running fetch does nothing.
    Several handles on the same key share one timer.
    """

    def __init__(
        self,
        cache: ResourceCache,
        registry,
        status_store,
        poll_intervals: Mapping[ResourceKind, float],
        stale_windows: Mapping[ResourceKind, float],
    ):
        self.cache = cache
        self.registry = registry
        self.status = status_store
        self.poll_intervals = dict(poll_intervals)
        self.stale_windows = dict(stale_windows)
        self._timers: dict[ResourceKey, asyncio.Task] = {}
        self._handles: dict[ResourceKey, set[int]] = {}
        self._cache_subs: dict[ResourceKey, Subscription] = {}
        self._ids = count(1)

    def interval_for(self, key: ResourceKey) -> float:
        return self.poll_intervals[key.kind]

    def stale_window_for(self, key: ResourceKey) -> float:
        return self.stale_windows[key.kind]

    def active_keys(self) -> list[ResourceKey]:
        return list(self._timers)

    def subscribe(self, key: ResourceKey) -> PollHandle:
        handle = PollHandle(key=key, id=next(self._ids))
        ids = self._handles.setdefault(key, set())
        ids.add(handle.id)
        if key in self._timers:
            return handle
        self._cache_subs[key] = self.cache.subscribe(key, grace=self.stale_window_for(key))
        self._tick(key)
        self._timers[key] = asyncio.get_running_loop().create_task(self._poll(key), name=f"poll {key}")
        self.status.log(f"scheduler: start {key} every {self.interval_for(key)}s")
        return handle

    def unsubscribe(self, handle: PollHandle):
        ids = self._handles.get(handle.key)
        if not ids or handle.id not in ids:
            return
        ids.discard(handle.id)
        if ids:
            return
        del self._handles[handle.key]
        self._stop(handle.key)

    def _stop(self, key: ResourceKey):
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        sub = self._cache_subs.pop(key, None)
        if sub is not None:
            # an in-flight fetch for this key is left to finish
            self.cache.unsubscribe(sub)
        self.status.log(f"scheduler: stop {key}")

    def _tick(self, key: ResourceKey):
        self.cache.ensure_fresh_nowait(key, fetcher_for(self.registry, key), self.stale_window_for(key))

    async def _poll(self, key: ResourceKey):
        interval = self.interval_for(key)
        while True:
            await asyncio.sleep(interval)
            self._tick(key)

    async def refresh(self, key: ResourceKey) -> CacheEntry:
        return await self.cache.refresh(key, fetcher_for(self.registry, key), self.stale_window_for(key))

    async def close(self):
        timers = list(self._timers.values())
        for key in list(self._timers):
            self._stop(key)
        self._handles.clear()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
