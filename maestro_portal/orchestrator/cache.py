"""
Resource cache shared by the scheduler, the dispatcher and the views.

Entries are immutable CacheEntry snapshots replaced wholesale, so a reader
never sees half of a write. Every fetch gets a per-key sequence number before
it starts; a result is committed only when its sequence is higher than the one
already stored, which is what keeps a late response from overwriting a newer
one. At most one fetch per key is in flight.

Fetch errors stay inside the cache: they are recorded on the entry next to the
last good payload and the next poll tick retries.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from itertools import count
from typing import Callable, Hashable, Optional

from maestro_portal.orchestrator.contracts import CacheEntry
from maestro_portal.orchestrator.errors import NotFoundError
from maestro_portal.orchestrator.resources import Fetcher

_UNSET = object()

Watcher = Callable[[CacheEntry], None]


@dataclass(frozen=True)
class Subscription:
    key: Hashable
    id: int


class ResourceCache:
    def __init__(self, status_store, clock: Callable[[], float] = time.monotonic, default_grace: float = 30.0):
        self.status = status_store
        self._clock = clock
        self._default_grace = default_grace
        self._entries: dict[Hashable, CacheEntry] = {}
        self._issued: dict[Hashable, int] = {}           # highest sequence handed out
        self._invalidated_at: dict[Hashable, int] = {}   # sequences <= this were started before the last invalidate
        self._tasks: dict[Hashable, asyncio.Task] = {}
        self._subscribers: dict[Hashable, set[int]] = {}
        self._grace: dict[Hashable, float] = {}
        self._evictions: dict[Hashable, asyncio.TimerHandle] = {}
        self._watchers: dict[Hashable, list[Watcher]] = {}
        self._ids = count(1)

    # ---- reads ----

    def get(self, key: Hashable) -> CacheEntry:
        entry = self._entries.get(key)
        return entry if entry is not None else CacheEntry(key=key)

    def keys(self) -> list[Hashable]:
        return list(self._entries)

    def is_stale(self, key: Hashable, stale_window: float) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.last_fetched_at is None:
            return True
        return self._clock() - entry.last_fetched_at > stale_window

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tasks

    def subscriber_count(self, key: Hashable) -> int:
        return len(self._subscribers.get(key, ()))

    # ---- fetching ----

    def next_sequence(self, key: Hashable) -> int:
        seq = self._issued.get(key, 0) + 1
        self._issued[key] = seq
        return seq

    def ensure_fresh_nowait(self, key: Hashable, fetcher: Fetcher, stale_window: float) -> Optional[asyncio.Task]:
        """Start a fetch for ``key`` if it is stale and none is running.

        Returns the fetch task, or None when nothing was started.
        """
        if key in self._tasks or not self.is_stale(key, stale_window):
            return None
        self._grace.setdefault(key, stale_window)
        seq = self.next_sequence(key)
        self._put(replace(self.get(key), in_flight=True))
        task = asyncio.get_running_loop().create_task(self._fetch(key, seq, fetcher), name=f"fetch {key} #{seq}")
        self._tasks[key] = task
        return task

    async def ensure_fresh(self, key: Hashable, fetcher: Fetcher, stale_window: float) -> CacheEntry:
        task = self.ensure_fresh_nowait(key, fetcher, stale_window)
        if task is not None:
            # shielded: a caller giving up does not cancel the fetch
            await asyncio.shield(task)
        return self.get(key)

    async def wait(self, key: Hashable) -> CacheEntry:
        """Wait for the running fetch of ``key``, if any, and return the snapshot."""
        running = self._tasks.get(key)
        if running is not None:
            await asyncio.shield(running)
        return self.get(key)

    async def refresh(self, key: Hashable, fetcher: Fetcher, stale_window: float) -> CacheEntry:
        """Explicit refresh. Joins the running fetch instead of starting a second one."""
        running = self._tasks.get(key)
        if running is not None:
            await asyncio.shield(running)
            return self.get(key)
        self.invalidate(key)
        return await self.ensure_fresh(key, fetcher, stale_window)

    async def _fetch(self, key: Hashable, seq: int, fetcher: Fetcher):
        try:
            result = await fetcher()
        except asyncio.CancelledError:
            self._release_fetch(key)
            self._notify(key)
            raise
        except NotFoundError as e:
            self._release_fetch(key)
            self.status.log(f"cache: {key} #{seq} not found")
            applied = self.commit(key, seq, payload=None, error=e)
        except Exception as e:
            self._release_fetch(key)
            self.status.log(f"cache: {key} #{seq} failed {type(e).__name__}: {e}")
            applied = self.commit(key, seq, error=e)
        else:
            self._release_fetch(key)
            applied = self.commit(key, seq, payload=result)
        if not applied:
            self._notify(key)
        if not self._subscribers.get(key) and key not in self._evictions:
            self._schedule_eviction(key)

    def _release_fetch(self, key: Hashable):
        self._tasks.pop(key, None)
        entry = self._entries.get(key)
        if entry is not None and entry.in_flight:
            self._entries[key] = replace(entry, in_flight=False)

    # ---- writes ----

    def commit(self, key: Hashable, sequence: int, payload=_UNSET, error: Optional[BaseException] = None) -> bool:
        """Store a fetch result unless a result with an equal or higher sequence is already stored.

        Leaving ``payload`` out keeps the previous payload (used for failures).
        Returns True when the result was stored.
        """
        current = self.get(key)
        if sequence <= current.fetch_sequence:
            self.status.log(f"cache: {key} discarded #{sequence} (have #{current.fetch_sequence})")
            return False
        if sequence > self._issued.get(key, 0):
            self._issued[key] = sequence
        # a fetch started before the last invalidate must not count as fresh
        fresh = sequence > self._invalidated_at.get(key, 0)
        entry = replace(
            current,
            payload=current.payload if payload is _UNSET else payload,
            fetch_sequence=sequence,
            last_fetched_at=self._clock() if fresh else None,
            error=error,
            in_flight=key in self._tasks,
        )
        self._put(entry)
        self._notify(key)
        return True

    def invalidate(self, key: Hashable):
        """Force the next ensure_fresh to refetch. The payload stays visible meanwhile."""
        entry = self._entries.get(key)
        if entry is None:
            # nothing cached or in flight, the next fetch is fresh anyway
            return
        self._invalidated_at[key] = self._issued.get(key, 0)
        self.status.log(f"cache: invalidate {key}")
        self._put(replace(entry, last_fetched_at=None))
        self._notify(key)

    def _put(self, entry: CacheEntry):
        self._entries[entry.key] = entry

    # ---- subscriptions & eviction ----

    def subscribe(self, key: Hashable, grace: Optional[float] = None) -> Subscription:
        sub = Subscription(key=key, id=next(self._ids))
        self._subscribers.setdefault(key, set()).add(sub.id)
        if grace is not None:
            self._grace[key] = grace
        pending = self._evictions.pop(key, None)
        if pending is not None:
            pending.cancel()
        if key not in self._entries:
            self._put(CacheEntry(key=key))
        return sub

    def unsubscribe(self, sub: Subscription):
        ids = self._subscribers.get(sub.key)
        if not ids or sub.id not in ids:
            return
        ids.discard(sub.id)
        if ids:
            return
        del self._subscribers[sub.key]
        self._schedule_eviction(sub.key)

    def _schedule_eviction(self, key: Hashable):
        grace = self._grace.get(key, self._default_grace)
        loop = asyncio.get_running_loop()
        self._evictions[key] = loop.call_later(grace, self._evict, key)

    def _evict(self, key: Hashable):
        self._evictions.pop(key, None)
        if self._subscribers.get(key):
            return
        if key in self._tasks:
            # evicted once the running fetch has written its result
            return
        self._grace.pop(key, None)
        self._invalidated_at.pop(key, None)
        self._issued.pop(key, None)
        if self._entries.pop(key, None) is None:
            return
        self.status.log(f"cache: evicted {key}")
        self._notify(key)

    # ---- change notification ----

    def watch(self, key: Hashable, callback: Watcher) -> Callable[[], None]:
        self._watchers.setdefault(key, []).append(callback)

        def unwatch():
            callbacks = self._watchers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._watchers.pop(key, None)

        return unwatch

    def _notify(self, key: Hashable):
        entry = self.get(key)
        for callback in list(self._watchers.get(key, ())):
            try:
                callback(entry)
            except Exception as e:
                self.status.error(f"cache watcher for {key}: {type(e).__name__}: {e}")

    # ---- teardown ----

    async def close(self):
        for handle in self._evictions.values():
            handle.cancel()
        self._evictions.clear()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._subscribers.clear()
        self._watchers.clear()
