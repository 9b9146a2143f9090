import asyncio
import time
from typing import Callable, Hashable, Mapping, Optional

from maestro_portal.orchestrator.cache import ResourceCache
from maestro_portal.orchestrator.commands import CommandDispatcher
from maestro_portal.orchestrator.contracts import CacheEntry
from maestro_portal.orchestrator.navigation import NavigationStateMachine
from maestro_portal.orchestrator.resources import ResourceKey, ResourceKind, fetcher_for
from maestro_portal.orchestrator.scheduler import PollScheduler


class Portal:
    """Process-wide portal state: one cache, scheduler, dispatcher and navigation.

    Nothing polls until start(); close() cancels every timer and in-flight
    fetch and releases all subscriptions.
    """

    def __init__(
        self,
        registry,
        status_store,
        poll_intervals: Mapping[ResourceKind, float],
        stale_windows: Mapping[ResourceKind, float],
        default_folder_key: Optional[str] = None,
        cancel_token_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.status = status_store
        self.cache = ResourceCache(status_store, clock=clock)
        self.scheduler = PollScheduler(self.cache, registry, status_store, poll_intervals, stale_windows)
        self.dispatcher = CommandDispatcher(
            registry,
            self.cache,
            status_store,
            default_folder_key=default_folder_key,
            confirmation_ttl=cancel_token_ttl,
            clock=clock,
        )
        self.navigation = NavigationStateMachine(self.scheduler, status_store, default_folder_key=default_folder_key)

    async def start(self):
        self.navigation.start()
        self.status.started = True
        self.status.log("portal: started")

    async def close(self):
        self.navigation.close()
        await self.scheduler.close()
        await self.cache.close()
        await self.registry.close()
        self.status.started = False
        self.status.log("portal: closed")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def read(self, key: ResourceKey) -> CacheEntry:
        """Snapshot for ``key``, waiting for its first result if none has arrived."""
        entry = self.cache.get(key)
        if entry.fetch_sequence:
            return entry
        entry = await self.cache.wait(key)
        if entry.fetch_sequence:
            return entry
        return await self.cache.ensure_fresh(key, fetcher_for(self.registry, key), self.scheduler.stale_window_for(key))

    async def refresh_view(self) -> list[Hashable]:
        keys = sorted(self.navigation.subscribed_keys(), key=str)
        await asyncio.gather(*(self.scheduler.refresh(k) for k in keys))
        return keys
