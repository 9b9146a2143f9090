import asyncio

from conftest import GatedFetcher, settle

from maestro_portal.orchestrator.cache import ResourceCache
from maestro_portal.orchestrator.resources import INSTANCES_KEY, PROCESSES_KEY, ResourceKind, instance_key
from maestro_portal.orchestrator.scheduler import PollScheduler


def _every(seconds: float) -> dict:
    return {kind: seconds for kind in ResourceKind}


def _scheduler(status, registry, interval=0.02, stale=0.0, clock=None):
    cache = ResourceCache(status, clock=clock) if clock else ResourceCache(status)
    return PollScheduler(cache, registry, status, _every(interval), _every(stale))


def _count(registry, method: str) -> int:
    return sum(1 for call in registry.calls if call[0] == method)


def test_subscribe_fetches_immediately(status, registry) -> None:
    async def scenario():
        scheduler = _scheduler(status, registry, interval=60.0)
        scheduler.subscribe(PROCESSES_KEY)
        await settle()
        assert _count(registry, "list_processes") == 1
        entry = scheduler.cache.get(PROCESSES_KEY)
        assert [p.process_key for p in entry.payload] == ["invoice-approval", "employee-onboarding"]
        await scheduler.close()

    asyncio.run(scenario())


def test_ticks_repeat_at_interval(status, registry) -> None:
    async def scenario():
        scheduler = _scheduler(status, registry, interval=0.02)
        scheduler.subscribe(INSTANCES_KEY)
        await asyncio.sleep(0.11)
        assert _count(registry, "list_instances") >= 3
        await scheduler.close()

    asyncio.run(scenario())


def test_handles_on_one_key_share_a_timer(status, registry) -> None:
    async def scenario():
        scheduler = _scheduler(status, registry, interval=60.0)
        first = scheduler.subscribe(PROCESSES_KEY)
        second = scheduler.subscribe(PROCESSES_KEY)
        await settle()
        assert first != second
        assert scheduler.active_keys() == [PROCESSES_KEY]
        assert _count(registry, "list_processes") == 1
        assert scheduler.cache.subscriber_count(PROCESSES_KEY) == 1

        scheduler.unsubscribe(first)
        assert scheduler.active_keys() == [PROCESSES_KEY]
        scheduler.unsubscribe(second)
        assert scheduler.active_keys() == []
        assert scheduler.cache.subscriber_count(PROCESSES_KEY) == 0
        await scheduler.close()

    asyncio.run(scenario())


def test_no_ticks_after_last_unsubscribe(status, registry) -> None:
    async def scenario():
        scheduler = _scheduler(status, registry, interval=0.02)
        handle = scheduler.subscribe(INSTANCES_KEY)
        await settle()
        scheduler.unsubscribe(handle)
        scheduler.unsubscribe(handle)
        seen = _count(registry, "list_instances")
        await asyncio.sleep(0.08)
        assert _count(registry, "list_instances") == seen
        await scheduler.close()

    asyncio.run(scenario())


def test_tick_during_running_fetch_starts_nothing(status) -> None:
    async def scenario():
        fetcher = GatedFetcher()

        class SlowRegistry:
            list_instances = fetcher

        scheduler = _scheduler(status, SlowRegistry(), interval=0.01)
        scheduler.subscribe(INSTANCES_KEY)
        await asyncio.sleep(0.06)
        assert fetcher.calls == 1
        assert scheduler.cache.in_flight(INSTANCES_KEY)

        fetcher.release(0, [])
        await asyncio.sleep(0.03)
        assert fetcher.calls >= 2
        await scheduler.close()
        await scheduler.cache.close()

    asyncio.run(scenario())


def test_fresh_entry_skips_tick(status, registry, clock) -> None:
    async def scenario():
        scheduler = _scheduler(status, registry, interval=0.01, stale=5.0, clock=clock)
        scheduler.subscribe(PROCESSES_KEY)
        await asyncio.sleep(0.05)
        assert _count(registry, "list_processes") == 1
        clock.advance(6.0)
        await asyncio.sleep(0.03)
        assert _count(registry, "list_processes") == 2
        await scheduler.close()

    asyncio.run(scenario())


def test_refresh_bypasses_staleness(status, registry, clock) -> None:
    async def scenario():
        scheduler = _scheduler(status, registry, interval=60.0, stale=60.0, clock=clock)
        key = instance_key("inst-002", "folder")
        scheduler.subscribe(key)
        await settle()
        registry.set_status("inst-002", "Running")
        entry = await scheduler.refresh(key)
        assert entry.payload.latest_run_status == "Running"
        assert _count(registry, "get_instance") == 2
        await scheduler.close()

    asyncio.run(scenario())


def test_close_stops_every_timer(status, registry) -> None:
    async def scenario():
        scheduler = _scheduler(status, registry, interval=0.01)
        scheduler.subscribe(PROCESSES_KEY)
        scheduler.subscribe(INSTANCES_KEY)
        await settle()
        await scheduler.close()
        assert scheduler.active_keys() == []
        seen = len(registry.calls)
        await asyncio.sleep(0.05)
        assert len(registry.calls) == seen
        await scheduler.cache.close()

    asyncio.run(scenario())


def test_interval_and_window_follow_kind(status, registry) -> None:
    cache = ResourceCache(status)
    intervals = _every(10.0)
    intervals[ResourceKind.INSTANCE] = 5.0
    windows = _every(8.0)
    windows[ResourceKind.INSTANCE] = 4.0
    scheduler = PollScheduler(cache, registry, status, intervals, windows)
    assert scheduler.interval_for(instance_key("a", "f")) == 5.0
    assert scheduler.stale_window_for(instance_key("a", "f")) == 4.0
    assert scheduler.interval_for(INSTANCES_KEY) == 10.0
