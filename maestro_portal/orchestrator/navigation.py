"""
Three-level navigation: processes -> instances of one process -> one instance.

The view state only holds keys. Everything displayed is looked up in the
cache, so a state never carries a stale copy of a process or an instance.
Each transition replaces the state and re-derives the set of resource keys
the scheduler must poll.
"""

from typing import Callable, Iterable, Optional, Sequence

from maestro_portal.orchestrator.contracts import CollectionView, DetailView, SubCollectionView, ViewState
from maestro_portal.orchestrator.errors import ValidationError
from maestro_portal.orchestrator.records import Instance, Process
from maestro_portal.orchestrator.resources import (
    INSTANCES_KEY,
    PROCESSES_KEY,
    ResourceKey,
    detail_keys,
    instance_key,
)
from maestro_portal.orchestrator.scheduler import PollHandle, PollScheduler

StateWatcher = Callable[[ViewState], None]


def filter_instances(instances: Optional[Iterable[Instance]], process_key: str) -> tuple[Instance, ...]:
    return tuple(inst for inst in instances or () if inst.process_key == process_key)


def resolve_folder_key(
    instance: Optional[Instance],
    processes: Optional[Iterable[Process]],
    default_folder_key: Optional[str] = None,
) -> Optional[str]:
    """Folder for an instance's detail calls and commands.

    The instance's own folder, else the folder of its process, else the default.
    """
    if instance is not None:
        if instance.folder_key:
            return instance.folder_key
        for process in processes or ():
            if process.process_key == instance.process_key and process.folder_key:
                return process.folder_key
    return default_folder_key


class InstanceProjection:
    """Memoized filter_instances.

    Returns the same tuple object while neither the instances snapshot nor the
    process key has changed.
    """

    def __init__(self):
        self._source = None
        self._process_key = None
        self._result: tuple[Instance, ...] = ()

    def __call__(self, instances: Optional[Sequence[Instance]], process_key: str) -> tuple[Instance, ...]:
        if instances is self._source and process_key == self._process_key:
            return self._result
        self._source = instances
        self._process_key = process_key
        self._result = filter_instances(instances, process_key)
        return self._result


def required_keys(state: ViewState) -> frozenset[ResourceKey]:
    # the sub-collection reuses the instances collection, filtered locally
    keys = {PROCESSES_KEY, INSTANCES_KEY}
    if isinstance(state, DetailView):
        keys.update(detail_keys(state.instance_id, state.folder_key))
    return frozenset(keys)


class NavigationStateMachine:
    def __init__(self, scheduler: PollScheduler, status_store, default_folder_key: Optional[str] = None):
        self.scheduler = scheduler
        self.cache = scheduler.cache
        self.status = status_store
        self.default_folder_key = default_folder_key
        self.state: ViewState = CollectionView()
        self._handles: dict[ResourceKey, PollHandle] = {}
        self._watchers: list[StateWatcher] = []
        self._projection = InstanceProjection()
        self._started = False

    # ---- lifecycle ----

    def start(self):
        self._started = True
        self._sync_subscriptions()

    def close(self):
        self._started = False
        for handle in self._handles.values():
            self.scheduler.unsubscribe(handle)
        self._handles.clear()

    def subscribed_keys(self) -> frozenset[ResourceKey]:
        return frozenset(self._handles)

    # ---- transitions ----

    def select_process(self, process: Process) -> bool:
        if not isinstance(self.state, CollectionView):
            return False
        if not process.process_key:
            raise ValidationError("process key is required")
        self._transition(SubCollectionView(process_key=process.process_key))
        return True

    def select_instance(self, instance: Instance) -> bool:
        state = self.state
        if not isinstance(state, SubCollectionView):
            return False
        if not instance.instance_id:
            raise ValidationError("instance id is required")
        if instance.process_key != state.process_key:
            raise ValidationError(
                f"instance {instance.instance_id} belongs to process {instance.process_key}, not {state.process_key}"
            )
        folder_key = self._resolve_folder_key(instance)
        self._transition(DetailView(process_key=state.process_key, instance_id=instance.instance_id, folder_key=folder_key))
        return True

    def back(self) -> bool:
        state = self.state
        if isinstance(state, DetailView):
            self._transition(SubCollectionView(process_key=state.process_key))
            return True
        if isinstance(state, SubCollectionView):
            self._transition(CollectionView())
            return True
        return False

    def _resolve_folder_key(self, instance: Instance) -> str:
        folder_key = resolve_folder_key(instance, self.cache.get(PROCESSES_KEY).payload, self.default_folder_key)
        if not folder_key:
            raise ValidationError(f"no folder key for instance {instance.instance_id}")
        return folder_key

    def _transition(self, new_state: ViewState):
        old_state = self.state
        self.state = new_state
        self.status.log(f"navigation: {old_state.level} -> {new_state.level}")
        if self._started:
            self._sync_subscriptions()
        for callback in list(self._watchers):
            try:
                callback(new_state)
            except Exception as e:
                self.status.error(f"navigation watcher: {type(e).__name__}: {e}")

    def _sync_subscriptions(self):
        wanted = required_keys(self.state)
        current = set(self._handles)
        for key in current - wanted:
            self.scheduler.unsubscribe(self._handles.pop(key))
        # stable order so the first fetches go out collection first
        for key in sorted(wanted - current, key=str):
            self._handles[key] = self.scheduler.subscribe(key)

    # ---- observers ----

    def watch(self, callback: StateWatcher) -> Callable[[], None]:
        self._watchers.append(callback)

        def unwatch():
            if callback in self._watchers:
                self._watchers.remove(callback)

        return unwatch

    # ---- derived views ----

    def _find_process(self, process_key: str) -> Optional[Process]:
        for process in self.cache.get(PROCESSES_KEY).payload or ():
            if process.process_key == process_key:
                return process
        return None

    def selected_process(self) -> Optional[Process]:
        if isinstance(self.state, CollectionView):
            return None
        return self._find_process(self.state.process_key)

    def visible_instances(self) -> tuple[Instance, ...]:
        if isinstance(self.state, CollectionView):
            return ()
        return self._projection(self.cache.get(INSTANCES_KEY).payload, self.state.process_key)

    def selected_instance(self) -> Optional[Instance]:
        """Live instance from the detail fetch, else the copy in the instances collection."""
        state = self.state
        if not isinstance(state, DetailView):
            return None
        live = self.cache.get(instance_key(state.instance_id, state.folder_key)).payload
        if live is not None:
            return live
        for inst in self.visible_instances():
            if inst.instance_id == state.instance_id:
                return inst
        return None
