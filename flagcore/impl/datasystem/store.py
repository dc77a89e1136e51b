"""
Store facade for the data system.

This module provides the store that serves data to the evaluator. It keeps the
in-memory index that is the source of truth once data has arrived, writes
through to an optional persistent store, applies change sets, and reports
which flags were affected by each change.
"""

import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from flagcore.feature_store import (
    InMemoryFeatureStore,
    StoreSnapshot,
    _FeatureStoreDataSetSorter
)
from flagcore.impl.datasource.status import DataStoreUpdateSinkImpl
from flagcore.impl.dependency_tracker import DependencyTracker, KindAndKey
from flagcore.impl.listeners import Listeners
from flagcore.impl.repeating_task import RepeatingTask
from flagcore.impl.rwlock import ReadWriteLock
from flagcore.impl.util import log
from flagcore.interfaces import (
    Change,
    ChangeSet,
    ChangeType,
    DataStoreStatus,
    FeatureStore,
    FlagChange,
    IntentCode,
    Selector,
    SelectorStore
)
from flagcore.versioned_data_kind import ALL_KINDS, FEATURES, SEGMENTS, VersionedDataKind

Collections = Dict[VersionedDataKind, Dict[str, Any]]


class PersistentStoreWrapper:
    """
    Provides the behavior the client needs around a persistent :class:`FeatureStore`: data passed
    to ``init`` is sorted so that dependencies are written first, a failed write is retried once
    and then logged, and failures are reported through the data store status.

    If the store supports monitoring (it has ``is_monitoring_enabled`` and ``is_available``), an
    outage is followed by polling ``is_available`` until the store comes back, at which point the
    status becomes available and stale so that the client rewrites its data.
    """

    def __init__(self, store: FeatureStore, store_update_sink: DataStoreUpdateSinkImpl):
        self.store = store
        self.__store_update_sink = store_update_sink
        self.__monitoring_enabled = self.is_monitoring_enabled()

        # Covers the following variables
        self.__lock = ReadWriteLock()
        self.__last_available = True
        self.__poller: Optional[RepeatingTask] = None

    def init(self, all_data: Collections) -> bool:
        sorted_data = _FeatureStoreDataSetSorter.sort_all_collections(all_data)
        return self.__write("init", lambda: self.store.init(sorted_data)) is not None

    def upsert(self, kind: VersionedDataKind, item: Any) -> bool:
        return bool(self.__write("upsert of %s '%s'" % (kind.namespace, item['key']), lambda: self.store.upsert(kind, item)))

    def get(self, kind: VersionedDataKind, key: str, callback: Callable[[Any], Any] = lambda x: x) -> Any:
        return self.__read(lambda: self.store.get(kind, key, callback))

    def all(self, kind: VersionedDataKind, callback: Callable[[Any], Any] = lambda x: x) -> Any:
        return self.__read(lambda: self.store.all(kind, callback))

    @property
    def initialized(self) -> bool:
        return self.__read(lambda: self.store.initialized)

    def close(self):
        with self.__lock.write():
            poller, self.__poller = self.__poller, None
        if poller is not None:
            poller.stop()
        if callable(getattr(self.store, 'close', None)):
            self.store.close()

    def __write(self, description: str, fn: Callable[[], Any]) -> Any:
        """
        Returns the result of ``fn`` (True if it returned None), or None if it failed twice.
        """
        for attempt in (1, 2):
            try:
                result = fn()
                if not self.__monitoring_enabled:
                    self.__update_availability(True)
                return True if result is None else result
            except Exception as e:
                if attempt == 1:
                    log.debug("Persistent store %s failed, retrying: %s", description, e)
                    continue
                log.warning("Persistent store %s failed after retry; the in-memory data is still current: %s", description, e)
                self.__update_availability(False)
        return None

    def __read(self, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception:
            self.__update_availability(False)
            raise

    def __update_availability(self, available: bool):
        with self.__lock.write():
            if available == self.__last_available:
                return
            self.__last_available = available

        if available:
            log.warning("Persistent store is available again")

        self.__store_update_sink.update_status(DataStoreStatus(available, available))

        if available:
            with self.__lock.write():
                poller, self.__poller = self.__poller, None
            if poller is not None:
                poller.stop()
            return

        if not self.__monitoring_enabled:
            return

        log.warning("Detected persistent store unavailability; updates will be cached until it recovers")
        task = RepeatingTask("flagcore.check-availability", 0.5, 0, self.__check_availability)

        with self.__lock.write():
            self.__poller = task
        task.start()

    def __check_availability(self):
        try:
            if self.store.is_available():  # type: ignore
                self.__update_availability(True)
        except Exception as e:
            log.error("Unexpected error from data store status function: %s", e)

    def is_monitoring_enabled(self) -> bool:
        """
        The wrapped store supports monitoring only if it has a callable ``is_monitoring_enabled``
        that returns True and an ``is_available`` method for checking recovery.
        """
        monitoring_enabled = getattr(self.store, 'is_monitoring_enabled', None)
        if not callable(monitoring_enabled):
            return False

        if not callable(getattr(self.store, 'is_available', None)):
            return False

        return bool(monitoring_enabled())


class _PersistentStoreView:
    """
    Serves reads straight from the persistent store until the in-memory index has data.
    """

    def __init__(self, store: PersistentStoreWrapper):
        self.__store = store

    @property
    def initialized(self) -> bool:
        return self.__store.initialized

    def get(self, kind: VersionedDataKind, key: str) -> Any:
        return self.__store.get(kind, key)

    def all(self, kind: VersionedDataKind) -> Dict[str, Any]:
        return self.__store.all(kind)

    def get_flag(self, key: str):
        return self.__store.get(FEATURES, key)

    def get_segment(self, key: str):
        return self.__store.get(SEGMENTS, key)


class Store(SelectorStore):
    """
    Store serves requests for data from the evaluation algorithm and is the
    only place that data enters the client.

    At any given moment one of two stores is active: in-memory, or persistent.
    Once the in-memory store has data, the persistent store is no longer read
    from; it is only written to, if it is writable.

    Every item has a version. An upsert or delete only takes effect if its
    version is greater than the stored one; deletions leave a placeholder so
    that an older put arriving later cannot resurrect the item.
    """

    def __init__(
        self,
        flag_change_listeners: Listeners,
        change_set_listeners: Listeners,
        selector_store: Optional[SelectorStore] = None,
    ):
        self._persistent_store: Optional[PersistentStoreWrapper] = None
        self._persistent_store_writable = False

        # Source of truth for flag evaluations once initialized
        self._memory_store = InMemoryFeatureStore()

        self._dependency_tracker = DependencyTracker()

        self._flag_change_listeners = flag_change_listeners
        self._change_set_listeners = change_set_listeners

        self._selector_store = selector_store

        # True if the data in the memory store may be persisted to the persistent store
        self._persist = False

        self._memory_active = True

        # Identifies the current data
        self._selector = Selector.no_selector()

        # Serializes writers; readers go through immutable snapshots
        self._lock = threading.RLock()

    def with_persistence(self, persistent_store: PersistentStoreWrapper, writable: bool) -> "Store":
        """
        Configures the store with a persistent store for read-only or read-write access. Until
        the in-memory store has data, reads are served by the persistent store.
        """
        with self._lock:
            self._persistent_store = persistent_store
            self._persistent_store_writable = writable
            self._memory_active = False

        return self

    def restore(self):
        """
        Loads the data saved by a previous run, if there is a saved selector and the persistent
        store has data to go with it. After this, the saved selector is offered to the data
        source so that the server can send only what changed.
        """
        if self._selector_store is None:
            return
        try:
            selector = self._selector_store.selector()
        except Exception as e:
            log.warning("Could not read the saved selector: %s", e)
            return
        if selector is None or not selector.is_defined():
            return
        persistent = self._persistent_store
        if persistent is None:
            log.info("Ignoring saved selector because there is no persistent store to restore data from")
            return
        try:
            if not persistent.initialized:
                return
            data = {kind: persistent.all(kind) for kind in ALL_KINDS}
        except Exception as e:
            log.warning("Could not restore data from the persistent store: %s", e)
            return

        with self._lock:
            self._memory_store.init(data)
            self._reset_dependency_tracker(data)
            self._selector = selector
            self._memory_active = True
        log.info("Restored data for selector %s from the persistent store", selector.state)

    def selector(self) -> Selector:
        """Returns the selector of the data currently held."""
        with self._lock:
            return self._selector

    def close(self) -> Optional[Exception]:
        """Close the store and any persistent store if configured."""
        with self._lock:
            if self._persistent_store is not None:
                try:
                    self._persistent_store.close()
                except Exception as e:
                    return e
        return None

    def snapshot(self):
        """
        Returns a consistent read view for one evaluation: an immutable
        :class:`flagcore.feature_store.StoreSnapshot` once the in-memory store is active,
        otherwise a view over the persistent store.
        """
        if self._memory_active:
            return self._memory_store.snapshot()
        return _PersistentStoreView(self._persistent_store)  # type: ignore

    def get(self, kind: VersionedDataKind, key: str) -> Any:
        return self.snapshot().get(kind, key)

    def all(self, kind: VersionedDataKind) -> Dict[str, Any]:
        return self.snapshot().all(kind)

    @property
    def initialized(self) -> bool:
        return self.snapshot().initialized

    def init(self, all_data: Collections, persist: bool = True):
        """
        Replaces the entire data set. Readers see either the old or the new data, never a mix.
        """
        with self._lock:
            self._set_basis(all_data, persist)

    def upsert(self, kind: VersionedDataKind, item: Any, persist: bool = True) -> bool:
        """
        Adds or replaces an item if its version is greater than the stored version.

        :return: True if the item was stored
        """
        with self._lock:
            return self._upsert(kind, kind.decode(item), persist)

    def delete(self, kind: VersionedDataKind, key: str, version: int, persist: bool = True) -> bool:
        return self.upsert(kind, {'key': key, 'version': version, 'deleted': True}, persist)

    def apply(self, change_set: ChangeSet, persist: bool = True) -> bool:
        """
        Applies a change set. A full transfer replaces all data; incremental changes are applied
        one by one with the version check, dependencies first. An individual change that cannot
        be decoded is logged and skipped. The selector of a successfully applied change set is
        saved.

        :return: False if the change set could not be applied
        """
        try:
            with self._lock:
                if change_set.intent_code == IntentCode.TRANSFER_NONE:
                    if change_set.selector.is_defined():
                        self._set_selector(change_set.selector)
                    return True

                collections = self._changes_to_store_data(change_set.changes)

                if change_set.intent_code == IntentCode.TRANSFER_FULL:
                    self._set_basis(collections, persist)
                elif change_set.intent_code == IntentCode.TRANSFER_CHANGES:
                    self._apply_delta(collections, persist)

                self._set_selector(change_set.selector)
        except Exception as e:
            log.exception("Store: couldn't apply changeset: %s", e)
            return False

        self._change_set_listeners.notify(change_set)
        return True

    def commit(self) -> Optional[Exception]:
        """
        Writes everything in the memory store to the persistent store, if it is writable. Used
        when a persistent store recovers from an outage and may hold stale data.
        """
        with self._lock:
            if self._should_persist():
                try:
                    all_data = {kind: self._memory_store.all(kind) for kind in ALL_KINDS}
                    if not self._persistent_store.init(all_data):  # type: ignore
                        return Exception("persistent store rejected the data")
                except Exception as e:
                    return e
        return None

    def _set_basis(self, collections: Collections, persist: bool):
        old_data: Optional[Collections] = None
        if self._flag_change_listeners.has_listeners():
            snapshot = self._memory_store.snapshot()
            old_data = {kind: snapshot.all(kind) for kind in ALL_KINDS}

        sorted_data = _FeatureStoreDataSetSorter.sort_all_collections(collections)
        self._memory_store.init(sorted_data)
        self._memory_active = True
        self._persist = persist

        self._reset_dependency_tracker(sorted_data)

        if old_data is not None:
            self._send_change_events(self._compute_changed_items_for_full_data_set(old_data, sorted_data))

        if self._should_persist():
            self._persistent_store.init(sorted_data)  # type: ignore

    def _apply_delta(self, collections: Collections, persist: bool):
        self._persist = persist
        has_listeners = self._flag_change_listeners.has_listeners()
        affected_items: Set[KindAndKey] = set()

        sorted_data = _FeatureStoreDataSetSorter.sort_all_collections(collections)
        for kind, items in sorted_data.items():
            for key, item in items.items():
                if not self._upsert(kind, item, persist, notify=False):
                    continue
                if has_listeners:
                    self._dependency_tracker.add_affected_items(affected_items, KindAndKey(kind=kind, key=key))

        if affected_items:
            self._send_change_events(affected_items)

    def _upsert(self, kind: VersionedDataKind, item: Any, persist: bool, notify: bool = True) -> bool:
        if not self._memory_store.upsert(kind, item):
            log.debug("Ignoring %s '%s' version %d; a newer or equal version is stored", kind.namespace, item['key'], item['version'])
            return False

        key = item['key']
        self._dependency_tracker.update_dependencies_from(kind, key, item)
        if notify and self._flag_change_listeners.has_listeners():
            affected_items: Set[KindAndKey] = set()
            self._dependency_tracker.add_affected_items(affected_items, KindAndKey(kind=kind, key=key))
            self._send_change_events(affected_items)

        if persist and self._persistent_store is not None and self._persistent_store_writable:
            self._persistent_store.upsert(kind, item)
        return True

    def _set_selector(self, selector: Selector):
        self._selector = selector
        if self._selector_store is None or not selector.is_defined():
            return
        try:
            self._selector_store.save(selector)
        except Exception as e:
            log.warning("Could not save selector %s: %s", selector.state, e)

    def _should_persist(self) -> bool:
        return (
            self._persist
            and self._persistent_store is not None
            and self._persistent_store_writable
        )

    def _changes_to_store_data(self, changes: Iterable[Change]) -> Collections:
        """
        Converts a list of changes to decoded items grouped by kind. Changes of an unknown kind
        are dropped and changes that fail to decode are logged and skipped. If a key appears more
        than once, the highest version wins, and the earliest change wins a tie, which is the
        outcome of applying the changes in order with the version check.
        """
        all_data: Collections = {kind: {} for kind in ALL_KINDS}

        for change in changes:
            if change.kind is None:
                continue
            kind = change.kind.data_kind
            try:
                if change.action == ChangeType.PUT:
                    if change.object is None:
                        continue
                    item = kind.decode(dict(change.object, key=change.key, version=change.version))
                elif change.action == ChangeType.DELETE:
                    item = {'key': change.key, 'version': change.version, 'deleted': True}
                else:
                    continue
            except Exception as e:
                log.warning("Skipping malformed %s '%s' version %s: %s", kind.namespace, change.key, change.version, e)
                continue

            existing = all_data[kind].get(change.key)
            if existing is None or existing['version'] < change.version:
                all_data[kind][change.key] = item

        return all_data

    def _reset_dependency_tracker(self, all_data: Collections):
        self._dependency_tracker.reset()
        for kind, items in all_data.items():
            for key, item in items.items():
                self._dependency_tracker.update_dependencies_from(kind, key, item)

    def _send_change_events(self, affected_items: Set[KindAndKey]):
        for item in affected_items:
            if item.kind == FEATURES:
                self._flag_change_listeners.notify(FlagChange(item.key))

    def _compute_changed_items_for_full_data_set(self, old_data: Collections, new_data: Collections) -> Set[KindAndKey]:
        affected_items: Set[KindAndKey] = set()

        for kind in ALL_KINDS:
            old_items = old_data.get(kind, {})
            new_items = {k: i for k, i in new_data.get(kind, {}).items() if not i.get('deleted')}

            for key in set(old_items.keys()) | set(new_items.keys()):
                old_item = old_items.get(key)
                new_item = new_items.get(key)

                if old_item is None or new_item is None or old_item['version'] != new_item['version']:
                    self._dependency_tracker.add_affected_items(affected_items, KindAndKey(kind=kind, key=key))

        return affected_items
