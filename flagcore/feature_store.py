"""
This submodule contains basic classes related to the feature store.

The feature store is the component that holds the last known state of all feature flags and
segments. This submodule does not include integrations with external storage systems; those
implement :class:`flagcore.interfaces.FeatureStoreCore` and are wrapped in
:class:`flagcore.feature_store_helpers.CachingStoreWrapper`.
"""

from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional

from flagcore.impl.model import FeatureFlag, Segment
from flagcore.impl.util import log
from flagcore.interfaces import FeatureStore
from flagcore.versioned_data_kind import FEATURES, SEGMENTS, VersionedDataKind


class CacheConfig:
    """Encapsulates caching parameters for feature store implementations that support local caching.
    """

    DEFAULT_EXPIRATION = 15.0
    DEFAULT_CAPACITY = 1000

    def __init__(self, expiration: float = DEFAULT_EXPIRATION, capacity: int = DEFAULT_CAPACITY):
        """Constructs an instance of CacheConfig.

        :param expiration: the cache TTL, in seconds. Items will be evicted from the cache after
          this amount of time from the time when they were originally cached. If the time is less than or
          equal to zero, caching is disabled.
        :param capacity: the maximum number of items that can be in the cache at a time
        """
        self._expiration = expiration
        self._capacity = capacity

    @staticmethod
    def default() -> 'CacheConfig':
        """Returns an instance of CacheConfig with default properties. By default, caching is enabled.
        """
        return CacheConfig()

    @staticmethod
    def disabled() -> 'CacheConfig':
        """Returns an instance of CacheConfig specifying that caching should be disabled.
        """
        return CacheConfig(expiration=0)

    @property
    def enabled(self) -> bool:
        return self._expiration > 0

    @property
    def expiration(self) -> float:
        return self._expiration

    @property
    def capacity(self) -> int:
        return self._capacity


def _is_deleted(item) -> bool:
    return item is not None and item.get('deleted') is True


class StoreSnapshot:
    """
    An immutable view of the in-memory store at one point in time.

    Evaluations look up a flag, its prerequisites and its segments through a single snapshot, so
    they never observe a mix of old and new data.
    """

    __slots__ = ['_items', '_initialized']

    def __init__(self, items: Mapping[VersionedDataKind, Mapping[str, Any]], initialized: bool):
        self._items = items
        self._initialized = initialized

    @property
    def initialized(self) -> bool:
        return self._initialized

    def get(self, kind: VersionedDataKind, key: str) -> Any:
        item = self._items.get(kind, {}).get(key)
        return None if _is_deleted(item) else item

    def all(self, kind: VersionedDataKind) -> Dict[str, Any]:
        return {k: i for k, i in self._items.get(kind, {}).items() if not _is_deleted(i)}

    def get_flag(self, key: str) -> Optional[FeatureFlag]:
        return self.get(FEATURES, key)

    def get_segment(self, key: str) -> Optional[Segment]:
        return self.get(SEGMENTS, key)

    def version_of(self, kind: VersionedDataKind, key: str) -> Optional[int]:
        """
        Returns the stored version of an item, counting deletion placeholders, or None.
        """
        item = self._items.get(kind, {}).get(key)
        return None if item is None else item['version']


class InMemoryFeatureStore(FeatureStore):
    """The default feature store implementation, which holds all data in memory.

    Writers are serialized by a lock and never modify a published collection; each write
    publishes a new :class:`StoreSnapshot`, so readers never wait for writers.
    """

    def __init__(self):
        """Constructs an instance of InMemoryFeatureStore.
        """
        self._lock = Lock()
        self._snapshot = StoreSnapshot({}, False)

    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    def get(self, kind: VersionedDataKind, key: str, callback: Callable[[Any], Any] = lambda x: x) -> Any:
        item = self._snapshot.get(kind, key)
        if item is None:
            log.debug("Attempted to get missing or deleted key %s in '%s', returning None", key, kind.namespace)
        return callback(item)

    def all(self, kind: VersionedDataKind, callback: Callable[[Any], Any] = lambda x: x) -> Any:
        return callback(self._snapshot.all(kind))

    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, Any]]):
        items = {}  # type: Dict[VersionedDataKind, Dict[str, Any]]
        for kind, collection in all_data.items():
            items[kind] = {key: kind.decode(item) for key, item in collection.items()}
            log.debug("Initialized '%s' store with %d items", kind.namespace, len(collection))
        with self._lock:
            self._snapshot = StoreSnapshot(items, True)

    def delete(self, kind: VersionedDataKind, key: str, version: int) -> bool:
        return self.upsert(kind, {'key': key, 'version': version, 'deleted': True})

    def upsert(self, kind: VersionedDataKind, item: Any) -> bool:
        decoded = kind.decode(item)
        key = decoded['key']
        version = decoded['version']
        with self._lock:
            current = self._snapshot
            old_version = current.version_of(kind, key)
            if old_version is not None and old_version >= version:
                return False
            items = dict(current._items)
            items_of_kind = dict(items.get(kind, {}))
            items_of_kind[key] = decoded
            items[kind] = items_of_kind
            self._snapshot = StoreSnapshot(items, current.initialized)
        log.debug("Updated %s in '%s' to version %d", key, kind.namespace, version)
        return True

    @property
    def initialized(self) -> bool:
        return self._snapshot.initialized

    def describe_configuration(self, config):
        return 'memory'


class _FeatureStoreDataSetSorter:
    """
    Implements a dependency graph ordering for data to be stored in a feature store. We must use this
    on every data set that will be passed to a persistent store's init() method.
    """

    @staticmethod
    def sort_all_collections(all_data):
        """ Returns a copy of the input data that has the following guarantees: the iteration order of the outer
        dictionary will be in ascending order by the VersionedDataKind's :priority property, with kinds of equal
        priority ordered by namespace, and for each data kind that has a "get_dependency_keys" function, the inner
        dictionary will have an iteration order where B is before A if A has a dependency on B.
        """
        outer_hash = OrderedDict()
        kinds = list(all_data.keys())

        def priority_order(kind):
            return (getattr(kind, 'priority', len(kind.namespace)), kind.namespace)

        kinds.sort(key=priority_order)
        for kind in kinds:
            items = all_data[kind]
            outer_hash[kind] = _FeatureStoreDataSetSorter._sort_collection(kind, items)
        return outer_hash

    @staticmethod
    def _sort_collection(kind, input):
        dependency_fn = getattr(kind, 'get_dependency_keys', None)
        if dependency_fn is None or len(input) == 0:
            return input
        remaining_items = OrderedDict(input)
        items_out = OrderedDict()
        while len(remaining_items) > 0:
            # pick the first item that hasn't been emitted yet
            key, item = next(iter(remaining_items.items()))
            _FeatureStoreDataSetSorter._add_with_dependencies_first(key, item, dependency_fn, remaining_items, items_out)
        return items_out

    @staticmethod
    def _add_with_dependencies_first(key, item, dependency_fn, remaining_items, items_out):
        # iterative depth-first walk; chains may be longer than the recursion limit
        del remaining_items[key]  # we won't need to visit this item again
        stack = [(key, item, iter(dependency_fn(item)))]
        while stack:
            current_key, current_item, deps = stack[-1]
            for dep_key in deps:
                dep_item = remaining_items.get(dep_key)
                if dep_item is not None:
                    del remaining_items[dep_key]
                    stack.append((dep_key, dep_item, iter(dependency_fn(dep_item))))
                    break
            else:
                stack.pop()
                items_out[current_key] = current_item
