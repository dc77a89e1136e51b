"""
This submodule contains support code for writing feature store implementations.
"""

from typing import Any, Dict, Mapping

from expiringdict import ExpiringDict

from flagcore.feature_store import CacheConfig
from flagcore.interfaces import FeatureStore, FeatureStoreCore
from flagcore.versioned_data_kind import VersionedDataKind


def _ensure_encoded(kind, item):
    return item if isinstance(item, dict) else kind.encode(item)


def _is_deleted(item):
    return item is not None and item.get('deleted') is True


class CachingStoreWrapper(FeatureStore):
    """A partial implementation of :class:`flagcore.interfaces.FeatureStore`.

    This class delegates the basic functionality to an implementation of
    :class:`flagcore.interfaces.FeatureStoreCore` - while adding optional caching behavior and other logic
    that would otherwise be repeated in every feature store implementation. This makes it easier to create
    new database integrations by implementing only the database-specific logic.
    """

    __INITED_CACHE_KEY__ = "$inited"

    def __init__(self, core: FeatureStoreCore, cache_config: CacheConfig):
        """Constructs an instance by wrapping a core implementation object.

        :param core: the implementation object
        :param cache_config: the caching parameters
        """
        self._core = core
        self.__has_available_method = callable(getattr(core, 'is_available', None))

        if cache_config.enabled:
            self._cache = ExpiringDict(max_len=cache_config.capacity, max_age_seconds=cache_config.expiration)
        else:
            self._cache = None
        self._inited = False

    def is_monitoring_enabled(self) -> bool:
        return self.__has_available_method

    def is_available(self) -> bool:
        return self._core.is_available() if self.__has_available_method else False  # type: ignore

    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, Any]]):
        all_encoded_data = {kind: {key: _ensure_encoded(kind, item) for key, item in items.items()} for kind, items in all_data.items()}
        self._core.init_internal(all_encoded_data)
        if self._cache is not None:
            self._cache.clear()
            for kind, items in all_encoded_data.items():
                decoded_items = {}  # type: Dict[str, Any]
                for key, item in items.items():
                    decoded_item = kind.decode(item)
                    self._cache[self._item_cache_key(kind, key)] = [decoded_item]  # note array wrapper
                    if not _is_deleted(decoded_item):
                        decoded_items[key] = decoded_item
                self._cache[self._all_cache_key(kind)] = decoded_items
        self._inited = True

    def get(self, kind, key, callback=lambda x: x):
        cache_key = self._item_cache_key(kind, key)
        if self._cache is not None:
            cached_item = self._cache.get(cache_key)
            # cached items are wrapped in a list so we can cache None values
            if cached_item is not None:
                item = cached_item[0]
                return callback(None if _is_deleted(item) else item)
        encoded_item = self._core.get_internal(kind, key)
        item = None if encoded_item is None else kind.decode(encoded_item)
        if self._cache is not None:
            self._cache[cache_key] = [item]
        return callback(None if _is_deleted(item) else item)

    def all(self, kind, callback=lambda x: x):
        cache_key = self._all_cache_key(kind)
        if self._cache is not None:
            cached_items = self._cache.get(cache_key)
            if cached_items is not None:
                return callback(cached_items)
        encoded_items = self._core.get_all_internal(kind)
        all_items = {}
        if encoded_items is not None:
            for key, item in encoded_items.items():
                all_items[key] = kind.decode(item)
        items = self._items_if_not_deleted(all_items)
        if self._cache is not None:
            self._cache[cache_key] = items
        return callback(items)

    def delete(self, kind, key, version) -> bool:
        deleted_item = {"key": key, "version": version, "deleted": True}
        return self.upsert(kind, deleted_item)

    def upsert(self, kind, item) -> bool:
        encoded_item = _ensure_encoded(kind, item)
        new_state = self._core.upsert_internal(kind, encoded_item)
        new_decoded_item = kind.decode(new_state)
        if self._cache is not None:
            self._cache[self._item_cache_key(kind, new_decoded_item.get('key'))] = [new_decoded_item]
            self._cache.pop(self._all_cache_key(kind), None)
        return new_state == encoded_item

    @property
    def initialized(self) -> bool:
        if self._inited:
            return True
        if self._cache is None:
            result = bool(self._core.initialized_internal())
        else:
            result = self._cache.get(CachingStoreWrapper.__INITED_CACHE_KEY__)
            if result is None:
                result = bool(self._core.initialized_internal())
                self._cache[CachingStoreWrapper.__INITED_CACHE_KEY__] = result
        if result:
            self._inited = True
        return result

    @staticmethod
    def _item_cache_key(kind, key):
        return "{0}:{1}".format(kind.namespace, key)

    @staticmethod
    def _all_cache_key(kind):
        return kind.namespace

    @staticmethod
    def _items_if_not_deleted(items):
        results = {}
        if items is not None:
            for key, item in items.items():
                if not item.get('deleted', False):
                    results[key] = item
        return results
