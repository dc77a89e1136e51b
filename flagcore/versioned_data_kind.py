"""
This submodule is used only by the internals of the feature flag storage mechanism.

If you are writing your own implementation of :class:`flagcore.interfaces.FeatureStore`, a
:class:`VersionedDataKind` is passed to the ``kind`` parameter of the store methods; its
``namespace`` property tells the store which collection is being referenced ("features" or
"segments"). Stores should treat items as generic JSON dictionaries with ``key`` and
``version`` properties, and need no special logic for either kind.
"""

from typing import Any, Callable, Iterable, Optional

from flagcore.impl.model import FeatureFlag, ModelEntity, Segment


class VersionedDataKind:
    def __init__(
        self,
        namespace: str,
        decoder: Optional[Callable[[dict], Any]],
        priority: int,
        get_dependency_keys: Optional[Callable[[Any], Iterable[str]]],
    ):
        self._namespace = namespace
        self._decoder = decoder
        self._priority = priority
        self._get_dependency_keys = get_dependency_keys

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def priority(self) -> int:
        """
        Kinds with a lower priority are written to a store first.
        """
        return self._priority

    @property
    def get_dependency_keys(self) -> Optional[Callable[[Any], Iterable[str]]]:
        """
        Returns the keys of items of the same kind that an item depends on, or None if items of
        this kind never depend on each other.
        """
        return self._get_dependency_keys

    def decode(self, data: Any) -> Any:
        if self._decoder is None or isinstance(data, ModelEntity):
            return data
        if data.get('deleted') is True:
            return data
        return self._decoder(data)

    def encode(self, item: Any) -> dict:
        return item.to_json_dict() if isinstance(item, ModelEntity) else item

    def __repr__(self) -> str:
        return "VersionedDataKind(%s)" % self._namespace


def _segment_refs(clauses) -> Iterable[str]:
    for clause in clauses or []:
        if clause.get('op') == 'segmentMatch':
            for value in clause.get('values') or []:
                if isinstance(value, str):
                    yield value


def _flag_prerequisite_keys(flag) -> Iterable[str]:
    return (p.get('key') for p in (flag.get('prerequisites') or []))


def _segment_segment_keys(segment) -> Iterable[str]:
    for rule in segment.get('rules') or []:
        yield from _segment_refs(rule.get('clauses'))


FEATURES = VersionedDataKind(
    namespace="features",
    decoder=FeatureFlag,
    priority=1,
    get_dependency_keys=_flag_prerequisite_keys,
)

SEGMENTS = VersionedDataKind(
    namespace="segments",
    decoder=Segment,
    priority=0,
    get_dependency_keys=_segment_segment_keys,
)

ALL_KINDS = (SEGMENTS, FEATURES)
