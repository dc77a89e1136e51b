from typing import Any, Dict, Iterable, NamedTuple, Set

from flagcore.impl.model.clause import Clause
from flagcore.impl.model.feature_flag import FeatureFlag
from flagcore.impl.model.segment import Segment
from flagcore.versioned_data_kind import FEATURES, SEGMENTS, VersionedDataKind


class KindAndKey(NamedTuple):
    kind: VersionedDataKind
    key: str


class DependencyTracker:
    """
    Tracks which items each flag or segment refers to, and the reverse, so that a change to one
    item can be traced to every flag whose behavior might change as a result.
    """

    def __init__(self):
        self.__children: Dict[KindAndKey, Set[KindAndKey]] = {}
        self.__parents: Dict[KindAndKey, Set[KindAndKey]] = {}

    def update_dependencies_from(self, from_kind: VersionedDataKind, from_key: str, from_item: Any):
        """
        Replaces the recorded dependencies of an item. A deleted item (or None) has none.
        """
        from_what = KindAndKey(kind=from_kind, key=from_key)

        for child in self.__children.get(from_what, set()):
            self.__parents.get(child, set()).discard(from_what)

        updated_dependencies = DependencyTracker.compute_dependencies_from(from_kind, from_item)
        self.__children[from_what] = updated_dependencies
        for child in updated_dependencies:
            self.__parents.setdefault(child, set()).add(from_what)

    def add_affected_items(self, items_out: Set[KindAndKey], initial_modified_item: KindAndKey):
        """
        Adds the initial item and everything that directly or transitively depends on it to
        ``items_out``. Items already in the set are not revisited, so cycles terminate.
        """
        pending = [initial_modified_item]
        while pending:
            item = pending.pop()
            if item in items_out:
                continue
            items_out.add(item)
            pending.extend(self.__parents.get(item, ()))

    def reset(self):
        self.__children.clear()
        self.__parents.clear()

    @staticmethod
    def compute_dependencies_from(from_kind: VersionedDataKind, from_item: Any) -> Set[KindAndKey]:
        if from_item is None:
            return set()

        from_item = from_kind.decode(from_item)

        if from_kind == FEATURES and isinstance(from_item, FeatureFlag):
            results = {KindAndKey(kind=FEATURES, key=p.key) for p in from_item.prerequisites}
            for rule in from_item.rules:
                results.update(DependencyTracker.segment_keys_from_clauses(rule.clauses))
            return results
        if from_kind == SEGMENTS and isinstance(from_item, Segment):
            results = set()
            for rule in from_item.rules:
                results.update(DependencyTracker.segment_keys_from_clauses(rule.clauses))
            return results
        return set()

    @staticmethod
    def segment_keys_from_clauses(clauses: Iterable[Clause]) -> Set[KindAndKey]:
        return {
            KindAndKey(kind=SEGMENTS, key=value)
            for clause in clauses
            if clause.op == 'segmentMatch'
            for value in clause.values
            if isinstance(value, str)
        }
