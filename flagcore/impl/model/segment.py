from typing import List, Optional, Set

from flagcore.impl.model.clause import Clause
from flagcore.impl.model.entity import *


class SegmentRule:
    __slots__ = ['_id', '_bucket_by', '_clauses', '_weight']

    def __init__(self, data: dict):
        self._id = opt_str(data, 'id')
        self._clauses = list(Clause(item) for item in req_dict_list(data, 'clauses'))
        self._bucket_by = opt_str(data, 'bucketBy')
        self._weight = opt_int(data, 'weight')

    @property
    def id(self) -> Optional[str]:
        return self._id

    @property
    def bucket_by(self) -> Optional[str]:
        return self._bucket_by

    @property
    def clauses(self) -> List[Clause]:
        return self._clauses

    @property
    def weight(self) -> Optional[int]:
        return self._weight


class Segment(ModelEntity):
    __slots__ = [
        '_data',
        '_key',
        '_version',
        '_deleted',
        '_included',
        '_excluded',
        '_rules',
        '_salt',
        '_unbounded',
    ]

    def __init__(self, data: dict):
        super().__init__(data)
        self._key = req_str(data, 'key')
        self._version = req_int(data, 'version')
        self._deleted = opt_bool(data, 'deleted')
        if self._deleted:
            return
        self._included = set(opt_str_list(data, 'included'))
        self._excluded = set(opt_str_list(data, 'excluded'))
        self._rules = list(SegmentRule(item) for item in opt_dict_list(data, 'rules'))
        self._salt = opt_str(data, 'salt') or ''
        self._unbounded = opt_bool(data, 'unbounded')

    @property
    def key(self) -> str:
        return self._key

    @property
    def version(self) -> int:
        return self._version

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def included(self) -> Set[str]:
        return self._included

    @property
    def excluded(self) -> Set[str]:
        return self._excluded

    @property
    def rules(self) -> List[SegmentRule]:
        return self._rules

    @property
    def salt(self) -> str:
        return self._salt

    @property
    def unbounded(self) -> bool:
        return self._unbounded
