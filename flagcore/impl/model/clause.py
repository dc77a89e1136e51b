from decimal import Decimal
from re import Pattern
from typing import Any, List, Optional

from semver import VersionInfo

from flagcore.impl.model.entity import *
from flagcore.impl.model.value_parsing import (parse_regex, parse_semver,
                                               parse_time)


class ClausePreprocessedValue:
    __slots__ = ['_as_time', '_as_regex', '_as_semver']

    def __init__(self, as_time: Optional[Decimal] = None, as_regex: Optional[Pattern] = None, as_semver: Optional[VersionInfo] = None):
        self._as_time = as_time
        self._as_regex = as_regex
        self._as_semver = as_semver

    @property
    def as_time(self) -> Optional[Decimal]:
        return self._as_time

    @property
    def as_regex(self) -> Optional[Pattern]:
        return self._as_regex

    @property
    def as_semver(self) -> Optional[VersionInfo]:
        return self._as_semver


_PREPROCESSORS = {
    'matches': lambda value: ClausePreprocessedValue(as_regex=parse_regex(value)),
    'before': lambda value: ClausePreprocessedValue(as_time=parse_time(value)),
    'after': lambda value: ClausePreprocessedValue(as_time=parse_time(value)),
    'semVerEqual': lambda value: ClausePreprocessedValue(as_semver=parse_semver(value)),
    'semVerLessThan': lambda value: ClausePreprocessedValue(as_semver=parse_semver(value)),
    'semVerGreaterThan': lambda value: ClausePreprocessedValue(as_semver=parse_semver(value)),
}


def _preprocess_clause_values(op: str, values: List[Any]) -> Optional[List[ClausePreprocessedValue]]:
    preprocess = _PREPROCESSORS.get(op)
    if preprocess is None:
        return None
    return [preprocess(value) for value in values]


class Clause:
    __slots__ = ['_attribute', '_op', '_negate', '_values', '_values_preprocessed']

    def __init__(self, data: dict):
        self._attribute = req_str(data, 'attribute')
        self._negate = opt_bool(data, 'negate')
        self._op = req_str(data, 'op')
        self._values = req_list(data, 'values')
        self._values_preprocessed = _preprocess_clause_values(self._op, self._values)

    @property
    def attribute(self) -> str:
        return self._attribute

    @property
    def negate(self) -> bool:
        return self._negate

    @property
    def op(self) -> str:
        return self._op

    @property
    def values(self) -> List[Any]:
        return self._values

    @property
    def values_preprocessed(self) -> Optional[List[ClausePreprocessedValue]]:
        return self._values_preprocessed
