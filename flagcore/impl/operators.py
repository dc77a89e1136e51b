from collections import defaultdict
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from semver import VersionInfo

from flagcore.impl.model.clause import ClausePreprocessedValue
from flagcore.impl.model.value_parsing import (is_number, parse_regex,
                                               parse_semver, parse_time)
from flagcore.value import to_double, values_equal

Operator = Callable[[Any, Any, Optional[ClausePreprocessedValue]], bool]

_registry = {}  # type: Dict[str, Operator]


def _operator(name: str):
    def register(fn: Operator) -> Operator:
        _registry[name] = fn
        return fn
    return register


def _string_op(context_value: Any, clause_value: Any, fn: Callable[[str, str], bool]) -> bool:
    return isinstance(context_value, str) and isinstance(clause_value, str) and fn(context_value, clause_value)


def _numeric_op(context_value: Any, clause_value: Any, fn: Callable[[float, float], bool]) -> bool:
    return is_number(context_value) and is_number(clause_value) and fn(to_double(context_value), to_double(clause_value))


def _time_op(context_value: Any, clause_value: Any, clause_preprocessed: Optional[ClausePreprocessedValue], fn: Callable[[Decimal, Decimal], bool]) -> bool:
    clause_time = parse_time(clause_value) if clause_preprocessed is None else clause_preprocessed.as_time
    if clause_time is None:
        return False
    context_time = parse_time(context_value)
    return context_time is not None and fn(context_time, clause_time)


def _semver_op(context_value: Any, clause_value: Any, clause_preprocessed: Optional[ClausePreprocessedValue], fn: Callable[[int], bool]) -> bool:
    clause_ver = parse_semver(clause_value) if clause_preprocessed is None else clause_preprocessed.as_semver
    if clause_ver is None:
        return False
    context_ver = parse_semver(context_value)  # type: Optional[VersionInfo]
    return context_ver is not None and fn(context_ver.compare(clause_ver))


@_operator("in")
def _in(context_value, clause_value, clause_preprocessed):
    return values_equal(context_value, clause_value)


@_operator("startsWith")
def _starts_with(context_value, clause_value, clause_preprocessed):
    return _string_op(context_value, clause_value, lambda a, b: a.startswith(b))


@_operator("endsWith")
def _ends_with(context_value, clause_value, clause_preprocessed):
    return _string_op(context_value, clause_value, lambda a, b: a.endswith(b))


@_operator("contains")
def _contains(context_value, clause_value, clause_preprocessed):
    return _string_op(context_value, clause_value, lambda a, b: b in a)


@_operator("matches")
def _matches(context_value, clause_value, clause_preprocessed):
    regex = parse_regex(clause_value) if clause_preprocessed is None else clause_preprocessed.as_regex
    return regex is not None and isinstance(context_value, str) and regex.search(context_value) is not None


@_operator("lessThan")
def _less_than(context_value, clause_value, clause_preprocessed):
    return _numeric_op(context_value, clause_value, lambda a, b: a < b)


@_operator("lessThanOrEqual")
def _less_than_or_equal(context_value, clause_value, clause_preprocessed):
    return _numeric_op(context_value, clause_value, lambda a, b: a <= b)


@_operator("greaterThan")
def _greater_than(context_value, clause_value, clause_preprocessed):
    return _numeric_op(context_value, clause_value, lambda a, b: a > b)


@_operator("greaterThanOrEqual")
def _greater_than_or_equal(context_value, clause_value, clause_preprocessed):
    return _numeric_op(context_value, clause_value, lambda a, b: a >= b)


@_operator("before")
def _before(context_value, clause_value, clause_preprocessed):
    return _time_op(context_value, clause_value, clause_preprocessed, lambda a, b: a < b)


@_operator("after")
def _after(context_value, clause_value, clause_preprocessed):
    return _time_op(context_value, clause_value, clause_preprocessed, lambda a, b: a > b)


@_operator("semVerEqual")
def _semver_equal(context_value, clause_value, clause_preprocessed):
    return _semver_op(context_value, clause_value, clause_preprocessed, lambda c: c == 0)


@_operator("semVerLessThan")
def _semver_less_than(context_value, clause_value, clause_preprocessed):
    return _semver_op(context_value, clause_value, clause_preprocessed, lambda c: c < 0)


@_operator("semVerGreaterThan")
def _semver_greater_than(context_value, clause_value, clause_preprocessed):
    return _semver_op(context_value, clause_value, clause_preprocessed, lambda c: c > 0)


def __default_factory():
    return lambda _l, _r, _p: False


# Unknown operators never match.
ops = defaultdict(__default_factory, _registry)  # type: Dict[str, Operator]
