import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from numbers import Number
from re import Pattern
from typing import Any, Optional

import pyrfc3339
from semver import VersionInfo

from flagcore.value import to_double

_epoch = datetime.fromtimestamp(0, timezone.utc)

# datetime keeps microseconds; digits past the sixth are parsed separately as nanoseconds
_EXTRA_FRACTION_DIGITS = re.compile(r'(\.\d{6})(\d+)')


def is_number(input: Any) -> bool:
    # bool is a subtype of int, and we don't want to try and treat it as a number.
    return isinstance(input, Number) and not isinstance(input, bool)


def parse_regex(input: Any) -> Optional[Pattern]:
    if isinstance(input, str):
        try:
            return re.compile(input)
        except re.error:
            return None
    return None


def parse_time(input: Any) -> Optional[Decimal]:
    """
    :param input: Either a number as milliseconds since Unix Epoch, or a string as a valid RFC3339 timestamp
    :return: milliseconds since Unix epoch, or None if input was invalid. Timestamps keep nanosecond precision.
    """
    if is_number(input):
        millis = Decimal(input) if isinstance(input, int) else Decimal(to_double(input))
        return None if millis.is_nan() else millis

    if isinstance(input, str):
        extra = _EXTRA_FRACTION_DIGITS.search(input)
        try:
            parsed_time = pyrfc3339.parse(_EXTRA_FRACTION_DIGITS.sub(r'\1', input))
        except (ValueError, TypeError):
            return None
        micros = (parsed_time - _epoch) // timedelta(microseconds=1)
        nanos = int((extra.group(2) + '00')[:3]) if extra else 0
        return Decimal(micros * 1000 + nanos).scaleb(-6)

    return None


def parse_semver(input: Any) -> Optional[VersionInfo]:
    """
    Parses a semantic version, accepting "X" and "X.Y" as shorthand for "X.0.0" and "X.Y.0".
    Any prerelease or build suffix after the numeric part is kept.
    """
    if not isinstance(input, str):
        return None
    for _ in range(3):
        try:
            return VersionInfo.parse(input)
        except ValueError:
            input = _add_zero_version_component(input)
    return None


def _add_zero_version_component(input: str) -> str:
    m = re.search("^([0-9.]*)(.*)", input)
    if m is None:
        return input + ".0"
    return m.group(1) + ".0" + m.group(2)
