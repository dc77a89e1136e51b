import logging
import re
import time
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from flagcore.impl.http import _base_headers


def current_time_millis() -> int:
    return int(time.time() * 1000)


log = logging.getLogger('flagcore.util')


__LONG_SCALE__ = float(0xFFFFFFFFFFFFFFF)

# Maximum length for SDK keys
_MAX_SDK_KEY_LENGTH = 8192

_RETRYABLE_STATUSES = [400, 408, 429]

_VALID_CHARACTERS_REGEX = re.compile(r"[^a-zA-Z0-9._-]")


def validate_sdk_key_format(sdk_key: str, logger: logging.Logger) -> str:
    """
    Validates that an SDK key does not contain invalid characters and is not too long.

    :param sdk_key: the SDK key to validate
    :param logger: the logger to use for logging warnings
    :return: the validated SDK key, or empty string if the SDK key is invalid
    """
    if sdk_key is None or sdk_key == '':
        return ""

    if not isinstance(sdk_key, str):
        return ""
    if len(sdk_key) > _MAX_SDK_KEY_LENGTH:
        logger.warning('SDK key was longer than %d characters and was discarded' % _MAX_SDK_KEY_LENGTH)
        return ""
    if _VALID_CHARACTERS_REGEX.search(sdk_key):
        logger.warning('SDK key contained invalid characters and was discarded')
        return ""
    return sdk_key


def _headers(config):
    base_headers = _base_headers(config)
    base_headers.update({'Content-Type': "application/json"})
    return base_headers


class UnsuccessfulResponseException(Exception):
    def __init__(self, status):
        super(UnsuccessfulResponseException, self).__init__("HTTP error %d" % status)
        self._status = status

    @property
    def status(self):
        return self._status


def is_http_error_recoverable(status):
    if status >= 400 and status < 500:
        return status in _RETRYABLE_STATUSES  # all other 4xx besides these are unrecoverable
    return True  # all other errors are recoverable


def http_error_description(status):
    return "HTTP error %d%s" % (status, " (invalid SDK key)" if (status == 401 or status == 403) else "")


def http_error_message(status, context, retryable_message="will retry"):
    return "Received %s for %s - %s" % (http_error_description(status), context, retryable_message if is_http_error_recoverable(status) else "giving up permanently")


T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class _Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class _Fail(Generic[E]):
    error: E
    exception: Optional[Exception] = None


_Result = Union[_Success[T], _Fail[E]]
