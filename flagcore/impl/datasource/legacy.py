"""
Conversion of the older ``put``/``patch``/``delete`` stream messages into change sets.

These messages address items by path: ``/flags/{key}`` for flags, ``/segments/{key}`` for
segments, and ``/`` (or no path) for the whole data set. Messages for any other path are
dropped.
"""

from collections import namedtuple
from typing import Optional

from flagcore.impl.datasystem.protocolv2 import ChangeSetBuilder
from flagcore.impl.util import log
from flagcore.interfaces import ChangeSet, IntentCode, ObjectKind, Payload, Selector, ServerIntent

ParsedPath = namedtuple('ParsedPath', ['kind', 'key'])

ROOT_PATH = '/'

_PATHS = (
    (ObjectKind.FLAG, '/flags/'),
    (ObjectKind.SEGMENT, '/segments/'),
)


def parse_path(path: str) -> Optional[ParsedPath]:
    for kind, prefix in _PATHS:
        if path.startswith(prefix) and len(path) > len(prefix):
            return ParsedPath(kind=kind, key=path[len(prefix):])
    return None


def _builder(code: IntentCode) -> ChangeSetBuilder:
    builder = ChangeSetBuilder()
    builder.start(ServerIntent(payloads=[Payload(id="", target=0, code=code, reason="legacy")]))
    return builder


def put_to_change_set(payload: dict) -> Optional[ChangeSet]:
    """
    Converts a ``put`` message, which carries the complete data set, into a full transfer.
    Returns None if the message is for a path other than the root.

    :raises ValueError: if the message body is malformed
    """
    path = payload.get('path', ROOT_PATH)
    if path not in (ROOT_PATH, '', None):
        log.warning("Put for unknown path: %s", path)
        return None

    data = payload.get('data')
    if not isinstance(data, dict):
        raise ValueError("Invalid put message: 'data' must be an object")

    builder = _builder(IntentCode.TRANSFER_FULL)
    for kind, collection in ((ObjectKind.SEGMENT, data.get('segments')), (ObjectKind.FLAG, data.get('flags'))):
        if collection is None:
            continue
        if not isinstance(collection, dict):
            raise ValueError("Invalid put message: '%s' collection must be an object" % kind.value)
        for key, item in collection.items():
            try:
                builder.add_put(kind, key, _version_of(item), item)
            except ValueError as e:
                log.warning("Skipping malformed %s '%s' in put: %s", kind.value, key, e)

    log.debug("Received put event with %d changes", len(builder.changes))
    return builder.finish(Selector.no_selector())


def patch_to_change_set(payload: dict) -> Optional[ChangeSet]:
    """
    Converts a ``patch`` message for one item into an incremental change set.

    :raises ValueError: if the message body is malformed
    """
    path = payload.get('path')
    item = payload.get('data')
    if not isinstance(path, str) or not isinstance(item, dict):
        raise ValueError("Invalid patch message: 'path' and 'data' are required")

    target = parse_path(path)
    if target is None:
        log.warning("Patch for unknown path: %s", path)
        return None

    version = _version_of(item)
    log.debug("Received patch event for %s, New version: [%d]", path, version)
    builder = _builder(IntentCode.TRANSFER_CHANGES)
    builder.add_put(target.kind, target.key, version, item)
    return builder.finish(Selector.no_selector())


def delete_to_change_set(payload: dict) -> Optional[ChangeSet]:
    """
    Converts a ``delete`` message for one item into an incremental change set.

    :raises ValueError: if the message body is malformed
    """
    path = payload.get('path')
    version = payload.get('version')
    if not isinstance(path, str) or not isinstance(version, int) or isinstance(version, bool):
        raise ValueError("Invalid delete message: 'path' and 'version' are required")

    target = parse_path(path)
    if target is None:
        log.warning("Delete for unknown path: %s", path)
        return None

    log.debug("Received delete event for %s, New version: [%d]", path, version)
    builder = _builder(IntentCode.TRANSFER_CHANGES)
    builder.add_delete(target.kind, target.key, version)
    return builder.finish(Selector.no_selector())


def _version_of(item) -> int:
    version = item.get('version') if isinstance(item, dict) else None
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError("Invalid item: 'version' must be an integer")
    return version
