"""
This module contains the wire events of the change protocol and the
:class:`ChangeSetBuilder` that assembles them into change sets.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from flagcore.interfaces import (
    Change,
    ChangeSet,
    ChangeType,
    EventName,
    IntentCode,
    ObjectKind,
    Selector,
    ServerIntent
)


def _object_kind(value) -> Optional[ObjectKind]:
    # unknown kinds are dropped rather than rejected so that newer servers can add kinds
    try:
        return ObjectKind(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class DeleteObject:
    """
    Specifies the deletion of a particular object. ``kind`` is None if the server sent a kind
    this client does not know.
    """

    version: int
    kind: Optional[ObjectKind]
    key: str

    def name(self) -> str:
        return EventName.DELETE_OBJECT

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "kind": None if self.kind is None else self.kind.value,
            "key": self.key,
        }

    @staticmethod
    def from_dict(data: dict) -> "DeleteObject":
        """
        Deserializes a DeleteObject from a JSON-compatible dictionary.
        """
        version = data.get("version")
        kind = data.get("kind")
        key = data.get("key")

        if version is None or kind is None or key is None:
            raise ValueError("Missing required fields in DeleteObject JSON.")

        return DeleteObject(version=version, kind=_object_kind(kind), key=key)


@dataclass(frozen=True)
class PutObject:
    """
    Specifies the addition of a particular object with upsert semantics.
    """

    version: int
    kind: Optional[ObjectKind]
    key: str
    object: dict

    def name(self) -> str:
        return EventName.PUT_OBJECT

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "kind": None if self.kind is None else self.kind.value,
            "key": self.key,
            "object": self.object,
        }

    @staticmethod
    def from_dict(data: dict) -> "PutObject":
        """
        Deserializes a PutObject from a JSON-compatible dictionary.
        """
        version = data.get("version")
        kind = data.get("kind")
        key = data.get("key")
        object_data = data.get("object")

        if version is None or kind is None or key is None or object_data is None:
            raise ValueError("Missing required fields in PutObject JSON.")

        return PutObject(
            version=version, kind=_object_kind(kind), key=key, object=object_data
        )


@dataclass(frozen=True)
class Goodbye:
    """
    Sent by the server before it closes the connection.
    """

    reason: str
    silent: bool = False
    catastrophe: bool = False

    def name(self) -> str:
        return EventName.GOODBYE

    def to_dict(self) -> dict:
        return {
            "reason": self.reason,
            "silent": self.silent,
            "catastrophe": self.catastrophe,
        }

    @staticmethod
    def from_dict(data: dict) -> "Goodbye":
        reason = data.get("reason")

        if reason is None:
            raise ValueError("Missing required fields in Goodbye JSON.")

        return Goodbye(
            reason=reason,
            silent=data.get("silent") is True,
            catastrophe=data.get("catastrophe") is True,
        )


@dataclass(frozen=True)
class Error:
    """
    Tells the client to discard the changes received since the last server intent.
    """

    reason: str
    payload_id: Optional[str] = None

    def name(self) -> str:
        return EventName.ERROR

    def to_dict(self) -> dict:
        ret = {"reason": self.reason}
        if self.payload_id is not None:
            ret["payloadId"] = self.payload_id
        return ret

    @staticmethod
    def from_dict(data: dict) -> "Error":
        reason = data.get("reason")

        if reason is None:
            raise ValueError("Missing required fields in Error JSON.")

        return Error(reason=reason, payload_id=data.get("payloadId"))


class ProtocolError(Exception):
    """
    Raised when :class:`ChangeSetBuilder` methods are called out of order.
    """


class NoIntentError(ProtocolError):
    def __init__(self):
        super().__init__("changeset: cannot complete without a server-intent")


class EmptyIntentError(ProtocolError):
    def __init__(self):
        super().__init__("changeset: server-intent event has no payloads")


@dataclass
class ChangeSetBuilder:
    """
    Accumulates the puts and deletes received between a ``server-intent`` and the following
    ``payload-transferred`` event.

    The builder is empty until :func:`start` is called. :func:`finish` produces a
    :class:`ChangeSet` and clears the pending changes; after a full transfer the builder keeps
    going in ``xfer-changes`` mode, since anything the server sends next is incremental.
    """

    intent: Optional[IntentCode] = None
    changes: List[Change] = field(default_factory=list)

    @staticmethod
    def no_changes() -> ChangeSet:
        """
        Returns a change set that tells the receiver its data is already current.
        """
        return ChangeSet(
            intent_code=IntentCode.TRANSFER_NONE,
            selector=Selector.no_selector(),
            changes=[],
        )

    @staticmethod
    def empty(selector: Selector) -> ChangeSet:
        """
        Returns a full-transfer change set with no items, which clears the receiver's data.
        """
        return ChangeSet(
            intent_code=IntentCode.TRANSFER_FULL,
            selector=selector,
            changes=[],
        )

    def start(self, intent: ServerIntent):
        """
        Begins a new change set, discarding anything pending.

        :raises EmptyIntentError: if the intent carries no payloads
        """
        payload = intent.payload
        if payload is None:
            raise EmptyIntentError()
        self.intent = payload.code
        self.changes = []

    def expect_changes(self):
        """
        Switches to incremental mode. Used after an intent of ``none`` so that any later changes
        on the same connection are applied on top of the current data.
        """
        if self.intent is None:
            raise NoIntentError()

        if self.intent != IntentCode.TRANSFER_FULL:
            self.intent = IntentCode.TRANSFER_CHANGES

    def reset(self):
        """
        Drops the pending changes but keeps the current intent.
        """
        self.changes = []

    def finish(self, selector: Selector) -> ChangeSet:
        """
        Completes the pending change set.

        :raises NoIntentError: if :func:`start` was never called
        """
        if self.intent is None:
            raise NoIntentError()

        changeset = ChangeSet(
            intent_code=self.intent,
            selector=selector,
            changes=self.changes,
        )
        self.changes = []

        if self.intent == IntentCode.TRANSFER_FULL:
            self.intent = IntentCode.TRANSFER_CHANGES

        return changeset

    def add_put(self, kind: ObjectKind, key: str, version: int, obj: dict):
        self.changes.append(
            Change(
                action=ChangeType.PUT, kind=kind, key=key, version=version, object=obj
            )
        )

    def add_delete(self, kind: ObjectKind, key: str, version: int):
        self.changes.append(
            Change(action=ChangeType.DELETE, kind=kind, key=key, version=version)
        )
