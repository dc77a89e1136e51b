"""
This submodule contains interfaces for various components of the client, along with the types
that describe data source status and the change protocol.

They may be useful in writing new implementations of these components, or for testing.
"""

from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional

from flagcore.context import Context
from flagcore.impl.listeners import Listeners
from flagcore.versioned_data_kind import FEATURES, SEGMENTS, VersionedDataKind


class FeatureStore(metaclass=ABCMeta):
    """
    Interface for a versioned store for feature flags and segments.
    Implementations should permit concurrent access and updates.

    An "object", for ``FeatureStore``, is a flag or segment, or a dict of arbitrary data which
    must have at least three properties: ``key`` (its unique key), ``version`` (the version
    number), and ``deleted`` (True if this is a placeholder for a deleted object).

    Delete and upsert requests are versioned: if the version number in the request is not greater
    than the currently stored version of the object, the request should be ignored.

    These semantics support the primary use case for the store, which synchronizes a collection
    of objects based on update messages that may be received out-of-order.
    """

    @abstractmethod
    def get(self, kind: VersionedDataKind, key: str, callback: Callable[[Any], Any] = lambda x: x) -> Any:
        """
        Retrieves the object to which the specified key is mapped, or None if the key is not found
        or the associated object has a ``deleted`` property of True. The retrieved object, if any,
        can be transformed by the specified callback.

        :param kind: The kind of object to get
        :param key: The key whose associated object is to be returned
        :param callback: A function that accepts the retrieved data and returns a transformed value
        :return: The result of executing callback
        """

    @abstractmethod
    def all(self, kind: VersionedDataKind, callback: Callable[[Any], Any] = lambda x: x) -> Any:
        """
        Retrieves a dictionary of all live objects of a given kind. The retrieved dict of keys
        to objects can be transformed by the specified callback.

        :param kind: The kind of objects to get
        :param callback: A function that accepts the retrieved data and returns a transformed value
        """

    @abstractmethod
    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, Any]]):
        """
        Initializes (or re-initializes) the store with the specified set of objects. Any existing
        entries will be removed. Implementations can assume that this set of objects is up to date;
        there is no need to perform individual version comparisons.

        :param all_data: All objects to be stored
        """

    @abstractmethod
    def delete(self, kind: VersionedDataKind, key: str, version: int) -> bool:
        """
        Replaces the object associated with the specified key by a placeholder with the specified
        version and a ``deleted`` property of True, if the stored version is lower.

        :param kind: The kind of object to delete
        :param key: The key of the object to be deleted
        :param version: The version for the delete operation
        :return: True if the placeholder was stored
        """

    @abstractmethod
    def upsert(self, kind: VersionedDataKind, item: Any) -> bool:
        """
        Updates or inserts the object associated with the specified key. If an item with the same key
        already exists, it should update it only if the new item's version property is greater than
        the old one.

        :param kind: The kind of object to update
        :param item: The object to update or insert
        :return: True if the item was stored, False if the version check rejected it
        """

    @property
    @abstractmethod
    def initialized(self) -> bool:
        """
        Returns whether the store has been initialized yet or not
        """

    # Optional: a store that defines ``is_monitoring_enabled()`` and ``is_available()`` takes part
    # in data store status reporting. When an operation fails, the client polls ``is_available()``
    # until it returns True and then rewrites the store from memory.


class FeatureStoreCore(metaclass=ABCMeta):
    """
    Interface for a simplified subset of the functionality of :class:`FeatureStore`, to be used
    in conjunction with :class:`flagcore.feature_store_helpers.CachingStoreWrapper`. Persistent
    backends implement only this and get caching and deletion placeholders for free.

    Backends should key items as ``{prefix}:{namespace}/{key}`` and store the version alongside
    the JSON body, so that the version check in :func:`upsert_internal` can be done with whatever
    transactional primitive the database offers.
    """

    @abstractmethod
    def get_internal(self, kind: VersionedDataKind, key: str) -> Optional[dict]:
        """
        Returns the object to which the specified key is mapped, or None if no such item exists.
        The method should not filter out deleted items, nor cache anything.
        """

    @abstractmethod
    def get_all_internal(self, kind: VersionedDataKind) -> Mapping[str, dict]:
        """
        Returns a dictionary of all objects of a given kind, including deleted placeholders.
        """

    @abstractmethod
    def init_internal(self, all_data: Mapping[VersionedDataKind, Mapping[str, dict]]):
        """
        Initializes (or re-initializes) the store with the specified set of objects. Any existing
        entries will be removed.

        :param all_data: A dictionary of data kinds to item collections, in dependency order
        """

    @abstractmethod
    def upsert_internal(self, kind: VersionedDataKind, item: dict) -> dict:
        """
        Updates or inserts the object associated with the specified key, only if the new item's
        version is greater than the stored one. Returns the final state of the item: the item that
        was passed in if the update succeeded, otherwise the item that is currently stored.
        """

    @abstractmethod
    def initialized_internal(self) -> bool:
        """
        Returns true if this store has been initialized, possibly by another process.
        """


class EventProcessor(metaclass=ABCMeta):
    """
    Interface for the component that receives evaluation events produced by the client.
    """

    @abstractmethod
    def send_event(self, event):
        """
        Processes an event to be sent at some point.
        """

    @abstractmethod
    def flush(self):
        """
        Specifies that any buffered events should be delivered as soon as possible.
        """

    @abstractmethod
    def stop(self):
        """
        Shuts down the event processor after first delivering all pending events.
        """


class NullEventProcessor(EventProcessor):
    def send_event(self, event):
        pass

    def flush(self):
        pass

    def stop(self):
        pass


class DataSourceState(Enum):
    """
    Enumeration representing the states a data source can be in at any given time.
    """

    INITIALIZING = 'initializing'
    """
    The initial state of the data source when the client is being initialized.

    If it encounters an error that requires it to retry initialization, the state will remain at
    :class:`DataSourceState.INITIALIZING` until it either succeeds and becomes VALID, or
    permanently fails and becomes OFF.
    """

    VALID = 'valid'
    """
    Indicates that the data source is currently operational and has not had any problems since the
    last time it received data.
    """

    INTERRUPTED = 'interrupted'
    """
    Indicates that the data source encountered an error that it will attempt to recover from.
    """

    OFF = 'off'
    """
    Indicates that the data source has been permanently shut down, either because of an
    unrecoverable error or because the client was closed.
    """


class DataSourceErrorKind(Enum):
    """
    Enumeration representing the types of errors a data source can encounter.
    """

    UNKNOWN = 'unknown'
    NETWORK_ERROR = 'network_error'
    ERROR_RESPONSE = 'error_response'
    INVALID_DATA = 'invalid_data'
    STORE_ERROR = 'store_error'


class DataSourceErrorInfo:
    """
    A description of an error condition that the data source encountered.
    """

    def __init__(self, kind: DataSourceErrorKind, status_code: int, time: float, message: Optional[str]):
        self.__kind = kind
        self.__status_code = status_code
        self.__time = time
        self.__message = message

    @property
    def kind(self) -> DataSourceErrorKind:
        """
        :return: The general category of the error
        """
        return self.__kind

    @property
    def status_code(self) -> int:
        """
        :return: An HTTP status or zero.
        """
        return self.__status_code

    @property
    def time(self) -> float:
        """
        :return: Unix timestamp when the error occurred
        """
        return self.__time

    @property
    def message(self) -> Optional[str]:
        return self.__message

    def __repr__(self) -> str:
        return "DataSourceErrorInfo(%s, %d, %r)" % (self.__kind.value, self.__status_code, self.__message)


class DataSourceStatus:
    """
    Information about the data source's status and about the last status change.
    """

    def __init__(self, state: DataSourceState, state_since: float, last_error: Optional[DataSourceErrorInfo]):
        self.__state = state
        self.__state_since = state_since
        self.__last_error = last_error

    @property
    def state(self) -> DataSourceState:
        """
        :return: The basic state of the data source.
        """
        return self.__state

    @property
    def since(self) -> float:
        """
        :return: Unix timestamp of the last state transition.
        """
        return self.__state_since

    @property
    def error(self) -> Optional[DataSourceErrorInfo]:
        """
        :return: A description of the last error, or None if there are no errors since startup
        """
        return self.__last_error


class DataSourceStatusProvider(metaclass=ABCMeta):
    """
    An interface for querying the status of the client's data source.

    An implementation of this interface is returned by
    :func:`flagcore.client.FlagClient.data_source_status_provider`. Application code never needs to
    implement this interface.
    """

    @property
    @abstractmethod
    def status(self) -> DataSourceStatus:
        """
        Returns the current status of the data source.
        """

    @abstractmethod
    def add_listener(self, listener: Callable[[DataSourceStatus], None]):
        """
        Subscribes for notifications of status changes. The listener is called with the new
        ``DataSourceStatus``.
        """

    @abstractmethod
    def remove_listener(self, listener: Callable[[DataSourceStatus], None]):
        """
        Unsubscribes from notifications of status changes.
        """


class FlagChange:
    """
    Change event fired when some aspect of the flag referenced by the key has changed.
    """

    def __init__(self, key: str):
        self.__key = key

    @property
    def key(self) -> str:
        """
        :return: The flag key that was modified by the store.
        """
        return self.__key


class FlagValueChange:
    """
    Change event fired when the evaluated value for the specified flag key has changed.
    """

    def __init__(self, key, old_value, new_value):
        self.__key = key
        self.__old_value = old_value
        self.__new_value = new_value

    @property
    def key(self):
        return self.__key

    @property
    def old_value(self):
        """
        :return: The old evaluation result prior to the flag changing
        """
        return self.__old_value

    @property
    def new_value(self):
        """
        :return: The new evaluation result after the flag was changed
        """
        return self.__new_value


class FlagTracker(metaclass=ABCMeta):
    """
    An interface for tracking changes in feature flag configurations.

    An implementation of this interface is returned by :class:`flagcore.client.FlagClient.flag_tracker`.
    Application code never needs to implement this interface.
    """

    @abstractmethod
    def add_listener(self, listener: Callable[[FlagChange], None]):
        """
        Registers a listener to be notified of feature flag changes in general.

        The listener is notified whenever the client receives a change to any feature flag's
        configuration, or to a segment that is referenced by a feature flag. If the updated flag is
        used as a prerequisite for other flags, those flags are reported as changed as well.

        Change events only work if the client is actually receiving data from a data source. If it
        is only reading flags from a persistent store, it cannot know when there is a change.

        The listener will be called from a worker thread.

        :param listener: listener to call when flag has changed
        """

    @abstractmethod
    def remove_listener(self, listener: Callable[[FlagChange], None]):
        """
        Unregisters a listener so that it will no longer be notified of feature flag changes.
        """

    @abstractmethod
    def add_flag_value_change_listener(self, key: str, context: Context, listener: Callable[[FlagValueChange], None]):
        """
        Registers a listener to be notified of a change in a specific feature flag's value for a
        specific evaluation context.

        The flag is evaluated immediately; whenever its configuration changes afterwards, it is
        re-evaluated for the same context and the listener is called if and only if the value changed.

        The returned object represents the subscription; pass it (not your listener) to
        :func:`remove_listener` to unsubscribe.

        :param key: The flag key to monitor
        :param context: The context to evaluate against the flag
        :param listener: The listener to trigger if the value has changed
        """


class DataStoreStatus:
    """
    Information about the data store's status.
    """

    def __init__(self, available: bool, stale: bool):
        self.__available = available
        self.__stale = stale

    @property
    def available(self) -> bool:
        """
        Returns true if the client believes the data store is now available.

        If the client receives an exception while trying to query or update the data store, then it
        sets this property to false (notifying listeners, if any) and polls the store at intervals
        until a query succeeds.
        """
        return self.__available

    @property
    def stale(self) -> bool:
        """
        Returns true if the store may be out of date due to a previous outage, so the client should
        rewrite all of its data to the store.
        """
        return self.__stale

    def __eq__(self, other) -> bool:
        if not isinstance(other, DataStoreStatus):
            return False
        return self.__available == other.__available and self.__stale == other.__stale

    def __repr__(self) -> str:
        return "DataStoreStatus(available=%s, stale=%s)" % (self.__available, self.__stale)


class DataStoreUpdateSink(metaclass=ABCMeta):
    """
    Interface that a data store implementation can use to report information back to the client.
    """

    @abstractmethod
    def status(self) -> DataStoreStatus:
        """
        Inspect the data store's operational status.
        """

    @abstractmethod
    def update_status(self, status: DataStoreStatus):
        """
        Reports a change in the data store's operational status.
        """

    @property
    @abstractmethod
    def listeners(self) -> Listeners:
        """
        Access the listeners associated with this sink instance.
        """


class DataStoreStatusProvider(metaclass=ABCMeta):
    """
    An interface for querying the status of a persistent data store.

    An implementation of this interface is returned by
    :func:`flagcore.client.FlagClient.data_store_status_provider`.
    """

    @property
    @abstractmethod
    def status(self) -> DataStoreStatus:
        """
        Returns the current status of the store. For the in-memory store, this is always
        "available".
        """

    @abstractmethod
    def is_monitoring_enabled(self) -> bool:
        """
        Indicates whether the current data store implementation supports status monitoring.
        """

    @abstractmethod
    def add_listener(self, listener: Callable[[DataStoreStatus], None]):
        """
        Subscribes for notifications of status changes.
        """

    @abstractmethod
    def remove_listener(self, listener: Callable[[DataStoreStatus], None]):
        """
        Unsubscribes from notifications of status changes.
        """


class EventName(str, Enum):
    """
    Names of the events that make up the change protocol.
    """

    SERVER_INTENT = "server-intent"
    PUT_OBJECT = "put-object"
    DELETE_OBJECT = "delete-object"
    PAYLOAD_TRANSFERRED = "payload-transferred"
    HEARTBEAT = "heart-beat"
    GOODBYE = "goodbye"
    ERROR = "error"


class ObjectKind(str, Enum):
    """
    Kinds of object carried by ``put-object`` and ``delete-object`` events.
    """

    FLAG = "flag"
    SEGMENT = "segment"

    @property
    def data_kind(self) -> VersionedDataKind:
        return FEATURES if self is ObjectKind.FLAG else SEGMENTS


class IntentCode(str, Enum):
    """
    Describes what the server intends to send before the next ``payload-transferred`` event.
    """

    TRANSFER_FULL = "xfer-full"
    """The server will send the complete data set, replacing anything held locally."""

    TRANSFER_CHANGES = "xfer-changes"
    """The server will send only the changes since the client's selector."""

    TRANSFER_NONE = "none"
    """The client is already up to date."""


class ChangeType(str, Enum):
    PUT = "put"
    DELETE = "delete"


@dataclass(frozen=True)
class Selector:
    """
    Identifies a consistent snapshot of the remote data set. The distinguished "no selector" has
    an empty state and is never sent back to the server.
    """

    state: str = ""
    version: int = 0

    @staticmethod
    def no_selector() -> "Selector":
        return Selector()

    def is_defined(self) -> bool:
        return self != Selector.no_selector()

    def name(self) -> str:
        return EventName.PAYLOAD_TRANSFERRED

    def to_dict(self) -> dict:
        return {"state": self.state, "version": self.version}

    @staticmethod
    def from_dict(data: dict) -> "Selector":
        """
        Deserializes the payload of a ``payload-transferred`` event.
        """
        state = data.get("state")
        version = data.get("version")

        if state is None or version is None:
            raise ValueError("Missing required fields in Selector JSON.")

        return Selector(state=state, version=version)


@dataclass(frozen=True)
class Change:
    """
    A single put or delete within a :class:`ChangeSet`. ``object`` is the raw JSON body of a put
    and None for a delete.
    """

    action: ChangeType
    kind: ObjectKind
    key: str
    version: int
    object: Optional[dict] = None


@dataclass(frozen=True)
class ChangeSet:
    """
    An ordered batch of changes bracketed by a server intent, together with the selector that
    names the snapshot reached once the changes are applied.
    """

    intent_code: IntentCode
    changes: List[Change]
    selector: Selector


@dataclass(frozen=True)
class Payload:
    """
    One entry of a ``server-intent`` event. ``target`` is carried through but not interpreted.
    """

    id: str
    target: int
    code: IntentCode
    reason: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target": self.target,
            "intentCode": self.code.value,
            "reason": self.reason,
        }

    @staticmethod
    def from_dict(data: dict) -> "Payload":
        intent_code = data.get("intentCode", data.get("code"))

        if intent_code is None:
            raise ValueError("Missing required field 'intentCode' in Payload JSON.")

        return Payload(
            id=data.get("id", ""),
            target=data.get("target", 0),
            code=IntentCode(intent_code),
            reason=data.get("reason", ""),
        )


@dataclass(frozen=True)
class ServerIntent:
    """
    The first event of every transfer, telling the client how to treat the changes that follow.
    """

    payloads: List[Payload]

    @property
    def payload(self) -> Optional[Payload]:
        """
        The first payload, which is the only one the client acts on, or None if there are none.
        """
        return self.payloads[0] if len(self.payloads) > 0 else None

    def name(self) -> str:
        return EventName.SERVER_INTENT

    def to_dict(self) -> dict:
        return {"payloads": [p.to_dict() for p in self.payloads]}

    @staticmethod
    def from_dict(data: dict) -> "ServerIntent":
        payloads = data.get("payloads")
        if not isinstance(payloads, list):
            raise ValueError("Missing required field 'payloads' in ServerIntent JSON.")

        return ServerIntent(payloads=[Payload.from_dict(p) for p in payloads])


class SelectorStore(metaclass=ABCMeta):
    """
    Remembers the selector of the last change set that was applied, so that a restarted client can
    ask the server for only the changes since then.
    """

    @abstractmethod
    def selector(self) -> Selector:
        """
        Returns the last persisted selector, or :func:`Selector.no_selector()`.
        """

    def save(self, selector: Selector):
        """
        Persists a new selector. The default implementation does nothing.
        """
