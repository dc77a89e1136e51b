import time
from typing import Callable, Optional

from flagcore.impl.listeners import Listeners
from flagcore.impl.rwlock import ReadWriteLock
from flagcore.interfaces import (
    DataSourceErrorInfo,
    DataSourceState,
    DataSourceStatus,
    DataSourceStatusProvider,
    DataStoreStatus,
    DataStoreStatusProvider,
    DataStoreUpdateSink
)


class DataSourceStatusProviderImpl(DataSourceStatusProvider):
    def __init__(self, listeners: Listeners):
        self.__listeners = listeners
        self.__status = DataSourceStatus(DataSourceState.INITIALIZING, time.time(), None)
        self.__lock = ReadWriteLock()

    @property
    def status(self) -> DataSourceStatus:
        with self.__lock.read():
            return self.__status

    def update_status(self, new_state: DataSourceState, new_error: Optional[DataSourceErrorInfo]):
        """
        Records a new state. INTERRUPTED is only meaningful after a successful start, so it is
        reported as INITIALIZING until the first VALID. Listeners are notified only if the state
        changed or an error was supplied.
        """
        status_to_broadcast = None

        with self.__lock.write():
            old_status = self.__status

            if new_state == DataSourceState.INTERRUPTED and old_status.state == DataSourceState.INITIALIZING:
                new_state = DataSourceState.INITIALIZING

            if new_state == old_status.state and new_error is None:
                return

            new_since = old_status.since if new_state == old_status.state else time.time()
            new_error = old_status.error if new_error is None else new_error

            self.__status = DataSourceStatus(new_state, new_since, new_error)
            status_to_broadcast = self.__status

        self.__listeners.notify(status_to_broadcast)

    def add_listener(self, listener: Callable[[DataSourceStatus], None]):
        self.__listeners.add(listener)

    def remove_listener(self, listener: Callable[[DataSourceStatus], None]):
        self.__listeners.remove(listener)


class DataStoreUpdateSinkImpl(DataStoreUpdateSink):
    def __init__(self, listeners: Listeners):
        self.__listeners = listeners

        self.__lock = ReadWriteLock()
        self.__status = DataStoreStatus(True, False)

    @property
    def listeners(self) -> Listeners:
        return self.__listeners

    def status(self) -> DataStoreStatus:
        with self.__lock.read():
            return self.__status

    def update_status(self, status: DataStoreStatus):
        with self.__lock.write():
            old_value, self.__status = self.__status, status

        if old_value != status:
            self.__listeners.notify(status)


class DataStoreStatusProviderImpl(DataStoreStatusProvider):
    """
    ``monitoring_fn`` reports whether the configured store supports status monitoring; with no
    persistent store it is None and the status is always "available".
    """

    def __init__(self, monitoring_fn: Optional[Callable[[], bool]], update_sink: DataStoreUpdateSinkImpl):
        self.__monitoring_fn = monitoring_fn
        self.__update_sink = update_sink

    @property
    def status(self) -> DataStoreStatus:
        return self.__update_sink.status()

    def is_monitoring_enabled(self) -> bool:
        return False if self.__monitoring_fn is None else self.__monitoring_fn()

    def add_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__update_sink.listeners.add(listener)

    def remove_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__update_sink.listeners.remove(listener)
