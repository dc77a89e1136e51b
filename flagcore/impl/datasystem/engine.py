"""
The data synchronization engine: runs a data source, applies what it
produces to the store, and reports status.
"""

import time
from queue import Queue
from threading import Event, Thread
from typing import Callable, List, Optional

from flagcore.config import Config
from flagcore.impl.datasource.polling import PollingDataSourceBuilder
from flagcore.impl.datasource.status import (
    DataSourceStatusProviderImpl,
    DataStoreStatusProviderImpl,
    DataStoreUpdateSinkImpl
)
from flagcore.impl.datasource.streaming import (
    BACKOFF_RESET_INTERVAL,
    JITTER_RATIO,
    MAX_RETRY_DELAY,
    StreamingDataSourceBuilder
)
from flagcore.impl.datasystem import Synchronizer, Update
from flagcore.impl.datasystem.store import PersistentStoreWrapper, Store
from flagcore.impl.flag_tracker import FlagTrackerImpl
from flagcore.impl.listeners import Listeners
from flagcore.impl.retry_delay import (
    DefaultBackoffStrategy,
    DefaultJitterStrategy,
    RetryDelayStrategy
)
from flagcore.impl.rwlock import ReadWriteLock
from flagcore.impl.util import log
from flagcore.interfaces import (
    DataSourceErrorInfo,
    DataSourceErrorKind,
    DataSourceState,
    DataSourceStatusProvider,
    DataStoreStatus,
    DataStoreStatusProvider,
    FlagTracker
)

SynchronizerBuilder = Callable[[Config], Synchronizer]


def _default_synchronizer_builder(config: Config) -> SynchronizerBuilder:
    if config.data_source is not None:
        return config.data_source
    if config.stream:
        return lambda c: StreamingDataSourceBuilder(c).build()
    return lambda c: PollingDataSourceBuilder(c).build()


class DataSyncEngine:
    """
    DataSyncEngine keeps the client's store current.

    It runs one synchronizer at a time on a background thread, applies each change set the
    synchronizer yields, and forwards the synchronizer's state to the data source status
    provider. If the synchronizer stops on its own without reporting an unrecoverable error, a
    new one is started after a jittered, exponentially increasing delay.

    In offline mode nothing runs. In daemon mode (``use_ldd``) nothing runs either and all reads
    go to the configured persistent store, which another process keeps up to date.
    """

    def __init__(self, config: Config, synchronizer_builder: Optional[SynchronizerBuilder] = None):
        self._config = config
        self._disabled = config.offline
        self._daemon_mode = config.use_ldd and not config.offline
        self._synchronizer_builder = synchronizer_builder or _default_synchronizer_builder(config)

        # Set up event listeners
        self._flag_change_listeners = Listeners()
        self._change_set_listeners = Listeners()
        self._data_store_listeners = Listeners()

        self._data_store_listeners.add(self._persistent_store_outage_recovery)

        self._store = Store(self._flag_change_listeners, self._change_set_listeners, config.selector_store)

        self._data_source_status_provider = DataSourceStatusProviderImpl(Listeners())
        self._data_store_update_sink = DataStoreUpdateSinkImpl(self._data_store_listeners)

        monitoring_fn = None
        if config.feature_store is not None:
            wrapper = PersistentStoreWrapper(config.feature_store, self._data_store_update_sink)
            self._store.with_persistence(wrapper, writable=not config.use_ldd)
            monitoring_fn = wrapper.is_monitoring_enabled
        self._data_store_status_provider = DataStoreStatusProviderImpl(monitoring_fn, self._data_store_update_sink)

        # Flag tracker (evaluation function set later by client)
        self._flag_tracker = FlagTrackerImpl(self._flag_change_listeners, lambda key, context: None)

        self._retry_delay = RetryDelayStrategy(
            config.initial_reconnect_delay,
            BACKOFF_RESET_INTERVAL,
            DefaultBackoffStrategy(MAX_RETRY_DELAY),
            DefaultJitterStrategy(JITTER_RATIO),
        )

        # Threading
        self._stop_event = Event()
        self._lock = ReadWriteLock()
        self._active_synchronizer: Optional[Synchronizer] = None
        self._threads: List[Thread] = []
        self._initialized = Event()
        self._closed = False

    def start(self, set_on_ready: Event):
        """
        Starts the engine. ``set_on_ready`` is set once the store holds a complete data set, or
        when the engine gives up, whichever comes first.
        """
        if self._disabled:
            log.warning("Client is in offline mode; evaluations will return application-defined default values")
            set_on_ready.set()
            return

        if self._daemon_mode:
            log.info("Started in daemon mode; flags will be read from the persistent store")
            self._initialized.set()
            set_on_ready.set()
            return

        self._store.restore()

        main_thread = Thread(
            target=self._run_main_loop,
            args=(set_on_ready,),
            name="flagcore.datasystem.main",
            daemon=True
        )
        main_thread.start()
        self._threads.append(main_thread)

    def stop(self):
        """
        Stops the active synchronizer, waits for the worker threads and closes the store. Calling
        this more than once has no further effect.
        """
        with self._lock.write():
            if self._closed:
                return
            self._closed = True
            self._stop_event.set()
            active = self._active_synchronizer

        if active is not None:
            try:
                active.stop()
            except Exception as e:
                log.error("Error stopping active data source: %s", e)

        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=5.0)
                if thread.is_alive():
                    log.warning("Thread %s did not terminate in time", thread.name)

        self._data_source_status_provider.update_status(DataSourceState.OFF, None)

        err = self._store.close()
        if err is not None:
            log.error("Error closing the data store: %s", err)
        log.info("Data system stopped")

    def _run_main_loop(self, set_on_ready: Event):
        try:
            while not self._stop_event.is_set():
                synchronizer = self._next_synchronizer()
                if synchronizer is None:
                    break

                log.info("Synchronizer %s is starting", synchronizer.name)
                if self._consume_synchronizer_results(synchronizer, set_on_ready):
                    break

                if self._stop_event.is_set():
                    break

                delay = self._retry_delay.next_retry_delay(time.time())
                log.info("Synchronizer %s ended; will restart in %0.3f seconds", synchronizer.name, delay)
                self._data_source_status_provider.update_status(DataSourceState.INTERRUPTED, None)
                if self._stop_event.wait(delay):
                    break
        except Exception as e:
            log.exception("Error in data system main loop: %s", e)
        finally:
            # Ensure we always set the ready event when exiting
            set_on_ready.set()
            with self._lock.write():
                self._active_synchronizer = None

    def _next_synchronizer(self) -> Optional[Synchronizer]:
        with self._lock.write():
            if self._stop_event.is_set():
                return None
            try:
                synchronizer = self._synchronizer_builder(self._config)
            except Exception as e:
                log.error("Failed to build data source: %s", e)
                self._data_source_status_provider.update_status(
                    DataSourceState.OFF,
                    DataSourceErrorInfo(DataSourceErrorKind.UNKNOWN, 0, time.time(), str(e)),
                )
                return None
            self._active_synchronizer = synchronizer
            return synchronizer

    def _consume_synchronizer_results(self, synchronizer: Synchronizer, set_on_ready: Event) -> bool:
        """
        Applies the synchronizer's updates, in order, until it finishes.

        :return: True if the synchronizer failed permanently and should not be restarted
        """
        action_queue: Queue = Queue()

        def reader():
            try:
                for update in synchronizer.sync(self._store):
                    action_queue.put(update)
            except Exception as e:
                log.exception("Synchronizer %s failed: %s", synchronizer.name, e)
            finally:
                action_queue.put("quit")

        sync_reader = Thread(
            target=reader,
            name="flagcore.datasystem.reader",
            daemon=True
        )

        try:
            sync_reader.start()

            while True:
                update = action_queue.get(True)
                if isinstance(update, str):
                    break

                if self._stop_event.is_set():
                    return False

                if self._handle_update(update, set_on_ready):
                    return True
        except Exception as e:
            log.exception("Error consuming synchronizer results: %s", e)
        finally:
            synchronizer.stop()
            sync_reader.join(0.5)

        return False

    def _handle_update(self, update: Update, set_on_ready: Event) -> bool:
        log.debug("Data source update: %s", update.state)

        if update.change_set is not None and not self._store.apply(update.change_set, True):
            self._data_source_status_provider.update_status(
                DataSourceState.INTERRUPTED,
                DataSourceErrorInfo(DataSourceErrorKind.STORE_ERROR, 0, time.time(), "failed to apply change set"),
            )
            return False

        if update.state == DataSourceState.VALID:
            self._retry_delay.set_good_since(time.time())
            if self._store.initialized and not self._initialized.is_set():
                log.info("Data system initialized")
                self._initialized.set()
                set_on_ready.set()

        self._data_source_status_provider.update_status(update.state, update.error)

        if update.state == DataSourceState.OFF:
            log.error("Data source %s stopped permanently", self._active_name())
            return True
        return False

    def _active_name(self) -> str:
        with self._lock.read():
            return self._active_synchronizer.name if self._active_synchronizer is not None else "none"

    def _persistent_store_outage_recovery(self, data_store_status: DataStoreStatus):
        """
        Monitor the data store status. If the store comes online and
        potentially has stale data, we should write our known state to it.
        """
        if not data_store_status.available:
            return

        if not data_store_status.stale:
            return

        err = self._store.commit()
        if err is not None:
            log.error("Failed to reinitialize data store: %s", err)

    @property
    def store(self) -> Store:
        return self._store

    @property
    def initialized(self) -> bool:
        """
        True once a complete data set has been applied, or immediately in daemon mode. In offline
        mode this is always False.
        """
        return self._initialized.is_set()

    def set_flag_value_eval_fn(self, eval_fn):
        """
        Set the flag value evaluation function for the flag tracker.

        :param eval_fn: Function with signature (key: str, context: Context) -> Any
        """
        self._flag_tracker = FlagTrackerImpl(self._flag_change_listeners, eval_fn)

    @property
    def data_source_status_provider(self) -> DataSourceStatusProvider:
        return self._data_source_status_provider

    @property
    def data_store_status_provider(self) -> DataStoreStatusProvider:
        return self._data_store_status_provider

    @property
    def flag_tracker(self) -> FlagTracker:
        return self._flag_tracker
