"""
This submodule contains the :class:`Config` class for custom configuration of the client.
"""

from typing import TYPE_CHECKING, Callable, List, Optional

from flagcore.hook import Hook
from flagcore.impl.util import log, validate_sdk_key_format
from flagcore.interfaces import EventProcessor, FeatureStore, SelectorStore

if TYPE_CHECKING:
    from flagcore.impl.datasystem import Synchronizer


class HTTPConfig:
    """Advanced HTTP configuration options for the client.

    This class groups together HTTP/HTTPS-related configuration properties that rarely need to be changed.
    If you need to set these, construct an ``HTTPConfig`` instance and pass it as the ``http`` parameter when
    you construct the main :class:`Config` for the client.
    """

    def __init__(
        self,
        connect_timeout: float = 10,
        read_timeout: float = 15,
        http_proxy: Optional[str] = None,
        ca_certs: Optional[str] = None,
        disable_ssl_verification: bool = False,
    ):
        """
        :param connect_timeout: The connect timeout for network connections in seconds.
        :param read_timeout: The read timeout for network connections in seconds. The streaming
          connection uses its own, longer, read timeout.
        :param http_proxy: Use a proxy when connecting to the service. This is the full URI of the
          proxy; for example: http://my-proxy.com:1234. Setting this overrides any proxy specified by
          an environment variable, but only for this client's connections.
        :param ca_certs: If using a custom certificate authority, set this to the file path of the
          certificate bundle. By default the ``certifi`` bundle is used.
        :param disable_ssl_verification: If true, completely disables SSL verification and certificate
          verification for secure requests. This is unsafe and should not be used in a production environment.
        """
        self.__connect_timeout = connect_timeout
        self.__read_timeout = read_timeout
        self.__http_proxy = http_proxy
        self.__ca_certs = ca_certs
        self.__disable_ssl_verification = disable_ssl_verification

    @property
    def connect_timeout(self) -> float:
        return self.__connect_timeout

    @property
    def read_timeout(self) -> float:
        return self.__read_timeout

    @property
    def http_proxy(self) -> Optional[str]:
        return self.__http_proxy

    @property
    def ca_certs(self) -> Optional[str]:
        return self.__ca_certs

    @property
    def disable_ssl_verification(self) -> bool:
        return self.__disable_ssl_verification


class Config:
    """Configuration options for the client.

    Create an instance of ``Config`` and pass it to the :class:`flagcore.client.FlagClient`
    constructor. A ``Config`` cannot be changed after it is created; use
    :func:`copy_with_new_sdk_key` to get a modified copy.
    """

    def __init__(
        self,
        sdk_key: str,
        base_uri: str = 'https://sdk.launchdarkly.com',
        stream_uri: str = 'https://stream.launchdarkly.com',
        stream: bool = True,
        initial_reconnect_delay: float = 1,
        poll_interval: float = 30,
        offline: bool = False,
        use_ldd: bool = False,
        feature_store: Optional[FeatureStore] = None,
        data_source: Optional[Callable[['Config'], 'Synchronizer']] = None,
        selector_store: Optional[SelectorStore] = None,
        hooks: Optional[List[Hook]] = None,
        event_processor: Optional[EventProcessor] = None,
        http: Optional[HTTPConfig] = None,
    ):
        """
        :param sdk_key: The SDK key, sent in the ``Authorization`` header. This is always required
          unless ``offline`` is set.
        :param base_uri: The base URL for polling requests.
        :param stream_uri: The base URL for the streaming connection.
        :param stream: Whether the streaming API should be used to receive flag updates. If False,
          the client polls ``base_uri`` instead.
        :param initial_reconnect_delay: The initial reconnect delay (in seconds) for the streaming
          connection. The delay grows exponentially, with jitter, on consecutive failures, up to 30 seconds.
        :param poll_interval: The number of seconds between polls for flag updates if streaming is off.
          Values below 30 are raised to 30.
        :param offline: Whether the client should be initialized in offline mode. In offline mode,
          default values are returned for all flags and no remote network requests are made.
        :param use_ldd: Whether the client should only read flags from ``feature_store``, which some
          other process keeps up to date. No data source is started.
        :param feature_store: A persistent :class:`flagcore.interfaces.FeatureStore` to write through
          to (or, with ``use_ldd``, to read from). The client always keeps its own in-memory copy.
        :param data_source: A factory for a custom data source taking the config, such as
          :func:`flagcore.integrations.test_data.TestData.build_data_source`. It replaces the
          streaming or polling source.
        :param selector_store: Remembers which snapshot of the data the client holds across restarts.
        :param hooks: Hooks that observe flag evaluations.
        :param event_processor: Receives the evaluation events produced by the client.
        :param http: Optional properties for customizing the client's HTTP/HTTPS behavior. See
          :class:`HTTPConfig`.
        """
        self.__sdk_key = validate_sdk_key_format(sdk_key, log)
        self.__base_uri = base_uri.rstrip('/')
        self.__stream_uri = stream_uri.rstrip('/')
        self.__stream = stream
        self.__initial_reconnect_delay = initial_reconnect_delay
        self.__poll_interval = max(poll_interval, 30.0)
        self.__offline = offline
        self.__use_ldd = use_ldd
        self.__feature_store = feature_store
        self.__data_source = data_source
        self.__selector_store = selector_store
        self.__hooks = [hook for hook in hooks if isinstance(hook, Hook)] if hooks else []
        self.__event_processor = event_processor
        self.__http = http if http is not None else HTTPConfig()

    def copy_with_new_sdk_key(self, new_sdk_key: str) -> 'Config':
        """Returns a new ``Config`` instance that is the same as this one, except for having a different SDK key.

        :param new_sdk_key: the new SDK key
        """
        return Config(
            sdk_key=new_sdk_key,
            base_uri=self.__base_uri,
            stream_uri=self.__stream_uri,
            stream=self.__stream,
            initial_reconnect_delay=self.__initial_reconnect_delay,
            poll_interval=self.__poll_interval,
            offline=self.__offline,
            use_ldd=self.__use_ldd,
            feature_store=self.__feature_store,
            data_source=self.__data_source,
            selector_store=self.__selector_store,
            hooks=self.__hooks,
            event_processor=self.__event_processor,
            http=self.__http,
        )

    @property
    def sdk_key(self) -> Optional[str]:
        return self.__sdk_key

    @property
    def base_uri(self) -> str:
        return self.__base_uri

    @property
    def stream_base_uri(self) -> str:
        return self.__stream_uri

    @property
    def stream(self) -> bool:
        return self.__stream

    @property
    def initial_reconnect_delay(self) -> float:
        return self.__initial_reconnect_delay

    @property
    def poll_interval(self) -> float:
        return self.__poll_interval

    @property
    def offline(self) -> bool:
        return self.__offline

    @property
    def use_ldd(self) -> bool:
        return self.__use_ldd

    @property
    def feature_store(self) -> Optional[FeatureStore]:
        return self.__feature_store

    @property
    def data_source(self) -> Optional[Callable[['Config'], 'Synchronizer']]:
        return self.__data_source

    @property
    def selector_store(self) -> Optional[SelectorStore]:
        return self.__selector_store

    @property
    def hooks(self) -> List[Hook]:
        """
        Initial set of hooks for the client.

        Hooks provide entrypoints which allow for observation of client functions; they are
        called in the order given.
        """
        return self.__hooks

    @property
    def event_processor(self) -> Optional[EventProcessor]:
        return self.__event_processor

    @property
    def http(self) -> HTTPConfig:
        return self.__http

    def _validate(self):
        if self.offline is False and (self.sdk_key is None or self.sdk_key == ''):
            log.warning("Missing or blank sdk_key.")


__all__ = ['Config', 'HTTPConfig']
