"""
This module contains the implementations of a streaming synchronizer, along
with any required supporting classes and protocols.
"""

import json
from time import time
from typing import Callable, Generator, Optional, Tuple

from ld_eventsource import SSEClient
from ld_eventsource.actions import Event, Fault, Start
from ld_eventsource.config import (
    ConnectStrategy,
    ErrorStrategy,
    RetryDelayStrategy
)
from ld_eventsource.errors import HTTPStatusError

from flagcore.config import Config
from flagcore.impl.datasource.legacy import (
    delete_to_change_set,
    patch_to_change_set,
    put_to_change_set
)
from flagcore.impl.datasystem import Synchronizer, Update
from flagcore.impl.datasystem.protocolv2 import (
    ChangeSetBuilder,
    DeleteObject,
    Error,
    Goodbye,
    ProtocolError,
    PutObject
)
from flagcore.impl.http import HTTPFactory, _http_factory
from flagcore.impl.util import http_error_message, is_http_error_recoverable, log
from flagcore.interfaces import (
    DataSourceErrorInfo,
    DataSourceErrorKind,
    DataSourceState,
    EventName,
    IntentCode,
    Selector,
    SelectorStore,
    ServerIntent
)

# allows for up to 5 minutes to elapse without any data sent across the stream.
# The heartbeats sent as comments on the stream will keep this from triggering
STREAM_READ_TIMEOUT = 5 * 60

MAX_RETRY_DELAY = 30
BACKOFF_RESET_INTERVAL = 60
JITTER_RATIO = 0.5

STREAMING_ENDPOINT = "/sdk/stream"

SseClientBuilder = Callable[[Config, SelectorStore], SSEClient]


def create_sse_client(config: Config, ss: SelectorStore) -> SSEClient:
    """
    create_sse_client creates an SSEClient instance configured to connect
    to the streaming endpoint. The selector held by ``ss`` is re-read on every
    connection attempt and sent as the ``basis`` query parameter.
    """
    uri = config.stream_base_uri + STREAMING_ENDPOINT

    # We don't want the stream to use the same read timeout as the rest of the client.
    http_factory = _http_factory(config)
    stream_http_factory = HTTPFactory(
        http_factory.base_headers,
        http_factory.http_config,
        override_read_timeout=STREAM_READ_TIMEOUT,
    )

    def query_params() -> dict:
        selector = ss.selector()
        return {"basis": selector.state} if selector.is_defined() else {}

    return SSEClient(
        connect=ConnectStrategy.http(
            url=uri,
            headers=http_factory.base_headers,
            pool=stream_http_factory.create_pool_manager(1, uri),
            urllib3_request_options={"timeout": stream_http_factory.timeout},
            query_params=query_params
        ),
        # we'll make error-handling decisions when we see a Fault
        error_strategy=ErrorStrategy.always_continue(),
        initial_retry_delay=config.initial_reconnect_delay,
        retry_delay_strategy=RetryDelayStrategy.default(
            max_delay=MAX_RETRY_DELAY,
            backoff_multiplier=2,
            jitter_multiplier=JITTER_RATIO,
        ),
        retry_delay_reset_threshold=BACKOFF_RESET_INTERVAL,
        logger=log,
    )


class StreamingDataSource(Synchronizer):
    """
    StreamingDataSource is a Synchronizer that keeps an SSE connection open
    and yields an update for every change set it receives.

    The SSE client reconnects by itself with backoff; this class decides,
    for each failure, whether reconnecting is worthwhile.
    """

    def __init__(self, config: Config, sse_client_builder: SseClientBuilder = create_sse_client):
        self._sse_client_builder = sse_client_builder
        self._config = config
        self._sse: Optional[SSEClient] = None
        self._running = False

    @property
    def name(self) -> str:
        return "streaming"

    def sync(self, ss: SelectorStore) -> Generator[Update, None, None]:
        """
        sync opens the stream and yields Update objects until the stream is
        stopped or an unrecoverable error occurs.
        """
        log.info("Starting streaming connection to uri: %s", self._config.stream_base_uri + STREAMING_ENDPOINT)
        self._sse = self._sse_client_builder(self._config, ss)
        if self._sse is None:
            log.error("Failed to create SSE client for streaming updates.")
            return

        change_set_builder = ChangeSetBuilder()
        self._running = True

        for action in self._sse.all:
            if isinstance(action, Fault):
                # If the SSE client detects the stream has closed, then it will
                # emit a fault with no-error. We can ignore this since we want
                # the connection to continue.
                if action.error is None:
                    continue

                (update, should_continue) = self._handle_error(action.error)
                if update is not None:
                    yield update

                if not should_continue:
                    break
                continue

            if isinstance(action, Start):
                log.debug("Stream connection established")
                # anything received on an earlier connection is incomplete
                change_set_builder.reset()
                continue

            if not isinstance(action, Event):
                continue

            try:
                update = self._process_message(action, change_set_builder)
                if update is not None:
                    yield update
            except (ValueError, ProtocolError) as e:
                log.info(
                    "Error while handling stream event; will restart stream: %s", e
                )
                self._sse.interrupt()

                (update, should_continue) = self._handle_error(e)
                if update is not None:
                    yield update
                if not should_continue:
                    break
            except Exception as e:  # pylint: disable=broad-except
                log.info(
                    "Error while handling stream event; will restart stream: %s", e
                )
                self._sse.interrupt()

                yield Update(
                    state=DataSourceState.INTERRUPTED,
                    error=DataSourceErrorInfo(
                        DataSourceErrorKind.UNKNOWN, 0, time(), str(e)
                    ),
                )

        self._sse.close()

    def stop(self):
        """
        Stops the streaming synchronizer, closing any open connections.
        """
        log.info("Stopping streaming connection")
        self._running = False
        if self._sse:
            self._sse.close()

    # pylint: disable=too-many-return-statements
    def _process_message(self, msg: Event, change_set_builder: ChangeSetBuilder) -> Optional[Update]:
        """
        Processes a single message from the SSE stream and returns an Update
        object if applicable.

        Raises ValueError (including JSONDecodeError) for a malformed message
        and ProtocolError for events that arrive out of order.
        """
        if msg.event == EventName.HEARTBEAT:
            return None

        if msg.event == EventName.SERVER_INTENT:
            server_intent = ServerIntent.from_dict(json.loads(msg.data))
            change_set_builder.start(server_intent)

            if server_intent.payload.code == IntentCode.TRANSFER_NONE:  # type: ignore
                change_set_builder.expect_changes()
                return Update(state=DataSourceState.VALID)
            return None

        if msg.event == EventName.PUT_OBJECT:
            put = PutObject.from_dict(json.loads(msg.data))
            if put.kind is None:
                log.debug("Ignoring put-object of unknown kind for key %s", put.key)
                return None
            change_set_builder.add_put(put.kind, put.key, put.version, put.object)
            return None

        if msg.event == EventName.DELETE_OBJECT:
            delete = DeleteObject.from_dict(json.loads(msg.data))
            if delete.kind is None:
                log.debug("Ignoring delete-object of unknown kind for key %s", delete.key)
                return None
            change_set_builder.add_delete(delete.kind, delete.key, delete.version)
            return None

        if msg.event == EventName.GOODBYE:
            goodbye = Goodbye.from_dict(json.loads(msg.data))
            if not goodbye.silent:
                log.error(
                    "SSE server received error: %s (%s)",
                    goodbye.reason,
                    goodbye.catastrophe,
                )

            # the server is about to close the connection; reconnect rather than wait for it
            change_set_builder.reset()
            self._sse.interrupt()  # type: ignore
            return Update(
                state=DataSourceState.INTERRUPTED,
                error=DataSourceErrorInfo(
                    DataSourceErrorKind.UNKNOWN, 0, time(), "server sent goodbye: %s" % goodbye.reason
                ),
            )

        if msg.event == EventName.ERROR:
            error = Error.from_dict(json.loads(msg.data))
            log.error("Error on %s: %s", error.payload_id, error.reason)

            # The changes received so far are discarded, but the last server
            # intent stays in effect unless the server sends a new one.
            change_set_builder.reset()

            return Update(
                state=DataSourceState.INTERRUPTED,
                error=DataSourceErrorInfo(
                    DataSourceErrorKind.INVALID_DATA, 0, time(), error.reason
                ),
            )

        if msg.event == EventName.PAYLOAD_TRANSFERRED:
            selector = Selector.from_dict(json.loads(msg.data))
            change_set = change_set_builder.finish(selector)

            return Update(
                state=DataSourceState.VALID,
                change_set=change_set,
            )

        if msg.event in ('put', 'patch', 'delete'):
            return self._process_legacy_message(msg)

        log.info("Unexpected event found in stream: %s", msg.event)
        return None

    @staticmethod
    def _process_legacy_message(msg: Event) -> Optional[Update]:
        payload = json.loads(msg.data)
        if not isinstance(payload, dict):
            raise ValueError("Invalid %s message: expected an object" % msg.event)

        if msg.event == 'put':
            change_set = put_to_change_set(payload)
        elif msg.event == 'patch':
            change_set = patch_to_change_set(payload)
        else:
            change_set = delete_to_change_set(payload)

        if change_set is None:
            return None
        return Update(state=DataSourceState.VALID, change_set=change_set)

    def _handle_error(self, error: Exception) -> Tuple[Optional[Update], bool]:
        """
        This method handles errors that occur during the streaming process.

        It may return an update indicating the error state, and a boolean
        indicating whether the synchronizer should continue retrying the connection.

        If an update is provided, it should be forward upstream, regardless of
        whether or not we are going to retry this failure.

        The return should be thought of (update, should_continue)
        """
        if not self._running:
            return (None, False)  # don't retry if we've been deliberately stopped

        update: Optional[Update] = None

        if isinstance(error, (ValueError, ProtocolError)):
            log.error("Unexpected error on stream connection: %s, will retry", error)

            update = Update(
                state=DataSourceState.INTERRUPTED,
                error=DataSourceErrorInfo(
                    DataSourceErrorKind.INVALID_DATA, 0, time(), str(error)
                ),
            )
            return (update, True)

        if isinstance(error, HTTPStatusError):
            error_info = DataSourceErrorInfo(
                DataSourceErrorKind.ERROR_RESPONSE,
                error.status,
                time(),
                str(error),
            )

            http_error_message_result = http_error_message(
                error.status, "stream connection"
            )
            is_recoverable = is_http_error_recoverable(error.status)
            update = Update(
                state=(
                    DataSourceState.INTERRUPTED
                    if is_recoverable
                    else DataSourceState.OFF
                ),
                error=error_info,
            )

            if not is_recoverable:
                log.error(http_error_message_result)
                self.stop()
                return (update, False)

            log.warning(http_error_message_result)
            return (update, True)

        log.warning("Unexpected error on stream connection: %s, will retry", error)

        update = Update(
            state=DataSourceState.INTERRUPTED,
            error=DataSourceErrorInfo(
                DataSourceErrorKind.NETWORK_ERROR, 0, time(), str(error)
            ),
        )
        # no stacktrace here because, for a typical connection error, it'll
        # just be a lengthy tour of urllib3 internals

        return (update, True)

    # magic methods for "with" statement (used in testing)
    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.stop()


class StreamingDataSourceBuilder:  # pylint: disable=too-few-public-methods
    """
    Builder for a StreamingDataSource.
    """

    def __init__(self, config: Config):
        self._config = config
        self._sse_client_builder: SseClientBuilder = create_sse_client

    def sse_client_builder(self, builder: SseClientBuilder) -> "StreamingDataSourceBuilder":
        """Replaces the function that creates the SSE client, for testing."""
        self._sse_client_builder = builder
        return self

    def build(self) -> StreamingDataSource:
        """Builds a StreamingDataSource instance with the configured parameters."""
        return StreamingDataSource(self._config, self._sse_client_builder)
