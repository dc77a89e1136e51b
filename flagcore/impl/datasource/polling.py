"""
This module contains the implementation of a polling synchronizer, along
with any required supporting classes and protocols.
"""

import json
from abc import abstractmethod
from threading import Event
from time import time
from typing import Generator, Mapping, Optional, Protocol, Tuple
from urllib import parse

import urllib3

from flagcore.config import Config
from flagcore.impl.datasystem import Synchronizer, Update
from flagcore.impl.datasystem.protocolv2 import (
    ChangeSetBuilder,
    DeleteObject,
    Error,
    Goodbye,
    ProtocolError,
    PutObject
)
from flagcore.impl.http import _http_factory
from flagcore.impl.util import (
    UnsuccessfulResponseException,
    _Fail,
    _headers,
    _Result,
    _Success,
    http_error_message,
    is_http_error_recoverable,
    log
)
from flagcore.interfaces import (
    ChangeSet,
    DataSourceErrorInfo,
    DataSourceErrorKind,
    DataSourceState,
    EventName,
    IntentCode,
    Selector,
    SelectorStore,
    ServerIntent
)

POLLING_ENDPOINT = "/sdk/poll"


PollingResult = _Result[Tuple[ChangeSet, Mapping], str]


class Requester(Protocol):  # pylint: disable=too-few-public-methods
    """
    Requester allows PollingDataSource to delegate fetching data to
    another component.

    This is useful for testing the PollingDataSource without needing to set up
    a test HTTP server.
    """

    @abstractmethod
    def fetch(self, selector: Optional[Selector]) -> PollingResult:
        """
        Fetches the data for the given selector.
        Returns a Result containing a tuple of ChangeSet and any response headers,
        or an error if the data could not be retrieved.
        """
        raise NotImplementedError


class PollingDataSource(Synchronizer):
    """
    PollingDataSource is a Synchronizer that requests the data at a fixed
    interval and yields an update for each response.
    """

    def __init__(
        self,
        poll_interval: float,
        requester: Requester,
    ):
        self._requester = requester
        self._poll_interval = poll_interval
        self._event = Event()

    @property
    def name(self) -> str:
        return "polling"

    def sync(self, ss: SelectorStore) -> Generator[Update, None, None]:
        """
        sync begins the synchronization process for the data source, yielding
        Update objects until it is stopped or an unrecoverable error occurs.
        """
        log.info("Starting polling data source; interval is %s seconds", self._poll_interval)
        while not self._event.is_set():
            selector = ss.selector()
            try:
                result = self._requester.fetch(selector if selector.is_defined() else None)
            except Exception as e:  # pylint: disable=broad-except
                log.warning("Error: Exception encountered when updating flags. %s", e)
                result = _Fail(error=str(e), exception=e)

            if isinstance(result, _Fail):
                if isinstance(result.exception, UnsuccessfulResponseException):
                    status_code = result.exception.status
                    message = http_error_message(status_code, "polling request")
                    error_info = DataSourceErrorInfo(
                        kind=DataSourceErrorKind.ERROR_RESPONSE,
                        status_code=status_code,
                        time=time(),
                        message=message,
                    )

                    if not is_http_error_recoverable(status_code):
                        log.error(message)
                        yield Update(
                            state=DataSourceState.OFF,
                            error=error_info,
                        )
                        break

                    log.warning(message)
                    yield Update(
                        state=DataSourceState.INTERRUPTED,
                        error=error_info,
                    )
                else:
                    is_invalid_data = isinstance(result.exception, (ValueError, ProtocolError)) or result.exception is None
                    log.warning("Polling request failed: %s", result.error)
                    yield Update(
                        state=DataSourceState.INTERRUPTED,
                        error=DataSourceErrorInfo(
                            kind=DataSourceErrorKind.INVALID_DATA if is_invalid_data else DataSourceErrorKind.NETWORK_ERROR,
                            status_code=0,
                            time=time(),
                            message=result.error,
                        ),
                    )
            else:
                (change_set, _) = result.value
                yield Update(
                    state=DataSourceState.VALID,
                    change_set=change_set,
                )

            if self._event.wait(self._poll_interval):
                break

    def stop(self):
        log.info("Stopping polling data source")
        self._event.set()


# pylint: disable=too-few-public-methods
class Urllib3PollingRequester:
    """
    Urllib3PollingRequester is a Requester that uses urllib3 to make HTTP
    requests.
    """

    def __init__(self, config: Config):
        self._etag = None
        self._http = _http_factory(config).create_pool_manager(1, config.base_uri)
        self._config = config
        self._poll_uri = config.base_uri + POLLING_ENDPOINT

    def fetch(self, selector: Optional[Selector]) -> PollingResult:
        """
        Fetches the data for the given selector.
        Returns a Result containing a tuple of ChangeSet and any response headers,
        or an error if the data could not be retrieved.
        """
        uri = self._poll_uri
        if selector is not None:
            uri += "?%s" % parse.urlencode({"basis": selector.state})

        hdrs = _headers(self._config)
        hdrs["Accept-Encoding"] = "gzip"

        if self._etag is not None:
            hdrs["If-None-Match"] = self._etag

        response = self._http.request(
            "GET",
            uri,
            headers=hdrs,
            timeout=urllib3.Timeout(
                connect=self._config.http.connect_timeout,
                read=self._config.http.read_timeout,
            ),
            retries=1,
        )

        if response.status >= 400:
            return _Fail(
                f"HTTP error {response.status}", UnsuccessfulResponseException(response.status)
            )

        headers = response.headers

        if response.status == 304:
            return _Success(value=(ChangeSetBuilder.no_changes(), headers))

        try:
            data = json.loads(response.data.decode("UTF-8"))
        except ValueError as err:
            return _Fail(error="Invalid JSON in polling response", exception=err)

        etag = headers.get("ETag")

        if etag is not None:
            self._etag = etag

        log.debug(
            "%s response status:[%d] ETag:[%s]",
            uri,
            response.status,
            etag,
        )

        changeset_result = polling_payload_to_changeset(data)
        if isinstance(changeset_result, _Success):
            return _Success(value=(changeset_result.value, headers))

        return _Fail(
            error=changeset_result.error,
            exception=changeset_result.exception,
        )


# pylint: disable=too-many-branches,too-many-return-statements
def polling_payload_to_changeset(data: dict) -> _Result[ChangeSet, str]:
    """
    Converts a polling payload into a ChangeSet.

    The payload is ``{"events": [{"name": ..., "data": ...}, ...]}``; the event name may also be
    given as ``"event"``. The first protocol event must be a server intent and the payload ends at
    the first ``payload-transferred`` event.
    """
    if not isinstance(data, dict) or not isinstance(data.get("events"), list):
        return _Fail(error="Invalid payload: 'events' key is missing or not a list")

    builder = ChangeSetBuilder()

    for event in data["events"]:
        if not isinstance(event, dict):
            return _Fail(error="Invalid payload: 'events' must be a list of objects")

        name = event.get("name", event.get("event"))
        if name is None:
            continue
        event_data = event.get("data")

        if name == EventName.SERVER_INTENT:
            try:
                server_intent = ServerIntent.from_dict(event_data)  # type: ignore
                builder.start(server_intent)
            except (AttributeError, ValueError, ProtocolError) as err:
                return _Fail(error="Invalid JSON in server intent", exception=err)

            if server_intent.payload.code == IntentCode.TRANSFER_NONE:  # type: ignore
                return _Success(ChangeSetBuilder.no_changes())
        elif name == EventName.PUT_OBJECT:
            try:
                put = PutObject.from_dict(event_data)  # type: ignore
            except (AttributeError, ValueError) as err:
                return _Fail(error="Invalid JSON in put object", exception=err)

            if put.kind is not None:
                builder.add_put(put.kind, put.key, put.version, put.object)
        elif name == EventName.DELETE_OBJECT:
            try:
                delete_object = DeleteObject.from_dict(event_data)  # type: ignore
            except (AttributeError, ValueError) as err:
                return _Fail(error="Invalid JSON in delete object", exception=err)

            if delete_object.kind is not None:
                builder.add_delete(
                    delete_object.kind, delete_object.key, delete_object.version
                )
        elif name == EventName.PAYLOAD_TRANSFERRED:
            try:
                selector = Selector.from_dict(event_data)  # type: ignore
                changeset = builder.finish(selector)

                return _Success(value=changeset)
            except (AttributeError, ValueError, ProtocolError) as err:
                return _Fail(
                    error="Invalid JSON in payload transferred object", exception=err
                )
        elif name == EventName.ERROR:
            try:
                error = Error.from_dict(event_data)  # type: ignore
            except (AttributeError, ValueError) as err:
                return _Fail(error="Invalid JSON in error event", exception=err)

            log.error("Error on %s: %s", error.payload_id, error.reason)
            return _Fail(error="server sent error in polling payload: %s" % error.reason)
        elif name == EventName.GOODBYE:
            try:
                goodbye = Goodbye.from_dict(event_data)  # type: ignore
            except (AttributeError, ValueError) as err:
                return _Fail(error="Invalid JSON in goodbye event", exception=err)

            return _Fail(error="server sent goodbye in polling payload: %s" % goodbye.reason)
        else:
            log.debug("Ignoring unknown event in polling payload: %s", name)

    return _Fail(error="didn't receive any known protocol events in polling payload")


class PollingDataSourceBuilder:
    """
    Builder for a PollingDataSource.
    """

    def __init__(self, config: Config):
        self._config = config
        self._requester: Optional[Requester] = None

    def requester(self, requester: Requester) -> "PollingDataSourceBuilder":
        """Sets a custom Requester for the PollingDataSource."""
        self._requester = requester
        return self

    def build(self) -> PollingDataSource:
        """Builds the PollingDataSource with the configured parameters."""
        requester = (
            self._requester
            if self._requester is not None
            else Urllib3PollingRequester(self._config)
        )

        return PollingDataSource(
            poll_interval=self._config.poll_interval, requester=requester
        )
