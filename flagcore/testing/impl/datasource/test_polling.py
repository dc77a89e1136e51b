# pylint: disable=missing-docstring

from typing import Iterator, List, Optional

from flagcore.impl.datasource.polling import (
    PollingDataSource,
    PollingResult,
    polling_payload_to_changeset
)
from flagcore.impl.datasystem.protocolv2 import ChangeSetBuilder
from flagcore.impl.util import UnsuccessfulResponseException, _Fail, _Success
from flagcore.interfaces import (
    ChangeType,
    DataSourceErrorKind,
    DataSourceState,
    IntentCode,
    ObjectKind,
    Selector
)
from flagcore.testing.mock_components import MockSelectorStore


class ListBasedRequester:
    def __init__(self, results: Iterator[PollingResult]):
        self._results = results
        self.selectors: List[Optional[Selector]] = []

    def fetch(self, selector: Optional[Selector]) -> PollingResult:
        self.selectors.append(selector)
        return next(self._results)


def intent(code="xfer-full"):
    return {"name": "server-intent", "data": {"payloads": [{"id": "p", "target": 2, "intentCode": code, "reason": "test"}]}}


def transferred(state="p:2", version=2):
    return {"name": "payload-transferred", "data": {"state": state, "version": version}}


def put(key, version, kind="flag"):
    return {"name": "put-object", "data": {"kind": kind, "key": key, "version": version, "object": {"key": key, "version": version}}}


def make_source(*results):
    requester = ListBasedRequester(iter(results))
    return PollingDataSource(poll_interval=0.01, requester=requester), requester


class TestPollingPayload:
    def test_full_payload(self):
        result = polling_payload_to_changeset({"events": [intent(), put("a", 1), put("s", 2, "segment"), transferred()]})

        assert isinstance(result, _Success)
        change_set = result.value
        assert change_set.intent_code == IntentCode.TRANSFER_FULL
        assert change_set.selector == Selector(state="p:2", version=2)
        assert [(c.kind, c.key) for c in change_set.changes] == [(ObjectKind.FLAG, "a"), (ObjectKind.SEGMENT, "s")]

    def test_delete_object(self):
        delete = {"name": "delete-object", "data": {"kind": "flag", "key": "a", "version": 4}}
        result = polling_payload_to_changeset({"events": [intent("xfer-changes"), delete, transferred()]})

        assert result.value.intent_code == IntentCode.TRANSFER_CHANGES
        assert result.value.changes[0].action == ChangeType.DELETE

    def test_event_field_is_accepted_for_name(self):
        events = [intent(), put("a", 1), transferred()]
        for e in events:
            e["event"] = e.pop("name")
        result = polling_payload_to_changeset({"events": events})

        assert isinstance(result, _Success)
        assert len(result.value.changes) == 1

    def test_none_intent_means_no_changes(self):
        result = polling_payload_to_changeset({"events": [intent("none")]})

        assert result.value.intent_code == IntentCode.TRANSFER_NONE
        assert result.value.changes == []

    def test_unknown_kind_and_unknown_event_are_skipped(self):
        events = [intent(), put("w", 1, "widget"), {"name": "something-new", "data": {}}, put("a", 1), transferred()]
        result = polling_payload_to_changeset({"events": events})

        assert [c.key for c in result.value.changes] == ["a"]

    def test_events_after_payload_transferred_are_ignored(self):
        result = polling_payload_to_changeset({"events": [intent(), transferred(), put("a", 1)]})

        assert result.value.changes == []

    def test_missing_events(self):
        assert isinstance(polling_payload_to_changeset({}), _Fail)
        assert isinstance(polling_payload_to_changeset({"events": "x"}), _Fail)
        assert isinstance(polling_payload_to_changeset({"events": ["x"]}), _Fail)

    def test_missing_payload_transferred(self):
        result = polling_payload_to_changeset({"events": [intent(), put("a", 1)]})
        assert isinstance(result, _Fail)

    def test_payload_transferred_without_intent(self):
        result = polling_payload_to_changeset({"events": [put("a", 1), transferred()]})
        assert isinstance(result, _Fail)

    def test_malformed_put(self):
        result = polling_payload_to_changeset({"events": [intent(), {"name": "put-object", "data": {"kind": "flag"}}, transferred()]})
        assert isinstance(result, _Fail)
        assert isinstance(result.exception, ValueError)

    def test_empty_intent(self):
        result = polling_payload_to_changeset({"events": [{"name": "server-intent", "data": {"payloads": []}}, transferred()]})
        assert isinstance(result, _Fail)

    def test_error_event_discards_pending_changes(self):
        error = {"name": "error", "data": {"payloadId": "p", "reason": "boom"}}
        result = polling_payload_to_changeset({"events": [intent("xfer-changes"), put("f", 2), error, transferred()]})

        assert isinstance(result, _Fail)
        assert "boom" in result.error
        assert result.exception is None

    def test_goodbye_event_discards_pending_changes(self):
        goodbye = {"name": "goodbye", "data": {"reason": "shutting down"}}
        result = polling_payload_to_changeset({"events": [intent(), put("f", 2), goodbye, transferred()]})

        assert isinstance(result, _Fail)
        assert "shutting down" in result.error

    def test_malformed_error_event(self):
        result = polling_payload_to_changeset({"events": [intent(), {"name": "error", "data": {}}, transferred()]})

        assert isinstance(result, _Fail)
        assert isinstance(result.exception, ValueError)


class TestPollingDataSource:
    def test_success_is_valid(self):
        change_set = ChangeSetBuilder.empty(Selector(state="p:1", version=1))
        source, _ = make_source(_Success(value=(change_set, {})))

        update = next(source.sync(MockSelectorStore()))

        assert update.state == DataSourceState.VALID
        assert update.change_set is change_set
        assert update.error is None

    def test_no_changes(self):
        source, _ = make_source(_Success(value=(ChangeSetBuilder.no_changes(), {})))

        update = next(source.sync(MockSelectorStore()))

        assert update.state == DataSourceState.VALID
        assert update.change_set.intent_code == IntentCode.TRANSFER_NONE

    def test_selector_is_sent_when_defined(self):
        selector = Selector(state="p:1", version=1)
        no_changes = _Success(value=(ChangeSetBuilder.no_changes(), {}))
        source, requester = make_source(no_changes, no_changes)
        updates = source.sync(MockSelectorStore(selector))
        next(updates)
        assert requester.selectors == [selector]

        source, requester = make_source(no_changes)
        next(source.sync(MockSelectorStore()))
        assert requester.selectors == [None]

    def test_recoverable_http_error_keeps_polling(self):
        change_set = ChangeSetBuilder.empty(Selector(state="p:1", version=1))
        source, _ = make_source(
            _Fail(error="HTTP error 503", exception=UnsuccessfulResponseException(503)),
            _Success(value=(change_set, {})),
        )
        updates = source.sync(MockSelectorStore())

        interrupted = next(updates)
        assert interrupted.state == DataSourceState.INTERRUPTED
        assert interrupted.error.kind == DataSourceErrorKind.ERROR_RESPONSE
        assert interrupted.error.status_code == 503

        assert next(updates).state == DataSourceState.VALID

    def test_unrecoverable_http_error_stops(self):
        source, _ = make_source(_Fail(error="HTTP error 401", exception=UnsuccessfulResponseException(401)))

        updates = list(source.sync(MockSelectorStore()))

        assert len(updates) == 1
        assert updates[0].state == DataSourceState.OFF
        assert updates[0].error.status_code == 401

    def test_invalid_data(self):
        source, _ = make_source(_Fail(error="Invalid JSON in polling response", exception=ValueError("bad")))

        update = next(source.sync(MockSelectorStore()))

        assert update.state == DataSourceState.INTERRUPTED
        assert update.error.kind == DataSourceErrorKind.INVALID_DATA

    def test_error_in_payload_interrupts_without_changes(self):
        error = {"name": "error", "data": {"reason": "boom"}}
        source, _ = make_source(polling_payload_to_changeset({"events": [intent(), put("f", 2), error, transferred()]}))

        update = next(source.sync(MockSelectorStore()))

        assert update.state == DataSourceState.INTERRUPTED
        assert update.change_set is None
        assert update.error.kind == DataSourceErrorKind.INVALID_DATA

    def test_requester_exception_is_network_error(self):
        class FailingRequester:
            def fetch(self, selector):
                raise IOError("connection refused")

        source = PollingDataSource(poll_interval=0.01, requester=FailingRequester())

        update = next(source.sync(MockSelectorStore()))

        assert update.state == DataSourceState.INTERRUPTED
        assert update.error.kind == DataSourceErrorKind.NETWORK_ERROR
        assert update.error.message == "connection refused"

    def test_stop_ends_sync(self):
        no_changes = _Success(value=(ChangeSetBuilder.no_changes(), {}))
        source, _ = make_source(no_changes, no_changes)
        updates = source.sync(MockSelectorStore())
        next(updates)
        source.stop()
        assert list(updates) == []
