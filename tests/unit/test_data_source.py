"""
Unit tests for the HTTP client data source.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from http_trace_sdk.common.config import HttpTraceConfig
from http_trace_sdk.common.logger import CallLogger
from http_trace_sdk.data_source import (
    CALL_ABORTED,
    CONNECTION_FAILED,
    TRUNCATION_MARKER,
    DataSource,
    HttpClientDataSource,
)
from http_trace_sdk.events import (
    CallAborted,
    ConnectionFailed,
    EventDispatcher,
    RequestSending,
    ResponseReceived,
)
from http_trace_sdk.request import DebugRequest
from http_trace_sdk.transport import create_client


def test_sending_request_records_call(dispatcher, data_source, sample_request):
    """A sending event creates an in-flight record."""
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))

    assert len(data_source.requests) == 1
    record = data_source.requests[0]
    assert record.call_id == "call-1"
    assert record.request.method == "POST"
    assert record.request.url == "https://api.example.com/search?q=flights"
    assert record.request.headers["authorization"] == "[REDACTED]"
    assert record.request.headers["content-type"] == "application/json"
    assert record.request.content == {"origin": "NYC", "destination": "LAX"}
    assert record.request.body == '{"origin": "NYC", "destination": "LAX"}'
    assert record.response is None
    assert record.stats is None
    assert record.error is None
    assert record.duration is None
    assert record.time > 0
    assert "call-1" in data_source.executing


def test_response_received_completes_record(dispatcher, data_source, sample_request, sample_response, handler_stats):
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))
    dispatcher.dispatch(ResponseReceived(
        call_id="call-1",
        request=sample_request,
        response=sample_response,
        handler_stats=handler_stats,
    ))

    record = data_source.requests[0]
    assert record.response.status == 200
    assert record.response.headers["x-request-id"] == "abc"
    assert record.response.content == {"flights": [{"id": "FL-123"}]}
    assert record.response.body == sample_response.text
    assert record.duration is not None and record.duration >= 0
    assert record.stats.timing.lookup == 2.0
    assert record.stats.timing.connect == 10.0
    assert record.stats.timing.waiting == 40.0
    assert record.stats.timing.transfer == 8.0
    assert record.stats.size.upload == 38
    assert record.stats.hosts.remote.ip == "93.184.216.34"
    assert record.stats.version == "1.1"
    assert data_source.executing == {}


def test_connection_failed_marks_error(dispatcher, data_source, sample_request):
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))
    dispatcher.dispatch(ConnectionFailed(call_id="call-1", request=sample_request, error="ConnectError: refused"))

    record = data_source.requests[0]
    assert record.error == CONNECTION_FAILED
    assert record.response is None
    assert record.duration is not None
    assert data_source.executing == {}


def test_unknown_call_is_ignored(dispatcher, data_source, sample_request, sample_response):
    """Completion events for calls that were never recorded change nothing."""
    dispatcher.dispatch(ResponseReceived(call_id="nope", request=sample_request, response=sample_response))
    dispatcher.dispatch(ConnectionFailed(call_id="nope", request=sample_request, error="boom"))

    assert data_source.requests == []


def test_second_completion_is_ignored(dispatcher, data_source, sample_request, sample_response):
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))
    dispatcher.dispatch(ResponseReceived(call_id="call-1", request=sample_request, response=sample_response))
    dispatcher.dispatch(ConnectionFailed(call_id="call-1", request=sample_request, error="late"))

    record = data_source.requests[0]
    assert record.response.status == 200
    assert record.error is None


def test_calls_are_correlated_by_call_id(dispatcher, data_source):
    first = httpx.Request("GET", "https://a.example.com/")
    second = httpx.Request("GET", "https://b.example.com/")
    dispatcher.dispatch(RequestSending(call_id="a", request=first))
    dispatcher.dispatch(RequestSending(call_id="b", request=second))

    dispatcher.dispatch(ResponseReceived(call_id="b", request=second, response=httpx.Response(201)))

    by_url = {r.request.url: r for r in data_source.requests}
    assert by_url["https://b.example.com/"].response.status == 201
    assert by_url["https://a.example.com/"].response is None
    assert list(data_source.executing) == ["a"]


def test_reset_clears_state(dispatcher, data_source, sample_request):
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))
    data_source.reset()

    assert data_source.requests == []
    assert data_source.executing == {}


def test_resolve_merges_into_request(dispatcher, data_source, sample_request, sample_response):
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))
    dispatcher.dispatch(ResponseReceived(call_id="call-1", request=sample_request, response=sample_response))

    existing = DebugRequest(method="GET", uri="/orders")
    existing = data_source.resolve(existing)
    existing = data_source.resolve(existing)

    assert len(existing.http_requests) == 2
    assert existing.http_requests[0].call_id == "call-1"


def test_resolve_includes_in_flight_calls(dispatcher, data_source, sample_request):
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))

    resolved = data_source.resolve(DebugRequest())

    assert len(resolved.http_requests) == 1
    assert resolved.http_requests[0].response is None


def test_filters_reject_calls(dispatcher, data_source, sample_request):
    data_source.add_filter(lambda record: record.request.method != "POST")
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))

    assert data_source.requests == []
    assert data_source.executing == {}


def test_ignored_urls_from_config():
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(dispatcher, config=HttpTraceConfig(ignored_urls=[r"/health$"]))
    source.listen_to_events()

    dispatcher.dispatch(RequestSending(call_id="1", request=httpx.Request("GET", "https://svc.local/health")))
    dispatcher.dispatch(RequestSending(call_id="2", request=httpx.Request("GET", "https://svc.local/orders")))

    assert [r.request.url for r in source.requests] == ["https://svc.local/orders"]


def test_disabled_config_registers_no_listeners():
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(dispatcher, config=HttpTraceConfig(enabled=False))
    source.listen_to_events()

    assert not dispatcher.has_listeners(RequestSending)
    dispatcher.dispatch(RequestSending(call_id="1", request=httpx.Request("GET", "https://svc.local/")))
    assert source.requests == []


def test_bodies_can_be_disabled(sample_request, sample_response):
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(
        dispatcher,
        config=HttpTraceConfig(collect_request_body=False, collect_response_body=False),
    )
    source.listen_to_events()

    dispatcher.dispatch(RequestSending(call_id="1", request=sample_request))
    dispatcher.dispatch(ResponseReceived(call_id="1", request=sample_request, response=sample_response))

    record = source.requests[0]
    assert record.request.body is None
    assert record.request.content is None
    assert record.response.body is None
    assert record.response.content is None


def test_long_bodies_are_truncated():
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(dispatcher, config=HttpTraceConfig(max_body_size=10))
    source.listen_to_events()

    request = httpx.Request("POST", "https://svc.local/upload", content=b"x" * 50)
    dispatcher.dispatch(RequestSending(call_id="1", request=request))

    assert source.requests[0].request.body == "x" * 10 + TRUNCATION_MARKER


def test_form_body_is_parsed(dispatcher, data_source):
    request = httpx.Request("POST", "https://svc.local/login", data={"user": "ada", "remember": "1"})
    dispatcher.dispatch(RequestSending(call_id="1", request=request))

    assert data_source.requests[0].request.content == {"user": "ada", "remember": "1"}


def test_non_json_response_has_no_content(dispatcher, data_source):
    request = httpx.Request("GET", "https://svc.local/page")
    dispatcher.dispatch(RequestSending(call_id="1", request=request))
    dispatcher.dispatch(ResponseReceived(
        call_id="1",
        request=request,
        response=httpx.Response(200, text="<html></html>"),
    ))

    record = data_source.requests[0]
    assert record.response.content is None
    assert record.response.body == "<html></html>"


def test_missing_timing_leaves_timing_empty(dispatcher, data_source):
    request = httpx.Request("GET", "https://svc.local/")
    dispatcher.dispatch(RequestSending(call_id="1", request=request))
    dispatcher.dispatch(ResponseReceived(
        call_id="1",
        request=request,
        response=httpx.Response(204),
        handler_stats={"size_download": 0},
    ))

    stats = data_source.requests[0].stats
    assert stats.timing is None
    assert stats.size.download == 0
    assert stats.hosts.local is None
    assert stats.version is None


def test_stack_trace_points_at_caller(dispatcher, data_source, sample_request):
    dispatcher.dispatch(RequestSending(call_id="1", request=sample_request))

    trace = data_source.requests[0].trace
    assert trace, "caller frames should be recorded"
    assert trace[0]["file"].endswith("test_data_source.py")
    assert trace[0]["call"] == "test_stack_trace_points_at_caller"


def test_stack_trace_can_be_disabled(sample_request):
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(dispatcher, config=HttpTraceConfig(collect_stack_trace=False))
    source.listen_to_events()

    dispatcher.dispatch(RequestSending(call_id="1", request=sample_request))

    assert source.requests[0].trace == []


def test_call_log_emits_structured_line(caplog, sample_request, sample_response):
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(dispatcher, config=HttpTraceConfig(log_calls=True))
    source.listen_to_events()

    with caplog.at_level("INFO", logger="http_trace_sdk.calls"):
        dispatcher.dispatch(RequestSending(call_id="call-9", request=sample_request))
        dispatcher.dispatch(ResponseReceived(call_id="call-9", request=sample_request, response=sample_response))

    messages = [r.getMessage() for r in caplog.records if r.name == "http_trace_sdk.calls"]
    assert len(messages) == 1
    assert '"call_id": "call-9"' in messages[0]
    assert '"status": 200' in messages[0]


def test_base_data_source_filters():
    source = DataSource()
    source.add_filter(lambda value: value > 1).add_filter(lambda value: value < 10)

    assert source.passes_filters([5]) is True
    assert source.passes_filters([0]) is False
    assert source.passes_filters([11]) is False


def test_isolated_scope_does_not_see_shared_calls(dispatcher, data_source, sample_request):
    import contextvars

    dispatcher.dispatch(RequestSending(call_id="shared", request=sample_request))

    def in_scope():
        data_source.isolate()
        assert data_source.requests == []
        dispatcher.dispatch(RequestSending(call_id="scoped", request=sample_request))
        return [r.call_id for r in data_source.requests]

    scoped_ids = contextvars.copy_context().run(in_scope)

    assert scoped_ids == ["scoped"]
    assert [r.call_id for r in data_source.requests] == ["shared"]


def test_call_aborted_marks_error(dispatcher, data_source, sample_request):
    dispatcher.dispatch(RequestSending(call_id="call-1", request=sample_request))
    dispatcher.dispatch(CallAborted(call_id="call-1", request=sample_request, error="CancelledError"))

    record = data_source.requests[0]
    assert record.error == CALL_ABORTED
    assert record.response is None
    assert record.duration is not None
    assert data_source.executing == {}


def test_redaction_can_be_disabled(sample_request):
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(dispatcher, config=HttpTraceConfig(redaction_enabled=False))
    source.listen_to_events()

    dispatcher.dispatch(RequestSending(call_id="1", request=sample_request))

    record = source.requests[0]
    assert record.request.headers["authorization"] == "Bearer token-123"
    assert record.request.url == "https://api.example.com/search?q=flights"


def test_call_log_has_fixed_fields(caplog, sample_request):
    dispatcher = EventDispatcher()
    source = HttpClientDataSource(dispatcher, config=HttpTraceConfig(log_calls=True))
    source.listen_to_events()

    with caplog.at_level("INFO", logger="http_trace_sdk.calls"):
        dispatcher.dispatch(RequestSending(call_id="call-3", request=sample_request))
        dispatcher.dispatch(ConnectionFailed(call_id="call-3", request=sample_request, error="ConnectError"))

    records = [r for r in caplog.records if r.name == "http_trace_sdk.calls"]
    assert [r.levelno for r in records] == [logging.WARNING]
    line = json.loads(records[0].getMessage())
    assert list(line) == ["timestamp", "event", "call_id", "method", "url", "status", "error", "duration_ms"]
    assert line["event"] == "http_call"
    assert line["status"] is None
    assert line["error"] == CONNECTION_FAILED


def test_calls_from_many_threads_share_the_default_state(dispatcher, data_source, mock_transport):
    def fetch(page):
        return client.get(f"https://api.example.com/flights?page={page}").status_code

    with create_client(dispatcher, transport=mock_transport) as client:
        with ThreadPoolExecutor(max_workers=8) as pool:
            statuses = list(pool.map(fetch, range(40)))

    assert statuses == [200] * 40
    records = data_source.requests
    assert len(records) == 40
    assert len({r.call_id for r in records}) == 40
    assert all(r.completed and r.response.status == 200 for r in records)
    assert data_source.executing == {}


def test_call_logger_rejects_unknown_fields():
    with pytest.raises(ValueError, match="extra"):
        CallLogger().log_call(call_id="1", extra="x")
