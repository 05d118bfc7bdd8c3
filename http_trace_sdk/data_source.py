"""
Data sources collecting debugging information for a request.

``HttpClientDataSource`` listens to the HTTP client lifecycle events emitted
by the tracing transports and records every outgoing call. A call is recorded
when its request is sent and completed in place once the response arrives or
the connection fails; the collected records are merged into a
``DebugRequest`` by ``resolve``.
"""

import json
import re
import threading
import time
from contextvars import ContextVar
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import httpx

from http_trace_sdk.common.config import HttpTraceConfig
from http_trace_sdk.common.logger import CallLogger, get_logger
from http_trace_sdk.common.security import HeaderRedactor
from http_trace_sdk.events import (
    CallAborted,
    ConnectionFailed,
    EventDispatcher,
    RequestSending,
    ResponseReceived,
)
from http_trace_sdk.records import (
    HttpCallRecord,
    RequestDetails,
    ResponseDetails,
    TransferStats,
)
from http_trace_sdk.request import DebugRequest
from http_trace_sdk.stack_trace import capture_trace

logger = get_logger(__name__)

CONNECTION_FAILED = "connection-failed"

CALL_ABORTED = "aborted"

TRUNCATION_MARKER = "... [truncated]"


def _truncate_text(value: str, limit: Optional[int]) -> str:
    if limit is None or len(value) <= limit:
        return value
    return value[:limit] + TRUNCATION_MARKER


class DataSource:
    """
    Base class for debugging data sources.

    Filters are callables receiving the collected item(s); an item is kept
    only when every filter returns a truthy value.
    """

    def __init__(self) -> None:
        self._filters: List[Callable[..., bool]] = []

    def add_filter(self, filter_: Callable[..., bool]) -> "DataSource":
        self._filters.append(filter_)
        return self

    def passes_filters(self, args: List[Any]) -> bool:
        return all(filter_(*args) for filter_ in self._filters)

    def listen_to_events(self) -> None:
        """Subscribe to whatever events the source collects from."""

    def resolve(self, request: DebugRequest) -> DebugRequest:
        """Add the collected data to a debug request."""
        return request

    def reset(self) -> None:
        """Clear any collected data."""

    def isolate(self) -> None:
        """Start collecting into a fresh state for the current execution context."""
        self.reset()


class _CollectorState:
    """Records and in-flight calls of one collection scope."""

    def __init__(self) -> None:
        self.requests: List[HttpCallRecord] = []
        self.executing: Dict[str, HttpCallRecord] = {}
        self.lock = threading.Lock()


class HttpClientDataSource(DataSource):
    """
    Data source for outgoing HTTP calls.

    State lives in a process-wide default scope unless ``isolate()`` gave the
    current execution context (thread or asyncio task) its own scope, which
    keeps concurrent incoming requests from mixing their calls.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        config: Optional[HttpTraceConfig] = None,
        redactor: Optional[HeaderRedactor] = None,
    ):
        """
        Initialize the data source.

        Args:
            dispatcher: Dispatcher the tracing transports report to.
            config: Collection settings (defaults when omitted).
            redactor: Header redactor (built from ``config.redact_headers`` when omitted).
        """
        super().__init__()
        self.dispatcher = dispatcher
        self.config = config or HttpTraceConfig()
        self.redactor = redactor or HeaderRedactor(
            self.config.redact_headers, enabled=self.config.redaction_enabled
        )

        self._default_state = _CollectorState()
        self._scoped_state: ContextVar[Optional[_CollectorState]] = ContextVar(
            f"http_trace_state_{id(self)}", default=None
        )

        self._ignored_urls = [re.compile(pattern) for pattern in self.config.ignored_urls]
        if self._ignored_urls:
            self.add_filter(self._is_collected)

        self._call_log = CallLogger() if self.config.log_calls else None

    @property
    def _state(self) -> _CollectorState:
        return self._scoped_state.get() or self._default_state

    def listen_to_events(self) -> None:
        """Register the start, success, failure and abort handlers."""
        if not self.config.enabled:
            logger.info("HTTP client collection is disabled, no listeners registered")
            return
        self.dispatcher.listen(ConnectionFailed, self._connection_failed)
        self.dispatcher.listen(CallAborted, self._call_aborted)
        self.dispatcher.listen(RequestSending, self._sending_request)
        self.dispatcher.listen(ResponseReceived, self._response_received)

    def resolve(self, request: DebugRequest) -> DebugRequest:
        """Append the collected calls to the debug request."""
        state = self._state
        with state.lock:
            collected = list(state.requests)
        request.http_requests = request.http_requests + collected
        return request

    def reset(self) -> None:
        """Clear collected calls and forget in-flight ones."""
        state = self._state
        with state.lock:
            state.requests.clear()
            state.executing.clear()

    def isolate(self) -> None:
        self._scoped_state.set(_CollectorState())

    @property
    def requests(self) -> List[HttpCallRecord]:
        """Snapshot of the calls collected in the current scope."""
        state = self._state
        with state.lock:
            return list(state.requests)

    @property
    def executing(self) -> Dict[str, HttpCallRecord]:
        """Snapshot of in-flight calls in the current scope, keyed by call id."""
        state = self._state
        with state.lock:
            return dict(state.executing)

    def _sending_request(self, event: RequestSending) -> None:
        request = event.request
        content, body = self._request_body(request)

        record = HttpCallRecord(
            call_id=event.call_id,
            request=RequestDetails(
                method=request.method,
                url=self.redactor.redact_url(str(request.url)),
                headers=self.redactor.redact_headers(request.headers),
                content=content,
                body=body,
            ),
            time=time.time(),
            trace=capture_trace(self.config.stack_trace_limit) if self.config.collect_stack_trace else [],
        )
        record._started = time.perf_counter()

        if not self.passes_filters([record]):
            logger.debug(f"Skipping filtered call {record.request.method} {record.request.url}")
            return

        state = self._state
        with state.lock:
            state.requests.append(record)
            state.executing[event.call_id] = record

    def _response_received(self, event: ResponseReceived) -> None:
        record = self._finish(event.call_id)
        if record is None:
            return

        response = event.response
        content, body = self._response_body(response)
        record.response = ResponseDetails(
            status=response.status_code,
            headers=self.redactor.redact_headers(response.headers),
            content=content,
            body=body,
        )
        record.stats = TransferStats.from_handler_stats(event.handler_stats)
        self._log_call(record)

    def _connection_failed(self, event: ConnectionFailed) -> None:
        record = self._finish(event.call_id)
        if record is None:
            return

        record.error = CONNECTION_FAILED
        logger.debug(f"Call {record.request.method} {record.request.url} failed: {event.error}")
        self._log_call(record)

    def _call_aborted(self, event: CallAborted) -> None:
        record = self._finish(event.call_id)
        if record is None:
            return

        record.error = CALL_ABORTED
        logger.debug(f"Call {record.request.method} {record.request.url} aborted: {event.error}")
        self._log_call(record)

    def _finish(self, call_id: str) -> Optional[HttpCallRecord]:
        state = self._state
        with state.lock:
            record = state.executing.pop(call_id, None)
        if record is None:
            return None

        if record._started is not None:
            record.duration = (time.perf_counter() - record._started) * 1000
        else:
            record.duration = (time.time() - record.time) * 1000
        return record

    def _is_collected(self, record: HttpCallRecord) -> bool:
        return not any(pattern.search(record.request.url) for pattern in self._ignored_urls)

    def _request_body(self, request: httpx.Request) -> Tuple[Optional[Any], Optional[str]]:
        if not self.config.collect_request_body:
            return None, None
        try:
            raw = request.content
        except httpx.RequestNotRead:
            logger.debug("Request body was not read, skipping it")
            return None, None
        if not raw:
            return None, None

        text = raw.decode("utf-8", errors="replace")
        content_type = request.headers.get("content-type", "").lower()
        content: Optional[Any] = None
        if "json" in content_type:
            try:
                content = json.loads(text)
            except ValueError:
                content = None
        elif "application/x-www-form-urlencoded" in content_type:
            content = dict(parse_qsl(text, keep_blank_values=True))

        return content, _truncate_text(text, self.config.max_body_size)

    def _response_body(self, response: httpx.Response) -> Tuple[Optional[Any], Optional[str]]:
        if not self.config.collect_response_body:
            return None, None
        try:
            raw = response.content
        except httpx.ResponseNotRead:
            logger.debug("Response body was not read, skipping it")
            return None, None
        if not raw:
            return None, None

        text = response.text
        try:
            content = json.loads(text)
        except ValueError:
            content = None

        return content, _truncate_text(text, self.config.max_body_size)

    def _log_call(self, record: HttpCallRecord) -> None:
        status = record.response.status if record.response else None
        logger.debug(
            f"Recorded {record.request.method} {record.request.url} "
            f"-> {status or record.error} in {record.duration:.1f}ms"
        )
        if self._call_log is not None:
            self._call_log.log_call(
                call_id=record.call_id,
                method=record.request.method,
                url=record.request.url,
                status=status,
                error=record.error,
                duration_ms=round(record.duration or 0.0, 3),
            )
