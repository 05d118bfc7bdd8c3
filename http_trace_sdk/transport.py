"""
Tracing transports for httpx.

``TracingTransport`` and ``AsyncTracingTransport`` wrap a real httpx transport
and emit ``RequestSending``, ``ResponseReceived`` and ``ConnectionFailed``
events for every call that goes through them. A call ending any other
way (undecodable body, cancellation) is reported as ``CallAborted``.
Transfer timings come from the httpcore ``trace`` request extension, so they
are only available when the wrapped transport is backed by httpcore (the
httpx default).
"""

from __future__ import annotations

import time
import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from http_trace_sdk.common.logger import get_logger
from http_trace_sdk.events import (
    CallAborted,
    ConnectionFailed,
    EventDispatcher,
    RequestSending,
    ResponseReceived,
)

logger = get_logger(__name__)

CALL_ID_EXTENSION = "http_trace.call_id"

# Client keyword arguments that configure the default transport.
_TRANSPORT_OPTIONS = ("verify", "cert", "http1", "http2", "limits")

# (trace event suffix, mark name); the first occurrence of each mark wins.
_TRACE_MARKS = (
    ("connect_tcp.started", "connect"),
    ("connect_unix_socket.started", "connect"),
    ("send_request_headers.started", "pretransfer"),
    ("receive_response_headers.complete", "starttransfer"),
)


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


def _report_failure(
    dispatcher: EventDispatcher, call_id: str, request: httpx.Request, exc: BaseException
) -> None:
    if isinstance(exc, httpx.TransportError):
        dispatcher.dispatch(ConnectionFailed(call_id=call_id, request=request, error=_describe(exc)))
    else:
        dispatcher.dispatch(CallAborted(call_id=call_id, request=request, error=_describe(exc)))


def _address(value: Any) -> Optional[tuple]:
    if isinstance(value, tuple) and len(value) >= 2:
        return value[0], value[1]
    return None


class _TransferClock:
    """Collects transfer statistics for one call."""

    def __init__(self) -> None:
        self.started = time.perf_counter()
        self.marks: Dict[str, float] = {}
        self.hosts: Dict[str, Any] = {}

    def elapsed_us(self) -> float:
        return (time.perf_counter() - self.started) * 1_000_000

    def elapsed(self) -> timedelta:
        return timedelta(microseconds=self.elapsed_us())

    def mark(self, event_name: str) -> None:
        for suffix, name in _TRACE_MARKS:
            if event_name.endswith(suffix) and name not in self.marks:
                self.marks[name] = self.elapsed_us()

    def sync_trace(self, previous: Optional[Callable[[str, dict], None]]) -> Callable[[str, dict], None]:
        def trace(event_name: str, info: dict) -> None:
            self.mark(event_name)
            if previous is not None:
                previous(event_name, info)
        return trace

    def async_trace(
        self, previous: Optional[Callable[[str, dict], Awaitable[None]]]
    ) -> Callable[[str, dict], Awaitable[None]]:
        async def trace(event_name: str, info: dict) -> None:
            self.mark(event_name)
            if previous is not None:
                await previous(event_name, info)
        return trace

    def capture_hosts(self, response: httpx.Response) -> None:
        """Read socket addresses while the connection is still open."""
        stream = response.extensions.get("network_stream")
        if stream is None:
            return
        try:
            local = _address(stream.get_extra_info("client_addr"))
            remote = _address(stream.get_extra_info("server_addr"))
        except OSError as e:
            logger.debug(f"Socket addresses unavailable: {e}")
            return
        if local:
            self.hosts["local_ip"], self.hosts["local_port"] = local
        if remote:
            self.hosts["primary_ip"], self.hosts["primary_port"] = remote

    def handler_stats(self, request: httpx.Request, response: httpx.Response) -> Dict[str, Any]:
        total = self.elapsed_us()
        stats: Dict[str, Any] = {}

        if "pretransfer" in self.marks and "starttransfer" in self.marks:
            # A reused pooled connection has no connect mark.
            stats["namelookup_time_us"] = self.marks.get("connect", self.marks["pretransfer"])
            stats["pretransfer_time_us"] = self.marks["pretransfer"]
            stats["starttransfer_time_us"] = self.marks["starttransfer"]
            stats["total_time_us"] = total

        stats["size_upload"] = len(request.content)
        stats["size_download"] = len(response.content)
        if total > 0:
            seconds = total / 1_000_000
            stats["speed_upload"] = stats["size_upload"] / seconds
            stats["speed_download"] = stats["size_download"] / seconds

        stats.update(self.hosts)

        version = response.http_version
        stats["http_version"] = version[5:] if version.startswith("HTTP/") else version
        return stats


def _prepare(request: httpx.Request, trace: Callable[..., Any]) -> str:
    call_id = uuid.uuid4().hex
    request.extensions = {**request.extensions, CALL_ID_EXTENSION: call_id, "trace": trace}
    return call_id


class TracingTransport(httpx.BaseTransport):
    """
    Synchronous httpx transport that reports every call to a dispatcher.

    Example:
        client = httpx.Client(transport=TracingTransport(dispatcher))
    """

    def __init__(self, dispatcher: EventDispatcher, transport: Optional[httpx.BaseTransport] = None):
        self.dispatcher = dispatcher
        self._transport = transport or httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        clock = _TransferClock()
        call_id = _prepare(request, clock.sync_trace(request.extensions.get("trace")))
        request.read()
        self.dispatcher.dispatch(RequestSending(call_id=call_id, request=request))

        try:
            response = self._transport.handle_request(request)
        except BaseException as exc:
            _report_failure(self.dispatcher, call_id, request, exc)
            raise

        response.request = request
        clock.capture_hosts(response)
        try:
            response.read()
            # The body is consumed here, so the client never closes the stream itself.
            response.elapsed = clock.elapsed()
        except BaseException as exc:
            _report_failure(self.dispatcher, call_id, request, exc)
            response.close()
            raise

        self.dispatcher.dispatch(ResponseReceived(
            call_id=call_id,
            request=request,
            response=response,
            handler_stats=clock.handler_stats(request, response),
        ))
        return response

    def close(self) -> None:
        self._transport.close()


class AsyncTracingTransport(httpx.AsyncBaseTransport):
    """
    Asynchronous counterpart of ``TracingTransport`` for ``httpx.AsyncClient``.
    """

    def __init__(self, dispatcher: EventDispatcher, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.dispatcher = dispatcher
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        clock = _TransferClock()
        call_id = _prepare(request, clock.async_trace(request.extensions.get("trace")))
        await request.aread()
        self.dispatcher.dispatch(RequestSending(call_id=call_id, request=request))

        try:
            response = await self._transport.handle_async_request(request)
        except BaseException as exc:
            _report_failure(self.dispatcher, call_id, request, exc)
            raise

        response.request = request
        clock.capture_hosts(response)
        try:
            await response.aread()
            response.elapsed = clock.elapsed()
        except BaseException as exc:
            _report_failure(self.dispatcher, call_id, request, exc)
            await response.aclose()
            raise

        self.dispatcher.dispatch(ResponseReceived(
            call_id=call_id,
            request=request,
            response=response,
            handler_stats=clock.handler_stats(request, response),
        ))
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()


def _split_transport_options(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    return {key: kwargs.pop(key) for key in _TRANSPORT_OPTIONS if key in kwargs}


def create_client(dispatcher: EventDispatcher, **kwargs: Any) -> httpx.Client:
    """
    Build an ``httpx.Client`` whose calls are reported to ``dispatcher``.

    A ``transport=`` argument becomes the wrapped transport. Requests routed
    through ``mounts=`` bypass tracing.
    """
    inner = kwargs.pop("transport", None)
    options = _split_transport_options(kwargs)
    if inner is None:
        inner = httpx.HTTPTransport(**options)
    return httpx.Client(transport=TracingTransport(dispatcher, inner), **kwargs)


def create_async_client(dispatcher: EventDispatcher, **kwargs: Any) -> httpx.AsyncClient:
    """Build an ``httpx.AsyncClient`` whose calls are reported to ``dispatcher``."""
    inner = kwargs.pop("transport", None)
    options = _split_transport_options(kwargs)
    if inner is None:
        inner = httpx.AsyncHTTPTransport(**options)
    return httpx.AsyncClient(transport=AsyncTracingTransport(dispatcher, inner), **kwargs)
