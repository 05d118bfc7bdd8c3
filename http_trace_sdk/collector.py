"""
Collector tying the event dispatcher, data sources and storage together.
"""

import time
from typing import Any, List, Optional

import httpx

from http_trace_sdk.common.config import HttpTraceConfig
from http_trace_sdk.common.logger import get_logger
from http_trace_sdk.data_source import DataSource, HttpClientDataSource
from http_trace_sdk.events import EventDispatcher
from http_trace_sdk.request import DebugRequest
from http_trace_sdk.storage import Storage, create_storage
from http_trace_sdk.transport import create_async_client, create_client

logger = get_logger(__name__)


class TraceCollector:
    """
    Unified SDK entrypoint.

    Example:
        collector = TraceCollector()
        request = collector.start_request("GET", "/orders")
        with collector.client() as client:
            client.get("https://api.example.com/orders")
        collector.finish_request(request, status=200)
    """

    def __init__(
        self,
        dispatcher: Optional[EventDispatcher] = None,
        config: Optional[HttpTraceConfig] = None,
        storage: Optional[Storage] = None,
    ):
        """
        Initialize the collector.

        Args:
            dispatcher: Event dispatcher shared with the tracing transports.
            config: Collection and storage settings.
            storage: Storage for finished requests (built from config when omitted).
        """
        self.config = config or HttpTraceConfig()
        self.dispatcher = dispatcher or EventDispatcher()
        self.storage = storage or create_storage(self.config.storage)
        self.data_sources: List[DataSource] = []
        self.http_client_source = HttpClientDataSource(self.dispatcher, config=self.config)
        self.add_data_source(self.http_client_source)

    def add_data_source(self, source: DataSource) -> "TraceCollector":
        source.listen_to_events()
        self.data_sources.append(source)
        return self

    def start_request(
        self,
        method: Optional[str] = None,
        uri: Optional[str] = None,
        isolate: bool = False,
    ) -> DebugRequest:
        """
        Begin collecting for a new debug request.

        Args:
            method: Incoming HTTP method.
            uri: Incoming path and query.
            isolate: Give the current execution context its own collection
                state instead of clearing the shared one.

        Returns:
            The new, empty DebugRequest.
        """
        for source in self.data_sources:
            if isolate:
                source.isolate()
            else:
                source.reset()
        return DebugRequest(method=method, uri=uri)

    def resolve_request(self, request: DebugRequest) -> DebugRequest:
        for source in self.data_sources:
            request = source.resolve(request)
        return request

    def finish_request(self, request: DebugRequest, status: Optional[int] = None) -> DebugRequest:
        """
        Resolve every data source into the request and store it.

        Args:
            request: Request returned by ``start_request``.
            status: Status code returned to the client.

        Returns:
            The resolved request.
        """
        request.response_status = status
        request.response_duration = (time.time() - request.time) * 1000
        request = self.resolve_request(request)
        self.storage.store(request)
        logger.debug(
            f"Stored debug request {request.id} with {len(request.http_requests)} HTTP calls"
        )
        return request

    def reset(self) -> None:
        for source in self.data_sources:
            source.reset()

    def client(self, **kwargs: Any) -> httpx.Client:
        """Build an ``httpx.Client`` whose calls are collected."""
        return create_client(self.dispatcher, **kwargs)

    def async_client(self, **kwargs: Any) -> httpx.AsyncClient:
        """Build an ``httpx.AsyncClient`` whose calls are collected."""
        return create_async_client(self.dispatcher, **kwargs)
