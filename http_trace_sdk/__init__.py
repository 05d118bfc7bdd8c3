"""
HTTP Trace SDK - Outgoing HTTP call collection for debugging payloads

This SDK records every HTTP call made through instrumented httpx clients
(method, URL, headers, bodies, timing and transport statistics) and merges
the records into a per-request debugging payload.
"""

import importlib
from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from http_trace_sdk.collector import TraceCollector
    from http_trace_sdk.data_source import DataSource, HttpClientDataSource
    from http_trace_sdk.events import (
        EventDispatcher,
        HttpClientEvent,
        RequestSending,
        ResponseReceived,
        ConnectionFailed,
        CallAborted,
    )
    from http_trace_sdk.records import HttpCallRecord, TransferStats
    from http_trace_sdk.request import DebugRequest
    from http_trace_sdk.storage import Storage, MemoryStorage, JsonlStorage, create_storage
    from http_trace_sdk.transport import (
        TracingTransport,
        AsyncTracingTransport,
        create_client,
        create_async_client,
    )
    from http_trace_sdk.common.config import HttpTraceConfig, load_config

_LAZY_IMPORTS = {
    "TraceCollector": ("http_trace_sdk.collector", "TraceCollector"),
    "DataSource": ("http_trace_sdk.data_source", "DataSource"),
    "HttpClientDataSource": ("http_trace_sdk.data_source", "HttpClientDataSource"),
    "EventDispatcher": ("http_trace_sdk.events", "EventDispatcher"),
    "HttpClientEvent": ("http_trace_sdk.events", "HttpClientEvent"),
    "RequestSending": ("http_trace_sdk.events", "RequestSending"),
    "ResponseReceived": ("http_trace_sdk.events", "ResponseReceived"),
    "ConnectionFailed": ("http_trace_sdk.events", "ConnectionFailed"),
    "CallAborted": ("http_trace_sdk.events", "CallAborted"),
    "HttpCallRecord": ("http_trace_sdk.records", "HttpCallRecord"),
    "TransferStats": ("http_trace_sdk.records", "TransferStats"),
    "DebugRequest": ("http_trace_sdk.request", "DebugRequest"),
    "Storage": ("http_trace_sdk.storage", "Storage"),
    "MemoryStorage": ("http_trace_sdk.storage", "MemoryStorage"),
    "JsonlStorage": ("http_trace_sdk.storage", "JsonlStorage"),
    "create_storage": ("http_trace_sdk.storage", "create_storage"),
    "TracingTransport": ("http_trace_sdk.transport", "TracingTransport"),
    "AsyncTracingTransport": ("http_trace_sdk.transport", "AsyncTracingTransport"),
    "create_client": ("http_trace_sdk.transport", "create_client"),
    "create_async_client": ("http_trace_sdk.transport", "create_async_client"),
    "HttpTraceConfig": ("http_trace_sdk.common.config", "HttpTraceConfig"),
    "load_config": ("http_trace_sdk.common.config", "load_config"),
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_name)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_LAZY_IMPORTS.keys()))

__all__ = [
    "TraceCollector",
    "DataSource",
    "HttpClientDataSource",
    "EventDispatcher",
    "HttpClientEvent",
    "RequestSending",
    "ResponseReceived",
    "ConnectionFailed",
    "CallAborted",
    "HttpCallRecord",
    "TransferStats",
    "DebugRequest",
    "Storage",
    "MemoryStorage",
    "JsonlStorage",
    "create_storage",
    "TracingTransport",
    "AsyncTracingTransport",
    "create_client",
    "create_async_client",
    "HttpTraceConfig",
    "load_config",
    "__version__",
]
