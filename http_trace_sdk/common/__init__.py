"""
Common utilities for the HTTP Trace SDK.
"""

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from http_trace_sdk.common.config import load_config, save_config, HttpTraceConfig
    from http_trace_sdk.common.logger import get_logger, CallLogger
    from http_trace_sdk.common.security import HeaderRedactor, strip_url_credentials
    from http_trace_sdk.common.errors import (
        HttpTraceError,
        ConfigurationError,
        StorageError,
        RequestNotFoundError,
    )

_LAZY_IMPORTS = {
    "load_config": ("http_trace_sdk.common.config", "load_config"),
    "save_config": ("http_trace_sdk.common.config", "save_config"),
    "HttpTraceConfig": ("http_trace_sdk.common.config", "HttpTraceConfig"),
    "get_logger": ("http_trace_sdk.common.logger", "get_logger"),
    "CallLogger": ("http_trace_sdk.common.logger", "CallLogger"),
    "HeaderRedactor": ("http_trace_sdk.common.security", "HeaderRedactor"),
    "strip_url_credentials": ("http_trace_sdk.common.security", "strip_url_credentials"),
    "HttpTraceError": ("http_trace_sdk.common.errors", "HttpTraceError"),
    "ConfigurationError": ("http_trace_sdk.common.errors", "ConfigurationError"),
    "StorageError": ("http_trace_sdk.common.errors", "StorageError"),
    "RequestNotFoundError": ("http_trace_sdk.common.errors", "RequestNotFoundError"),
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
    "load_config",
    "save_config",
    "HttpTraceConfig",
    "get_logger",
    "CallLogger",
    "HeaderRedactor",
    "strip_url_credentials",
    "HttpTraceError",
    "ConfigurationError",
    "StorageError",
    "RequestNotFoundError",
]
