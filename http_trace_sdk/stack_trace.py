"""
Caller frame capture.

Finds the application frames that issued an HTTP call, skipping frames that
belong to the HTTP client stack, the event loop and this SDK.
"""

import os
import sysconfig
import traceback
from typing import Any, Dict, Iterable, List, Optional

import anyio
import httpcore
import httpx

import http_trace_sdk


def _package_dir(module: Any) -> str:
    return os.path.dirname(os.path.abspath(module.__file__))


_SKIPPED_DIRS = tuple(
    _package_dir(module) + os.sep
    for module in (http_trace_sdk, httpx, httpcore, anyio)
) + (
    os.path.join(os.path.dirname(os.path.abspath(os.__file__)), "asyncio") + os.sep,
)

_SKIPPED_FILES = frozenset(
    os.path.join(os.path.dirname(os.path.abspath(os.__file__)), name)
    for name in ("threading.py", "contextlib.py", "contextvars.py")
)

_VENDOR_DIRS = tuple(
    os.path.abspath(path) + os.sep
    for path in {sysconfig.get_paths()[key] for key in ("purelib", "platlib")}
)
_VENDOR_MARKERS = (os.sep + "site-packages" + os.sep, os.sep + "dist-packages" + os.sep)


def is_vendor_file(filename: str) -> bool:
    """Whether a file belongs to an installed distribution rather than the application."""
    path = os.path.abspath(filename)
    return path.startswith(_VENDOR_DIRS) or any(marker in path for marker in _VENDOR_MARKERS)


def _is_skipped(filename: str, extra_dirs: Iterable[str]) -> bool:
    path = os.path.abspath(filename)
    if path in _SKIPPED_FILES:
        return True
    return path.startswith(_SKIPPED_DIRS) or any(path.startswith(d) for d in extra_dirs)


def capture_trace(limit: int = 10, skip_dirs: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
    """
    Capture the current call stack, innermost application frame first.

    Args:
        limit: Maximum number of frames returned (0 disables capture).
        skip_dirs: Additional directories whose frames are ignored.

    Returns:
        List of ``{"call", "file", "line", "vendor"}`` dictionaries.
    """
    if limit <= 0:
        return []

    extra_dirs = [os.path.abspath(d) + os.sep for d in (skip_dirs or [])]
    frames: List[Dict[str, Any]] = []
    for frame in reversed(traceback.extract_stack()):
        if _is_skipped(frame.filename, extra_dirs):
            continue
        frames.append({
            "call": frame.name,
            "file": frame.filename,
            "line": frame.lineno,
            "vendor": is_vendor_file(frame.filename),
        })
        if len(frames) >= limit:
            break
    return frames
