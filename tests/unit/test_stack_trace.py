"""
Unit tests for caller frame capture.
"""

import os
import sysconfig

from http_trace_sdk.stack_trace import capture_trace, is_vendor_file


def test_installed_packages_are_vendor_frames():
    purelib = sysconfig.get_paths()["purelib"]

    assert is_vendor_file(os.path.join(purelib, "requests", "api.py"))
    assert is_vendor_file("/usr/lib/python3/dist-packages/requests/api.py")
    assert is_vendor_file("/opt/venv/lib/python3.12/site-packages/flask/app.py")


def test_application_files_are_not_vendor_frames():
    assert not is_vendor_file(__file__)
    assert not is_vendor_file("/srv/app/services/billing.py")


def test_capture_trace_starts_at_caller():
    trace = capture_trace(limit=3)

    assert 1 <= len(trace) <= 3
    assert trace[0]["call"] == "test_capture_trace_starts_at_caller"
    assert trace[0]["vendor"] is False


def test_capture_trace_limit_zero_disables_capture():
    assert capture_trace(limit=0) == []
