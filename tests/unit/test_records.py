"""
Unit tests for recorded call models.
"""

from http_trace_sdk.records import HttpCallRecord, RequestDetails, TransferStats


def test_transfer_stats_unit_conversion(handler_stats):
    stats = TransferStats.from_handler_stats(handler_stats)

    assert stats.timing.lookup == 2.0
    assert stats.timing.connect == 10.0
    assert stats.timing.waiting == 40.0
    assert stats.timing.transfer == 8.0
    assert stats.size.upload == 38
    assert stats.size.download == 512
    assert stats.speed.download == 8533.3
    assert stats.hosts.local.ip == "10.0.0.2"
    assert stats.hosts.local.port == 53122
    assert stats.hosts.remote.port == 443
    assert stats.version == "1.1"


def test_transfer_stats_without_timing_or_hosts():
    stats = TransferStats.from_handler_stats({"size_upload": 0, "http_version": "2"})

    assert stats.timing is None
    assert stats.size.upload == 0
    assert stats.size.download is None
    assert stats.speed.upload is None
    assert stats.hosts.local is None
    assert stats.hosts.remote is None
    assert stats.version == "2"


def test_record_to_dict_is_json_ready():
    record = HttpCallRecord(
        call_id="abc",
        request=RequestDetails(method="GET", url="https://example.com/"),
        time=1700000000.5,
    )

    data = record.to_dict()

    assert data["call_id"] == "abc"
    assert data["request"]["method"] == "GET"
    assert data["response"] is None
    assert data["stats"] is None
    assert data["trace"] == []
    assert "_started" not in data
    assert record.completed is False

    record.error = "connection-failed"
    assert record.completed is True
