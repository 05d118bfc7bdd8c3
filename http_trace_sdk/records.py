"""
Recorded HTTP calls.

A ``HttpCallRecord`` is created when a request is sent and completed in place
when its response arrives or its connection fails, so every model here is
mutable.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, PrivateAttr


class RequestDetails(BaseModel):
    """Outgoing request as it was sent."""
    method: str = Field(..., description="HTTP method")
    url: str = Field(..., description="URL without credentials")
    headers: Dict[str, Any] = Field(default_factory=dict, description="Request headers (redacted)")
    content: Optional[Any] = Field(None, description="Parsed JSON or form data")
    body: Optional[str] = Field(None, description="Raw body text")


class ResponseDetails(BaseModel):
    """Received response."""
    status: int = Field(..., description="HTTP status code")
    headers: Dict[str, Any] = Field(default_factory=dict, description="Response headers (redacted)")
    content: Optional[Any] = Field(None, description="Parsed JSON body")
    body: Optional[str] = Field(None, description="Raw body text")


class Timing(BaseModel):
    """Phase durations in milliseconds."""
    lookup: float = Field(..., description="Time before connecting")
    connect: float = Field(..., description="Connection setup (TCP and TLS)")
    waiting: float = Field(..., description="Time to first response byte")
    transfer: float = Field(..., description="Response download")


class TransferSize(BaseModel):
    upload: Optional[int] = None
    download: Optional[int] = None


class TransferSpeed(BaseModel):
    upload: Optional[float] = None
    download: Optional[float] = None


class HostAddress(BaseModel):
    ip: str
    port: Optional[int] = None


class TransferHosts(BaseModel):
    local: Optional[HostAddress] = None
    remote: Optional[HostAddress] = None


class TransferStats(BaseModel):
    """
    Transport statistics of a completed call.

    Attributes:
        timing: Phase breakdown, None when the transport did not measure timings.
        size: Bytes uploaded and downloaded.
        speed: Bytes per second uploaded and downloaded.
        hosts: Local and remote socket addresses.
        version: HTTP protocol version (e.g. "1.1", "2").
    """
    timing: Optional[Timing] = None
    size: TransferSize = Field(default_factory=TransferSize)
    speed: TransferSpeed = Field(default_factory=TransferSpeed)
    hosts: TransferHosts = Field(default_factory=TransferHosts)
    version: Optional[str] = None

    @classmethod
    def from_handler_stats(cls, stats: Dict[str, Any]) -> "TransferStats":
        """
        Build stats from raw transport statistics.

        Times in ``stats`` are microseconds elapsed since the call started;
        the resulting phase durations are milliseconds.

        Args:
            stats: Raw statistics as attached to a ``ResponseReceived`` event.

        Returns:
            TransferStats instance.
        """
        timing = None
        if stats.get("total_time_us") is not None:
            lookup = stats.get("namelookup_time_us") or 0
            pretransfer = stats.get("pretransfer_time_us") or 0
            starttransfer = stats.get("starttransfer_time_us") or 0
            total = stats["total_time_us"]
            timing = Timing(
                lookup=lookup / 1000,
                connect=(pretransfer - lookup) / 1000,
                waiting=(starttransfer - pretransfer) / 1000,
                transfer=(total - starttransfer) / 1000,
            )

        local = None
        if stats.get("local_ip"):
            local = HostAddress(ip=stats["local_ip"], port=stats.get("local_port"))
        remote = None
        if stats.get("primary_ip"):
            remote = HostAddress(ip=stats["primary_ip"], port=stats.get("primary_port"))

        return cls(
            timing=timing,
            size=TransferSize(upload=stats.get("size_upload"), download=stats.get("size_download")),
            speed=TransferSpeed(upload=stats.get("speed_upload"), download=stats.get("speed_download")),
            hosts=TransferHosts(local=local, remote=remote),
            version=stats.get("http_version"),
        )


class HttpCallRecord(BaseModel):
    """
    One outgoing HTTP call.

    ``response``, ``stats`` and ``duration`` stay None until the call
    completes; ``error`` is set instead when the connection failed.
    """
    call_id: str = Field(..., description="Call identifier")
    request: RequestDetails
    response: Optional[ResponseDetails] = None
    stats: Optional[TransferStats] = None
    error: Optional[str] = None
    time: float = Field(..., description="Epoch seconds when the request was sent")
    duration: Optional[float] = Field(None, description="Milliseconds until completion")
    trace: List[Dict[str, Any]] = Field(default_factory=list, description="Caller frames")

    _started: Optional[float] = PrivateAttr(default=None)

    @property
    def completed(self) -> bool:
        return self.response is not None or self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")
