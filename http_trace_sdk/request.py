"""
Per-request debugging payload.
"""

import time
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from http_trace_sdk.records import HttpCallRecord


def generate_request_id() -> str:
    """
    Generate a request id that sorts by creation time.

    Format: ``<seconds>-<fraction>-<random>``.
    """
    return f"{time.time():.4f}".replace(".", "-") + "-" + uuid.uuid4().hex[:8]


class DebugRequest(BaseModel):
    """
    Debugging payload of one incoming request (or one CLI run).

    Attributes:
        id: Unique, time-ordered identifier.
        time: Epoch seconds when the request started.
        method: HTTP method of the incoming request.
        uri: Path and query of the incoming request.
        response_status: Status code returned to the client.
        response_duration: Milliseconds spent handling the request.
        http_requests: Outgoing HTTP calls made while handling it.
    """
    id: str = Field(default_factory=generate_request_id, description="Request identifier")
    time: float = Field(default_factory=time.time, description="Start time (epoch seconds)")
    method: Optional[str] = Field(None, description="Incoming HTTP method")
    uri: Optional[str] = Field(None, description="Incoming path and query")
    response_status: Optional[int] = Field(None, description="Response status code")
    response_duration: Optional[float] = Field(None, description="Handling time in milliseconds")
    http_requests: List[HttpCallRecord] = Field(default_factory=list, description="Outgoing HTTP calls")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DebugRequest":
        return cls.model_validate(data)
