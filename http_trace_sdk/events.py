"""
HTTP Client Lifecycle Events.

This module defines the events emitted by the tracing transports for every
outgoing HTTP call, and the dispatcher collectors subscribe to.

Each in-flight call carries a generated ``call_id`` so that the "sending"
event and the matching "received" or "failed" event can be correlated.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field

from http_trace_sdk.common.logger import get_logger

logger = get_logger(__name__)


class HttpClientEvent(BaseModel):
    """
    Base class for all HTTP client events.

    All events have a type, the call identifier and a timestamp for ordering.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    event_type: str = Field(default="http_client_event", description="Event type identifier")
    call_id: str = Field(..., description="Identifier shared by all events of one call")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat(), description="ISO timestamp")


class RequestSending(HttpClientEvent):
    """
    Event fired right before a request is handed to the network.
    """
    event_type: str = "request_sending"
    request: httpx.Request = Field(..., description="Outgoing request, body already read")


class ResponseReceived(HttpClientEvent):
    """
    Event fired once a response has been fully received.

    ``handler_stats`` holds transfer statistics gathered by the transport
    (times in microseconds since the call started, sizes in bytes, speeds in
    bytes per second). Keys are absent when the transport could not measure them.
    """
    event_type: str = "response_received"
    request: httpx.Request = Field(..., description="Request that produced the response")
    response: httpx.Response = Field(..., description="Response, body already read")
    handler_stats: Dict[str, Any] = Field(default_factory=dict, description="Transfer statistics")


class ConnectionFailed(HttpClientEvent):
    """
    Event fired when no response could be obtained (connect error, timeout, ...).
    """
    event_type: str = "connection_failed"
    request: httpx.Request = Field(..., description="Request that failed")
    error: str = Field(..., description="Transport error description")


class CallAborted(HttpClientEvent):
    """
    Event fired when a call ends with anything other than a response or a
    transport error, such as an undecodable body or a cancelled task.
    """
    event_type: str = "call_aborted"
    request: httpx.Request = Field(..., description="Request that was aborted")
    error: str = Field(..., description="Exception description")


E = TypeVar("E", bound=HttpClientEvent)
Listener = Callable[[Any], None]


class EventDispatcher:
    """
    Minimal synchronous event dispatcher.

    Listeners are registered per event class and also receive events of its
    subclasses. A failing listener is logged and never interrupts the HTTP call
    being observed, nor the remaining listeners.
    """

    def __init__(self) -> None:
        self._listeners: List[Tuple[Type[HttpClientEvent], Listener]] = []
        self._lock = threading.Lock()

    def listen(self, event_type: Type[E], listener: Callable[[E], None]) -> None:
        """
        Register a listener for an event class.

        Args:
            event_type: Event class to listen to.
            listener: Callable receiving the event instance.
        """
        with self._lock:
            self._listeners.append((event_type, listener))

    def forget(self, event_type: Type[HttpClientEvent]) -> None:
        """Remove every listener registered for an event class."""
        with self._lock:
            self._listeners = [entry for entry in self._listeners if entry[0] is not event_type]

    def has_listeners(self, event_type: Type[HttpClientEvent]) -> bool:
        return bool(self._matching(event_type))

    def dispatch(self, event: HttpClientEvent) -> None:
        """
        Call every listener matching the event, in registration order.

        Args:
            event: Event instance to deliver.
        """
        for listener in self._matching(type(event)):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    f"Listener {getattr(listener, '__qualname__', listener)!r} failed "
                    f"handling {event.event_type} for call {event.call_id}"
                )

    def _matching(self, event_type: Type[HttpClientEvent]) -> List[Listener]:
        with self._lock:
            return [listener for registered, listener in self._listeners if issubclass(event_type, registered)]
