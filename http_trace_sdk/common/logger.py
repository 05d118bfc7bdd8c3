"""
Logging utilities.

``get_logger`` returns a standard module logger. ``CallLogger`` writes one
JSON line per finished HTTP call so recorded calls can be shipped to a log
aggregator alongside the debugging payload.
"""

import logging
import json
from typing import Any
from datetime import datetime


class CallLogger:
    """
    JSON call log.

    Every line carries the same keys in the same order; fields that do not
    apply to a call are null. Failed calls are logged at WARNING level.
    """

    FIELDS = ("call_id", "method", "url", "status", "error", "duration_ms")

    def __init__(self, name: str = "http_trace_sdk.calls", level: int = logging.INFO):
        """
        Initialize the call logger.

        Args:
            name: Logger name.
            level: Logging level.
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Add console handler if none exists
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            self.logger.addHandler(handler)

    def log_call(self, **fields: Any) -> None:
        """
        Log one finished call.

        Raises:
            ValueError: If a field outside ``FIELDS`` is passed.
        """
        unknown = sorted(set(fields) - set(self.FIELDS))
        if unknown:
            raise ValueError(f"Unknown call log fields: {', '.join(unknown)}")

        line = {"timestamp": datetime.now().isoformat(), "event": "http_call"}
        line.update((key, fields.get(key)) for key in self.FIELDS)
        level = logging.WARNING if fields.get("error") else logging.INFO
        self.logger.log(level, json.dumps(line, default=str))


def get_logger(name: str) -> logging.Logger:
    """
    Get a standard Python logger.
    
    Args:
        name: Logger name.
        
    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
